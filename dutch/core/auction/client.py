"""
Auction client - the three externally visible operations.

Builds the instruction, signs the transaction with the caller's key and
hands it to the ledger. Each call is one transaction and one attempt: a
failure surfaces the ledger's error unchanged, and trying again is the
caller's decision (with a new clock reading).
"""

import secrets
from typing import Optional

from dutch.core.auction import instruction as auction_instruction
from dutch.core.auction.authority import EscrowAuthority
from dutch.core.auction.processor import AuctionProcessor
from dutch.core.auction.record import AuctionRecord
from dutch.core.config import ChainConfig
from dutch.core.state.ledger import Ledger, TransactionReceipt
from dutch.core.state.transaction import Transaction
from dutch.crypto import KeyPair, bytes_to_hex
from dutch.utils.logger import get_logger

logger = get_logger("auction")

AUCTION_PROGRAM_ID = ChainConfig().program_id


def install_program(ledger: Ledger, program_id: bytes = AUCTION_PROGRAM_ID) -> AuctionProcessor:
    """Register the auction processor on `ledger` under `program_id`."""
    processor = AuctionProcessor()
    ledger.register_program(program_id, processor)
    return processor


class AuctionClient:
    """
    Convenience wrapper around a ledger running the auction program.

    Usage:
        client = AuctionClient(ledger)
        escrow, _ = client.create_auction(seller, mint, amount=5, start_price=100,
                                          floor_price=10, start_time=0, end_time=100)
        client.settle_auction(buyer, escrow)
    """

    def __init__(self, ledger: Ledger, program_id: bytes = AUCTION_PROGRAM_ID):
        self.ledger = ledger
        self.program_id = program_id
        if program_id not in ledger.programs:
            install_program(ledger, program_id)

    def create_auction(
        self,
        seller: KeyPair,
        asset_mint: bytes,
        amount: int,
        start_price: int,
        floor_price: int,
        start_time: int,
        end_time: int,
        seed: Optional[bytes] = None,
    ) -> tuple[bytes, TransactionReceipt]:
        """
        Escrow `amount` of `asset_mint` from `seller` and open an auction.

        Args:
            seed: 32-byte auction seed; random if omitted

        Returns:
            (escrow_account, receipt) - the escrow account identifies the auction
        """
        seed = seed if seed is not None else secrets.token_bytes(32)
        ix = auction_instruction.create_auction(
            self.program_id,
            seller.address,
            asset_mint,
            seed,
            amount,
            start_price,
            floor_price,
            start_time,
            end_time,
        )
        receipt = self.ledger.execute(Transaction([ix]).sign(seller))
        escrow = ix.accounts[3]
        logger.info(
            f"Auction created: escrow={bytes_to_hex(escrow)[:10]}..., amount={amount}, "
            f"price {start_price}->{floor_price} over [{start_time}, {end_time}]"
        )
        return escrow, receipt

    def settle_auction(self, buyer: KeyPair, escrow_account: bytes) -> TransactionReceipt:
        """Buy the lot at the price in effect when the transaction executes."""
        ix = auction_instruction.settle_auction(self.program_id, buyer.address, escrow_account)
        receipt = self.ledger.execute(Transaction([ix]).sign(buyer))
        record = self.get_auction(escrow_account)
        logger.info(
            f"Auction settled: escrow={bytes_to_hex(escrow_account)[:10]}..., "
            f"price={record.price_paid}, t={receipt.executed_at}"
        )
        return receipt

    def cancel_auction(self, caller: KeyPair, escrow_account: bytes) -> TransactionReceipt:
        """Withdraw the lot back to the seller."""
        ix = auction_instruction.cancel_auction(self.program_id, caller.address, escrow_account)
        receipt = self.ledger.execute(Transaction([ix]).sign(caller))
        logger.info(f"Auction cancelled: escrow={bytes_to_hex(escrow_account)[:10]}...")
        return receipt

    # =========================================================================
    # Queries
    # =========================================================================

    def get_auction(self, escrow_account: bytes) -> Optional[AuctionRecord]:
        data = self.ledger.get_program_data(self.program_id, escrow_account)
        return AuctionRecord.from_bytes(data) if data is not None else None

    def current_price(self, escrow_account: bytes) -> Optional[int]:
        """Price a settlement would pay if executed now (None if no such auction)."""
        record = self.get_auction(escrow_account)
        if record is None:
            return None
        return record.price_at(self.ledger.clock.read_now())

    def escrow_account_for(self, seller: bytes, asset_mint: bytes, seed: bytes) -> bytes:
        return EscrowAuthority(self.program_id, seller, asset_mint, seed).escrow_account
