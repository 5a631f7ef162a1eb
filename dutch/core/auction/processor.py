"""
Auction processor - the state machine and settlement protocol.

Every method here runs inside one ledger transaction against a working
copy of the state. Raising at any point discards every write made so far
(record updates and transfers alike), so each transition is
all-or-nothing without any bookkeeping here.

The status check (`record.is_active`) and the terminal status write
happen in the same transaction. The ledger commits transactions one at a
time, so of two settlements racing for one auction the second always
reads SETTLED and fails with NotActive.
"""

from typing import List, Optional

from dutch.core.auction.authority import EscrowAuthority, verify_escrow_authority
from dutch.core.auction.instruction import (
    AuctionInstruction,
    CancelAuction,
    CreateAuction,
    SettleAuction,
)
from dutch.core.auction.pricing import validate_schedule
from dutch.core.auction.record import AuctionRecord, AuctionStatus
from dutch.core.errors import (
    AlreadyInUse,
    AuthorityMismatch,
    InsufficientFunds,
    InvalidAmount,
    InvalidInstruction,
    NotActive,
    Unauthorized,
)
from dutch.core.state.account import NATIVE_MINT
from dutch.core.state.ledger import InvokeContext
from dutch.core.state.transaction import Instruction
from dutch.crypto import associated_account_address, bytes_to_hex
from dutch.utils.logger import get_logger

logger = get_logger("auction.processor")


class AuctionProcessor:
    """Dispatches auction instructions. Stateless; all state lives in the ledger."""

    def process(self, ctx: InvokeContext, instruction: Instruction) -> None:
        ix = AuctionInstruction.unpack(instruction.data)

        if isinstance(ix, CreateAuction):
            self.process_create(ctx, instruction.accounts, ix)
        elif isinstance(ix, SettleAuction):
            self.process_settle(ctx, instruction.accounts)
        elif isinstance(ix, CancelAuction):
            self.process_cancel(ctx, instruction.accounts)

    # =========================================================================
    # Create
    # =========================================================================

    def process_create(self, ctx: InvokeContext, accounts: List[bytes], args: CreateAuction) -> None:
        """
        Validate terms, escrow the lot under the derived authority, record it ACTIVE.

        Raises:
            InvalidAmount, InvalidSchedule, Unauthorized, AuthorityMismatch,
            AlreadyInUse, InsufficientFunds
        """
        seller, source, authority_key, escrow_key = _expect_accounts(accounts, 4)

        if args.amount <= 0:
            raise InvalidAmount(f"Escrow amount must be positive, got {args.amount}")
        validate_schedule(args.start_price, args.floor_price, args.start_time, args.end_time)

        if not ctx.is_signer(seller):
            raise Unauthorized("Seller must sign auction creation")

        authority = EscrowAuthority(ctx.program_id, seller, args.asset_mint, args.seed)
        if authority_key != authority.address:
            raise AuthorityMismatch("Escrow authority does not match derivation")
        if escrow_key != authority.escrow_account:
            raise AuthorityMismatch("Escrow account does not match derivation")
        if ctx.get_data(escrow_key) is not None or ctx.get_account(escrow_key) is not None:
            raise AlreadyInUse(f"Escrow {bytes_to_hex(escrow_key)} already in use")

        record = AuctionRecord(
            seller=seller,
            asset_mint=args.asset_mint,
            escrow_account=escrow_key,
            seed=args.seed,
            amount=args.amount,
            start_price=args.start_price,
            floor_price=args.floor_price,
            start_time=args.start_time,
            end_time=args.end_time,
            status=AuctionStatus.CREATED,
        )
        if ctx.get_account(source) is None:
            raise InsufficientFunds("Seller has no asset account")

        ctx.set_data(escrow_key, record.to_bytes())

        ctx.open_account(authority.address, args.asset_mint)
        ctx.transfer(source, escrow_key, args.amount, authority=seller)

        ctx.set_data(escrow_key, record.activated().to_bytes())
        ctx.log(f"create: escrow={bytes_to_hex(escrow_key)} amount={args.amount}")
        logger.debug(f"Escrowed {args.amount} into {bytes_to_hex(escrow_key)[:10]}...")

    # =========================================================================
    # Settle
    # =========================================================================

    def process_settle(self, ctx: InvokeContext, accounts: List[bytes]) -> None:
        """
        Pay the seller the current clearing price and hand the lot to the buyer.

        Raises:
            NotActive, Unauthorized, AuthorityMismatch, InsufficientFunds
        """
        buyer, escrow_key = _expect_accounts(accounts, 2)

        record = _load_record(ctx, escrow_key)
        if record is None or not record.is_active:
            raise NotActive(_status_message(record))
        if not ctx.is_signer(buyer):
            raise Unauthorized("Buyer must sign settlement")

        # Clock reading of this transaction, never one captured at build time
        price = record.price_at(ctx.now)

        authority = verify_escrow_authority(ctx.program_id, record, ctx.get_account(escrow_key))

        if price > 0:
            buyer_payment = associated_account_address(buyer, NATIVE_MINT)
            if ctx.get_account(buyer_payment) is None:
                raise InsufficientFunds("Buyer has no payment account")
            seller_payment = ctx.open_account(record.seller, NATIVE_MINT)
            ctx.transfer(buyer_payment, seller_payment, price, authority=buyer)

        buyer_asset = ctx.open_account(buyer, record.asset_mint)
        ctx.transfer(
            escrow_key,
            buyer_asset,
            record.amount,
            authority=authority.address,
            signer_seeds=authority.seeds,
        )

        ctx.set_data(escrow_key, record.settled(buyer, price, ctx.now).to_bytes())
        ctx.log(f"settle: escrow={bytes_to_hex(escrow_key)} price={price} at t={ctx.now}")
        logger.debug(f"Settlement price {price} at t={ctx.now} for {bytes_to_hex(escrow_key)[:10]}...")

    # =========================================================================
    # Cancel
    # =========================================================================

    def process_cancel(self, ctx: InvokeContext, accounts: List[bytes]) -> None:
        """
        Return the lot to the seller and close the auction.

        Raises:
            Unauthorized, NotActive, AuthorityMismatch
        """
        caller, escrow_key = _expect_accounts(accounts, 2)

        record = _load_record(ctx, escrow_key)
        if record is None:
            raise NotActive(_status_message(record))
        if caller != record.seller or not ctx.is_signer(caller):
            raise Unauthorized("Only the seller may cancel")
        if not record.is_active:
            raise NotActive(_status_message(record))

        authority = verify_escrow_authority(ctx.program_id, record, ctx.get_account(escrow_key))

        seller_asset = ctx.open_account(record.seller, record.asset_mint)
        ctx.transfer(
            escrow_key,
            seller_asset,
            record.amount,
            authority=authority.address,
            signer_seeds=authority.seeds,
        )

        ctx.set_data(escrow_key, record.cancelled(ctx.now).to_bytes())
        ctx.log(f"cancel: escrow={bytes_to_hex(escrow_key)} at t={ctx.now}")


# =============================================================================
# Helpers
# =============================================================================


def _expect_accounts(accounts: List[bytes], count: int) -> List[bytes]:
    if len(accounts) != count:
        raise InvalidInstruction(f"Expected {count} accounts, got {len(accounts)}")
    return accounts


def _load_record(ctx: InvokeContext, escrow_key: bytes) -> Optional[AuctionRecord]:
    data = ctx.get_data(escrow_key)
    return AuctionRecord.from_bytes(data) if data is not None else None


def _status_message(record: Optional[AuctionRecord]) -> str:
    if record is None:
        return "No auction at this escrow account"
    return f"Auction is {record.status.name}"
