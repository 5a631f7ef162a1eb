"""Dutch auction program: pricing, escrow authority, state machine, settlement"""
from dutch.core.auction.pricing import PriceSchedule, price_at, validate_schedule
from dutch.core.auction.authority import (
    EscrowAuthority,
    authority_seeds,
    derive_authority,
    derive_escrow_account,
    verify_escrow_authority,
)
from dutch.core.auction.record import AuctionRecord, AuctionStatus
from dutch.core.auction.instruction import (
    AuctionInstruction,
    CreateAuction,
    SettleAuction,
    CancelAuction,
    create_auction,
    settle_auction,
    cancel_auction,
)
from dutch.core.auction.processor import AuctionProcessor
from dutch.core.auction.client import AUCTION_PROGRAM_ID, AuctionClient, install_program

__all__ = [
    "PriceSchedule",
    "price_at",
    "validate_schedule",
    "EscrowAuthority",
    "authority_seeds",
    "derive_authority",
    "derive_escrow_account",
    "verify_escrow_authority",
    "AuctionRecord",
    "AuctionStatus",
    "AuctionInstruction",
    "CreateAuction",
    "SettleAuction",
    "CancelAuction",
    "create_auction",
    "settle_auction",
    "cancel_auction",
    "AuctionProcessor",
    "AUCTION_PROGRAM_ID",
    "AuctionClient",
    "install_program",
]
