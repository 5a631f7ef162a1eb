"""
Auction Record - the one persistent entity of the auction program.

Stored as program data keyed by the escrow account address, so an escrow
account can never back two auctions.

Lifecycle:
---------
    CREATED --(escrow funded, same transaction)--> ACTIVE
    ACTIVE  --settle-->  SETTLED    (buyer, price_paid, closed_at recorded)
    ACTIVE  --cancel-->  CANCELLED  (closed_at recorded)

CREATED never survives a transaction: either funding succeeds and the
record commits as ACTIVE, or the whole creation is discarded. SETTLED and
CANCELLED are terminal; the record never changes again.
"""

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Optional

from dutch.core.auction.pricing import PriceSchedule
from dutch.crypto import ADDRESS_LENGTH, bytes_to_hex

NO_BUYER = bytes(ADDRESS_LENGTH)


class AuctionStatus(IntEnum):
    """Lifecycle state of an auction record."""
    CREATED = 0       # Transient, only inside the creating transaction
    ACTIVE = 1        # Escrow funded, purchasable
    SETTLED = 2       # Sold (terminal)
    CANCELLED = 3     # Withdrawn by seller (terminal)


@dataclass
class AuctionRecord:
    """
    Terms and state of one auction.

    Attributes:
        seller: Creator, cancellation authority and payment recipient
        asset_mint: Mint of the escrowed asset
        escrow_account: Account holding the escrowed asset
        seed: 32-byte seller-chosen auction seed (authority seed material)
        amount: Escrowed quantity, immutable
        start_price: Price at and before start_time
        floor_price: Price at and after end_time
        start_time: Start of the decay window
        end_time: End of the decay window
        status: Lifecycle state
        buyer: Settling buyer (None until SETTLED)
        price_paid: Clearing price paid at settlement (0 otherwise)
        closed_at: Clock reading of the terminal transition
    """
    seller: bytes
    asset_mint: bytes
    escrow_account: bytes
    seed: bytes
    amount: int
    start_price: int
    floor_price: int
    start_time: int
    end_time: int
    status: AuctionStatus = AuctionStatus.CREATED
    buyer: Optional[bytes] = None
    price_paid: int = 0
    closed_at: Optional[int] = None

    LEN = 1 + 3 * ADDRESS_LENGTH + 32 + 8 * 5 + ADDRESS_LENGTH + 8 + 1 + 8

    def __post_init__(self):
        for name in ("seller", "asset_mint", "escrow_account"):
            if len(getattr(self, name)) != ADDRESS_LENGTH:
                raise ValueError(f"{name} must be {ADDRESS_LENGTH} bytes")
        if len(self.seed) != 32:
            raise ValueError("seed must be 32 bytes")
        if self.buyer is not None and len(self.buyer) != ADDRESS_LENGTH:
            raise ValueError(f"buyer must be {ADDRESS_LENGTH} bytes")
        self.status = AuctionStatus(self.status)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def is_active(self) -> bool:
        return self.status == AuctionStatus.ACTIVE

    @property
    def is_terminal(self) -> bool:
        return self.status in (AuctionStatus.SETTLED, AuctionStatus.CANCELLED)

    @property
    def schedule(self) -> PriceSchedule:
        return PriceSchedule(self.start_price, self.floor_price, self.start_time, self.end_time)

    def price_at(self, now: int) -> int:
        return self.schedule.price_at(now)

    def activated(self) -> "AuctionRecord":
        return replace(self, status=AuctionStatus.ACTIVE)

    def settled(self, buyer: bytes, price: int, now: int) -> "AuctionRecord":
        return replace(self, status=AuctionStatus.SETTLED, buyer=buyer, price_paid=price, closed_at=now)

    def cancelled(self, now: int) -> "AuctionRecord":
        return replace(self, status=AuctionStatus.CANCELLED, closed_at=now)

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_bytes(self) -> bytes:
        """
        Serialize record.

        Format: status(1) || seller(20) || asset_mint(20) || escrow_account(20) ||
                seed(32) || amount(8) || start_price(8) || floor_price(8) ||
                start_time(8, signed) || end_time(8, signed) || buyer(20) ||
                price_paid(8) || has_closed_at(1) || closed_at(8, signed)
        """
        return (
            int(self.status).to_bytes(1, byteorder="big") +
            self.seller +
            self.asset_mint +
            self.escrow_account +
            self.seed +
            self.amount.to_bytes(8, byteorder="big") +
            self.start_price.to_bytes(8, byteorder="big") +
            self.floor_price.to_bytes(8, byteorder="big") +
            self.start_time.to_bytes(8, byteorder="big", signed=True) +
            self.end_time.to_bytes(8, byteorder="big", signed=True) +
            (self.buyer or NO_BUYER) +
            self.price_paid.to_bytes(8, byteorder="big") +
            (b"\x01" if self.closed_at is not None else b"\x00") +
            (self.closed_at or 0).to_bytes(8, byteorder="big", signed=True)
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "AuctionRecord":
        """Deserialize record."""
        if len(data) != cls.LEN:
            raise ValueError(f"AuctionRecord data must be {cls.LEN} bytes, got {len(data)}")

        offset = 0

        def take(n: int) -> bytes:
            nonlocal offset
            chunk = data[offset:offset + n]
            offset += n
            return chunk

        status = take(1)[0]
        seller = take(20)
        asset_mint = take(20)
        escrow_account = take(20)
        seed = take(32)
        amount = int.from_bytes(take(8), byteorder="big")
        start_price = int.from_bytes(take(8), byteorder="big")
        floor_price = int.from_bytes(take(8), byteorder="big")
        start_time = int.from_bytes(take(8), byteorder="big", signed=True)
        end_time = int.from_bytes(take(8), byteorder="big", signed=True)
        buyer = take(20)
        price_paid = int.from_bytes(take(8), byteorder="big")
        has_closed_at = take(1)[0]
        closed_at = int.from_bytes(take(8), byteorder="big", signed=True)

        return cls(
            seller=seller,
            asset_mint=asset_mint,
            escrow_account=escrow_account,
            seed=seed,
            amount=amount,
            start_price=start_price,
            floor_price=floor_price,
            start_time=start_time,
            end_time=end_time,
            status=AuctionStatus(status),
            buyer=None if buyer == NO_BUYER else buyer,
            price_paid=price_paid,
            closed_at=closed_at if has_closed_at else None,
        )

    def __repr__(self) -> str:
        escrow = bytes_to_hex(self.escrow_account)[:10] + "..."
        return (
            f"AuctionRecord(escrow={escrow}, status={self.status.name}, amount={self.amount}, "
            f"price={self.start_price}->{self.floor_price} over [{self.start_time}, {self.end_time}])"
        )
