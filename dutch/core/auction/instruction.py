"""
Auction instructions: wire codec and builders.

Encoding is a tag byte followed by fixed-width big-endian fields:

    0 CreateAuction  asset_mint(20) seed(32) amount(u64) start_price(u64)
                     floor_price(u64) start_time(i64) end_time(i64)
    1 SettleAuction  (no fields)
    2 CancelAuction  (no fields)

Unknown tags, short data and trailing bytes are all InvalidInstruction.

Account lists (positional):

    CreateAuction  [seller, seller_asset_account, escrow_authority, escrow_account]
    SettleAuction  [buyer, escrow_account]
    CancelAuction  [caller, escrow_account]
"""

from dataclasses import dataclass
from typing import ClassVar, Dict, Type

from dutch.core.auction.authority import AUCTION_SEED_LENGTH, EscrowAuthority
from dutch.core.auction.pricing import MAX_PRICE, MAX_TIME, MIN_TIME
from dutch.core.errors import InvalidAmount, InvalidInstruction, InvalidSchedule
from dutch.core.state.account import MAX_AMOUNT
from dutch.core.state.transaction import Instruction
from dutch.crypto import ADDRESS_LENGTH, associated_account_address


class AuctionInstruction:
    """Base class of the auction program's instructions."""

    TAG: ClassVar[int]
    SIZE: ClassVar[int] = 0

    def pack(self) -> bytes:
        return bytes([self.TAG])

    @classmethod
    def _unpack_fields(cls, body: bytes) -> "AuctionInstruction":
        return cls()

    @staticmethod
    def unpack(data: bytes) -> "AuctionInstruction":
        """
        Decode instruction data.

        Raises:
            InvalidInstruction: empty data, unknown tag or wrong length
        """
        if not data:
            raise InvalidInstruction("Empty instruction data")
        variant = _VARIANTS.get(data[0])
        if variant is None:
            raise InvalidInstruction(f"Unknown instruction tag {data[0]}")
        body = data[1:]
        if len(body) != variant.SIZE:
            raise InvalidInstruction(
                f"{variant.__name__} expects {variant.SIZE} bytes, got {len(body)}"
            )
        return variant._unpack_fields(body)


@dataclass(frozen=True)
class CreateAuction(AuctionInstruction):
    """Escrow `amount` of `asset_mint` and open an auction on it."""
    asset_mint: bytes
    seed: bytes
    amount: int
    start_price: int
    floor_price: int
    start_time: int
    end_time: int

    TAG: ClassVar[int] = 0
    SIZE: ClassVar[int] = ADDRESS_LENGTH + AUCTION_SEED_LENGTH + 8 * 5

    def pack(self) -> bytes:
        if len(self.asset_mint) != ADDRESS_LENGTH or len(self.seed) != AUCTION_SEED_LENGTH:
            raise InvalidInstruction("asset_mint must be 20 bytes and seed 32 bytes")
        if not (0 <= self.amount <= MAX_AMOUNT):
            raise InvalidAmount(f"amount {self.amount} does not fit an unsigned 64-bit value")
        if not (0 <= self.start_price <= MAX_PRICE and 0 <= self.floor_price <= MAX_PRICE):
            raise InvalidSchedule("Prices must fit an unsigned 64-bit value")
        if not (MIN_TIME <= self.start_time <= MAX_TIME and MIN_TIME <= self.end_time <= MAX_TIME):
            raise InvalidSchedule("Times must fit a signed 64-bit value")

        return (
            bytes([self.TAG]) +
            self.asset_mint +
            self.seed +
            self.amount.to_bytes(8, byteorder="big") +
            self.start_price.to_bytes(8, byteorder="big") +
            self.floor_price.to_bytes(8, byteorder="big") +
            self.start_time.to_bytes(8, byteorder="big", signed=True) +
            self.end_time.to_bytes(8, byteorder="big", signed=True)
        )

    @classmethod
    def _unpack_fields(cls, body: bytes) -> "CreateAuction":
        u64 = lambda offset: int.from_bytes(body[offset:offset + 8], byteorder="big")
        i64 = lambda offset: int.from_bytes(body[offset:offset + 8], byteorder="big", signed=True)
        return cls(
            asset_mint=body[0:20],
            seed=body[20:52],
            amount=u64(52),
            start_price=u64(60),
            floor_price=u64(68),
            start_time=i64(76),
            end_time=i64(84),
        )


@dataclass(frozen=True)
class SettleAuction(AuctionInstruction):
    """Buy the whole lot at the current clearing price."""
    TAG: ClassVar[int] = 1


@dataclass(frozen=True)
class CancelAuction(AuctionInstruction):
    """Return the escrowed lot to the seller."""
    TAG: ClassVar[int] = 2


_VARIANTS: Dict[int, Type[AuctionInstruction]] = {
    variant.TAG: variant for variant in (CreateAuction, SettleAuction, CancelAuction)
}


# =============================================================================
# Builders
# =============================================================================


def create_auction(
    program_id: bytes,
    seller: bytes,
    asset_mint: bytes,
    seed: bytes,
    amount: int,
    start_price: int,
    floor_price: int,
    start_time: int,
    end_time: int,
) -> Instruction:
    """Build a CreateAuction instruction with its derived accounts."""
    authority = EscrowAuthority(program_id, seller, asset_mint, seed)
    data = CreateAuction(
        asset_mint=asset_mint,
        seed=seed,
        amount=amount,
        start_price=start_price,
        floor_price=floor_price,
        start_time=start_time,
        end_time=end_time,
    ).pack()
    return Instruction(
        program_id=program_id,
        accounts=[
            seller,
            associated_account_address(seller, asset_mint),
            authority.address,
            authority.escrow_account,
        ],
        data=data,
    )


def settle_auction(program_id: bytes, buyer: bytes, escrow_account: bytes) -> Instruction:
    """Build a SettleAuction instruction."""
    return Instruction(program_id=program_id, accounts=[buyer, escrow_account], data=SettleAuction().pack())


def cancel_auction(program_id: bytes, caller: bytes, escrow_account: bytes) -> Instruction:
    """Build a CancelAuction instruction."""
    return Instruction(program_id=program_id, accounts=[caller, escrow_account], data=CancelAuction().pack())
