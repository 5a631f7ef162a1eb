"""
Pricing Engine - linear Dutch auction price decay.

    now <= start_time            -> start_price
    now >= end_time              -> floor_price
    otherwise                    -> start_price - ceil(drop * elapsed / duration)

where drop = start_price - floor_price and elapsed = now - start_time.

Everything is integer arithmetic. The deduction is rounded up, which is
the same as rounding the price down: the computed price is never above
the exact curve value, so rounding only ever favors the buyer.
"""

from dataclasses import dataclass

from dutch.core.errors import InvalidSchedule

MAX_PRICE = 2**64 - 1

# Signed 64-bit time values
MIN_TIME = -(2**63)
MAX_TIME = 2**63 - 1


def validate_schedule(start_price: int, floor_price: int, start_time: int, end_time: int) -> None:
    """
    Check price and time bounds.

    Raises:
        InvalidSchedule: negative or oversized prices, floor above start,
            times out of range, or an empty/reversed window
    """
    if not (0 <= floor_price <= MAX_PRICE and 0 <= start_price <= MAX_PRICE):
        raise InvalidSchedule(f"Prices must be within [0, {MAX_PRICE}]")
    if floor_price > start_price:
        raise InvalidSchedule(f"floor_price {floor_price} > start_price {start_price}")
    if not (MIN_TIME <= start_time <= MAX_TIME and MIN_TIME <= end_time <= MAX_TIME):
        raise InvalidSchedule("Times must fit a signed 64-bit value")
    if end_time <= start_time:
        raise InvalidSchedule(f"end_time {end_time} <= start_time {start_time}")


def price_at(start_price: int, floor_price: int, start_time: int, end_time: int, now: int) -> int:
    """
    Clearing price at `now`.

    Pure and deterministic: identical inputs give identical output.

    Raises:
        InvalidSchedule: if the schedule itself is invalid
    """
    validate_schedule(start_price, floor_price, start_time, end_time)

    if now <= start_time:
        return start_price
    if now >= end_time:
        return floor_price

    drop = start_price - floor_price
    elapsed = now - start_time
    duration = end_time - start_time
    deduction = -(-(drop * elapsed) // duration)
    return start_price - deduction


@dataclass(frozen=True)
class PriceSchedule:
    """A validated price curve."""
    start_price: int
    floor_price: int
    start_time: int
    end_time: int

    def __post_init__(self):
        validate_schedule(self.start_price, self.floor_price, self.start_time, self.end_time)

    @property
    def duration(self) -> int:
        return self.end_time - self.start_time

    def price_at(self, now: int) -> int:
        return price_at(self.start_price, self.floor_price, self.start_time, self.end_time, now)

    def has_reached_floor(self, now: int) -> bool:
        return now >= self.end_time
