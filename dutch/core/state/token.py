"""
Asset transfer primitive.

Moves `amount` of one mint from a source token account to a destination
token account, provided the named authority owns the source and has
signed. Called only through an InvokeContext, against a transaction's
working state, so a failure anywhere later in the transaction still
rolls the transfer back.
"""

from typing import Dict, Set

from dutch.core.errors import (
    AccountNotFound,
    InsufficientFunds,
    InvalidAmount,
    MintMismatch,
    Unauthorized,
)
from dutch.core.state.account import MAX_AMOUNT, TokenAccount
from dutch.crypto import bytes_to_hex
from dutch.utils.logger import get_logger

logger = get_logger("token")


def transfer(
    accounts: Dict[bytes, TokenAccount],
    source: bytes,
    destination: bytes,
    amount: int,
    authority: bytes,
    signers: Set[bytes],
) -> None:
    """
    Move tokens between two accounts of the same mint.

    Args:
        accounts: Mutable account map (a transaction's working copy)
        source: Address of the debited account
        destination: Address of the credited account
        amount: Quantity to move (>= 0)
        authority: Identity authorizing the debit; must own `source`
        signers: Identities that signed (or were derived-signed) for this call

    Raises:
        AccountNotFound, MintMismatch, Unauthorized, InsufficientFunds,
        InvalidAmount
    """
    if amount < 0:
        raise InvalidAmount(f"Transfer amount must be non-negative, got {amount}")

    src = accounts.get(source)
    if src is None:
        raise AccountNotFound(f"Source {bytes_to_hex(source)} does not exist")
    dst = accounts.get(destination)
    if dst is None:
        raise AccountNotFound(f"Destination {bytes_to_hex(destination)} does not exist")

    if src.mint != dst.mint:
        raise MintMismatch()
    if src.owner != authority:
        raise Unauthorized(f"{bytes_to_hex(authority)} does not own {bytes_to_hex(source)}")
    if authority not in signers:
        raise Unauthorized(f"Missing signature of {bytes_to_hex(authority)}")
    if src.amount < amount:
        raise InsufficientFunds(f"Balance {src.amount} < {amount}")
    if source == destination:
        return
    if dst.amount + amount > MAX_AMOUNT:
        raise InvalidAmount("Destination balance would overflow")

    src.amount -= amount
    dst.amount += amount
    logger.debug(
        f"Transfer {amount} {bytes_to_hex(source)[:10]}... -> {bytes_to_hex(destination)[:10]}..."
    )
