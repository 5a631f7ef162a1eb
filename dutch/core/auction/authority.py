"""
Escrow Authority - the keyless controller of an auction's escrow account.

The authority address is derived from public seed material only:

    seeds     = ["escrow-authority", seller, asset_mint, auction_seed]
    authority = create_program_address(AUCTION_PROGRAM_ID, seeds)
    escrow    = associated_account_address(authority, asset_mint)

Nobody holds a key for `authority`. The ledger accepts it as a signer
only when the auction program itself presents the same seeds, so the
escrowed tokens can leave custody only through the program's settle and
cancel transitions.

Because the seeds are fixed record fields, the authority can be
recomputed at any time and compared with whoever actually controls the
escrow account. A substituted or forged escrow account fails that
comparison with AuthorityMismatch.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from dutch.core.errors import AuthorityMismatch
from dutch.core.state.account import TokenAccount
from dutch.crypto import associated_account_address, bytes_to_hex, create_program_address

if TYPE_CHECKING:
    from dutch.core.auction.record import AuctionRecord

AUTHORITY_SEED = b"escrow-authority"
AUCTION_SEED_LENGTH = 32


def authority_seeds(seller: bytes, mint: bytes, seed: bytes) -> List[bytes]:
    """Seed material binding an authority to (seller, mint, auction seed)."""
    if len(seed) != AUCTION_SEED_LENGTH:
        raise ValueError(f"Auction seed must be {AUCTION_SEED_LENGTH} bytes, got {len(seed)}")
    return [AUTHORITY_SEED, seller, mint, seed]


def derive_authority(program_id: bytes, seller: bytes, mint: bytes, seed: bytes) -> bytes:
    return create_program_address(program_id, authority_seeds(seller, mint, seed))


def derive_escrow_account(program_id: bytes, seller: bytes, mint: bytes, seed: bytes) -> bytes:
    return associated_account_address(derive_authority(program_id, seller, mint, seed), mint)


@dataclass(frozen=True)
class EscrowAuthority:
    """Derived authority of one auction, with the seeds needed to sign as it."""
    program_id: bytes
    seller: bytes
    mint: bytes
    seed: bytes

    @classmethod
    def for_record(cls, program_id: bytes, record: "AuctionRecord") -> "EscrowAuthority":
        return cls(program_id, record.seller, record.asset_mint, record.seed)

    @property
    def seeds(self) -> List[bytes]:
        return authority_seeds(self.seller, self.mint, self.seed)

    @property
    def address(self) -> bytes:
        return create_program_address(self.program_id, self.seeds)

    @property
    def escrow_account(self) -> bytes:
        return associated_account_address(self.address, self.mint)


def verify_escrow_authority(
    program_id: bytes,
    record: "AuctionRecord",
    escrow: Optional[TokenAccount],
) -> EscrowAuthority:
    """
    Re-derive the authority from `record` and check it controls `escrow`.

    Returns:
        The verified EscrowAuthority

    Raises:
        AuthorityMismatch: escrow missing, at the wrong address, holding
            another mint, or owned by anyone but the derived authority
    """
    authority = EscrowAuthority.for_record(program_id, record)

    if escrow is None:
        raise AuthorityMismatch("Escrow account does not exist")
    if escrow.address != record.escrow_account or escrow.address != authority.escrow_account:
        raise AuthorityMismatch(f"Escrow {bytes_to_hex(escrow.address)} is not the derived escrow account")
    if escrow.mint != record.asset_mint:
        raise AuthorityMismatch("Escrow account holds a different mint")
    if escrow.owner != authority.address:
        raise AuthorityMismatch(
            f"Escrow owned by {bytes_to_hex(escrow.owner)}, expected {bytes_to_hex(authority.address)}"
        )
    return authority
