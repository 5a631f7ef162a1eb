"""
Token accounts - balances of a single mint held for a single owner.

Conceptual Background:
---------------------
Every balance on the ledger lives in a token account:

    address -> (mint, owner, amount)

`owner` is the only identity that may authorize moving tokens out. It is
either a key-controlled address or a program-derived address (see
dutch.crypto.create_program_address), which no key can sign for.

The settlement currency is itself a mint, NATIVE_MINT (20 zero bytes), so
payments and escrowed assets go through the same transfer primitive.

Commitments:
-----------
Each account hashes to a commitment that becomes a leaf of the state tree:
    commitment = SHA256(address || mint || owner || amount)
"""

from dataclasses import dataclass

from dutch.crypto import ADDRESS_LENGTH, associated_account_address, bytes_to_hex, sha256


# SECURITY: Maximum value that fits the 8-byte serialized amount
MAX_AMOUNT = 2**64 - 1

# Settlement currency
NATIVE_MINT = bytes(ADDRESS_LENGTH)


@dataclass
class TokenAccount:
    """
    A balance of one mint, controlled by one owner.

    Attributes:
        address: 20-byte account address
        mint: 20-byte mint (asset type) identifier
        owner: 20-byte controlling identity
        amount: Token balance (0 <= amount <= MAX_AMOUNT)
    """
    address: bytes
    mint: bytes
    owner: bytes
    amount: int = 0

    SIZE = 3 * ADDRESS_LENGTH + 8

    def __post_init__(self):
        """Validate field constraints."""
        for name in ("address", "mint", "owner"):
            value = getattr(self, name)
            if len(value) != ADDRESS_LENGTH:
                raise ValueError(f"{name} must be {ADDRESS_LENGTH} bytes, got {len(value)}")
        if not (0 <= self.amount <= MAX_AMOUNT):
            raise ValueError(f"amount out of range: {self.amount}")

    @property
    def is_native(self) -> bool:
        return self.mint == NATIVE_MINT

    def compute_commitment(self) -> bytes:
        """Leaf value for the state tree."""
        return sha256(self.to_bytes())

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_bytes(self) -> bytes:
        """
        Serialize account to bytes.

        Format: address(20) || mint(20) || owner(20) || amount(8)
        """
        return self.address + self.mint + self.owner + self.amount.to_bytes(8, byteorder="big")

    @classmethod
    def from_bytes(cls, data: bytes) -> "TokenAccount":
        """Deserialize account from bytes."""
        if len(data) != cls.SIZE:
            raise ValueError(f"TokenAccount data must be {cls.SIZE} bytes, got {len(data)}")
        return cls(
            address=data[0:20],
            mint=data[20:40],
            owner=data[40:60],
            amount=int.from_bytes(data[60:68], byteorder="big"),
        )

    def __repr__(self) -> str:
        address = bytes_to_hex(self.address)[:10] + "..."
        owner = bytes_to_hex(self.owner)[:10] + "..."
        mint = "native" if self.is_native else bytes_to_hex(self.mint)[:10] + "..."
        return f"TokenAccount({address}, mint={mint}, owner={owner}, amount={self.amount})"


def open_associated_account(owner: bytes, mint: bytes) -> TokenAccount:
    """Empty token account at the canonical address for (owner, mint)."""
    return TokenAccount(
        address=associated_account_address(owner, mint),
        mint=mint,
        owner=owner,
        amount=0,
    )
