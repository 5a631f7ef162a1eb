"""
Cryptographic primitives for the auction ledger.

This module provides:
- Hashing functions (SHA-256, Keccak-256)
- Key generation and management
- Digital signatures (ECDSA on secp256k1)
- Address derivation for keys, program-derived authorities and
  associated token accounts

Design Notes:
-------------
Accounts controlled by people are addressed Ethereum-style:
    address = keccak256(public_key)[-20:]

Accounts controlled by a program have no key at all. Their address is a
hash of public seed material and the program id, under a domain marker
that no public key hash ever passes through:
    address = keccak256(len(s0) || s0 || ... || program_id || marker)[-20:]

Only the ledger can vouch for such an address, and only on behalf of the
program whose id went into the hash.
"""

import hashlib
import secrets
from dataclasses import dataclass
from typing import Optional, Sequence

from Crypto.Hash import keccak
from py_ecc.secp256k1 import secp256k1


# =============================================================================
# Constants
# =============================================================================

# secp256k1 curve order (number of points on the curve)
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

ADDRESS_LENGTH = 20

# Seed limits for derived addresses
MAX_SEEDS = 16
MAX_SEED_LENGTH = 32

PROGRAM_DERIVED_MARKER = b"ProgramDerivedAddress"
ASSOCIATED_ACCOUNT_MARKER = b"AssociatedTokenAccount"


# =============================================================================
# Hashing
# =============================================================================


def sha256(data: bytes) -> bytes:
    """
    Compute SHA-256 hash.

    Used for: transaction hashes, account commitments, state tree.
    """
    return hashlib.sha256(data).digest()


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum-style).

    Used for: every kind of address derivation.
    """
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


# =============================================================================
# Key Generation
# =============================================================================


@dataclass
class KeyPair:
    """
    An ECDSA keypair on secp256k1.

    Attributes:
        private_key: 32-byte secret key (integer in [1, order-1])
        public_key: 64-byte uncompressed public key (x || y coordinates)
    """
    private_key: bytes  # 32 bytes
    public_key: bytes   # 64 bytes (uncompressed, no 0x04 prefix)

    @property
    def address(self) -> bytes:
        """20-byte account address of this key."""
        return address_from_public_key(self.public_key)

    @property
    def address_hex(self) -> str:
        """Address as 0x-prefixed hex string."""
        return bytes_to_hex(self.address)

    def __repr__(self) -> str:
        return f"KeyPair(address={self.address_hex})"


def generate_keypair() -> KeyPair:
    """
    Generate a new random keypair.

    Uses cryptographically secure random number generator.
    """
    private_key_int = secrets.randbelow(SECP256K1_ORDER - 1) + 1
    private_key = private_key_int.to_bytes(32, byteorder="big")
    return KeyPair(private_key=private_key, public_key=private_key_to_public_key(private_key))


def private_key_to_public_key(private_key: bytes) -> bytes:
    """
    Derive public key from private key.

    Args:
        private_key: 32-byte private key

    Returns:
        64-byte uncompressed public key
    """
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    x, y = secp256k1.privtopub(private_key)
    return x.to_bytes(32, byteorder="big") + y.to_bytes(32, byteorder="big")


# =============================================================================
# Digital Signatures (ECDSA)
# =============================================================================


def sign(message_hash: bytes, private_key: bytes) -> bytes:
    """
    Sign a message hash using ECDSA on secp256k1.

    Args:
        message_hash: 32-byte hash of the message to sign
        private_key: 32-byte private key

    Returns:
        64-byte signature (r || s, each 32 bytes)
    """
    if len(message_hash) != 32:
        raise ValueError("Message hash must be 32 bytes")
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    _v, r, s = secp256k1.ecdsa_raw_sign(message_hash, private_key)

    # Low-s form only (BIP 62 / EIP-2), prevents signature malleability
    if s > SECP256K1_ORDER // 2:
        s = SECP256K1_ORDER - s

    return r.to_bytes(32, byteorder="big") + s.to_bytes(32, byteorder="big")


def recover_public_key(message_hash: bytes, signature: bytes, recovery_id: int) -> Optional[bytes]:
    """
    Recover public key from signature.

    Args:
        message_hash: 32-byte hash
        signature: 64-byte signature (r || s)
        recovery_id: 0 or 1 (which of two possible public keys)

    Returns:
        64-byte public key, or None if recovery fails
    """
    if len(message_hash) != 32 or len(signature) != 64:
        return None

    r = int.from_bytes(signature[:32], byteorder="big")
    s = int.from_bytes(signature[32:], byteorder="big")
    if not (1 <= r < SECP256K1_ORDER and 1 <= s < SECP256K1_ORDER):
        return None

    try:
        x, y = secp256k1.ecdsa_raw_recover(message_hash, (27 + recovery_id, r, s))
    except (ValueError, ZeroDivisionError, TypeError):
        return None
    return x.to_bytes(32, byteorder="big") + y.to_bytes(32, byteorder="big")


def verify(message_hash: bytes, signature: bytes, public_key: bytes) -> bool:
    """
    Verify an ECDSA signature.

    Args:
        message_hash: 32-byte hash of the signed message
        signature: 64-byte signature (r || s)
        public_key: 64-byte public key (x || y)

    Returns:
        True if signature is valid, False otherwise
    """
    if len(message_hash) != 32 or len(signature) != 64 or len(public_key) != 64:
        return False

    # s was normalized at signing time, so either parity may be the right one
    return any(
        recover_public_key(message_hash, signature, recovery_id) == public_key
        for recovery_id in (0, 1)
    )


# =============================================================================
# Address Derivation
# =============================================================================


def address_from_public_key(public_key: bytes) -> bytes:
    """
    Derive address from public key (Ethereum-style).

    address = keccak256(public_key)[-20:]
    """
    if len(public_key) != 64:
        raise ValueError("Public key must be 64 bytes")
    return keccak256(public_key)[-ADDRESS_LENGTH:]


def create_program_address(program_id: bytes, seeds: Sequence[bytes]) -> bytes:
    """
    Derive a keyless address controlled by a program.

    The same program id and seeds always yield the same address. No private
    key corresponds to it; the ledger lets the program named by `program_id`
    sign for it by presenting the seeds again.

    Args:
        program_id: 20-byte id of the controlling program
        seeds: Up to 16 seeds, each at most 32 bytes

    Returns:
        20-byte derived address
    """
    if len(program_id) != ADDRESS_LENGTH:
        raise ValueError(f"program_id must be {ADDRESS_LENGTH} bytes, got {len(program_id)}")
    if len(seeds) > MAX_SEEDS:
        raise ValueError(f"At most {MAX_SEEDS} seeds allowed, got {len(seeds)}")

    parts = []
    for seed in seeds:
        if len(seed) > MAX_SEED_LENGTH:
            raise ValueError(f"Seed exceeds {MAX_SEED_LENGTH} bytes: {len(seed)}")
        # Length prefix keeps (b"ab", b"c") and (b"a", b"bc") apart
        parts.append(len(seed).to_bytes(1, byteorder="big"))
        parts.append(seed)
    parts.append(program_id)
    parts.append(PROGRAM_DERIVED_MARKER)

    return keccak256(b"".join(parts))[-ADDRESS_LENGTH:]


def associated_account_address(owner: bytes, mint: bytes) -> bytes:
    """
    Canonical token account address of `owner` for `mint`.

    address = keccak256(marker || owner || mint)[-20:]
    """
    if len(owner) != ADDRESS_LENGTH or len(mint) != ADDRESS_LENGTH:
        raise ValueError("owner and mint must be 20-byte addresses")
    return keccak256(ASSOCIATED_ACCOUNT_MARKER + owner + mint)[-ADDRESS_LENGTH:]


# =============================================================================
# Utility Functions
# =============================================================================


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def is_valid_address(address: str) -> bool:
    """Check if string is a valid address format."""
    if not address.startswith("0x"):
        return False
    if len(address) != 2 + 2 * ADDRESS_LENGTH:
        return False
    try:
        int(address, 16)
        return True
    except ValueError:
        return False
