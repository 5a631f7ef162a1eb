"""
Transaction - the unit the ledger commits or discards as a whole.

Conceptual Background:
---------------------
A Transaction is an ordered list of Instructions plus the signatures of
the keys that authorize it. Each Instruction names a program, the account
addresses it touches, and opaque program-specific data.

Atomicity:
---------
The ledger executes every instruction of a transaction against one
private working copy of the state. Either every instruction succeeds and
the copy replaces the committed state, or the copy is thrown away. There
is no partial transaction.

Signatures:
----------
Signers sign the message hash, which covers the nonce and all
instructions but not the signatures themselves:
    message = nonce(32) || num_ix(1) || instructions
    tx_hash = SHA256(message)

The nonce makes two otherwise identical requests (e.g. a buyer trying to
settle twice) distinct transactions.
"""

import secrets
from dataclasses import dataclass, field
from typing import List, Set, Tuple

from dutch.core.errors import InvalidSignature
from dutch.crypto import (
    ADDRESS_LENGTH,
    KeyPair,
    address_from_public_key,
    bytes_to_hex,
    sha256,
    sign,
    verify,
)


MAX_INSTRUCTIONS = 255
MAX_INSTRUCTION_ACCOUNTS = 255
MAX_INSTRUCTION_DATA = 2**16 - 1


# =============================================================================
# Instruction
# =============================================================================


@dataclass
class Instruction:
    """
    A call into one program.

    Attributes:
        program_id: 20-byte id of the program to invoke
        accounts: Account addresses the program reads or writes, in the
            order the program expects them
        data: Program-specific encoded arguments
    """
    program_id: bytes
    accounts: List[bytes]
    data: bytes

    def __post_init__(self):
        if len(self.program_id) != ADDRESS_LENGTH:
            raise ValueError(f"program_id must be {ADDRESS_LENGTH} bytes")
        if len(self.accounts) > MAX_INSTRUCTION_ACCOUNTS:
            raise ValueError("Too many accounts in instruction")
        for i, account in enumerate(self.accounts):
            if len(account) != ADDRESS_LENGTH:
                raise ValueError(f"Account {i} must be {ADDRESS_LENGTH} bytes")
        if len(self.data) > MAX_INSTRUCTION_DATA:
            raise ValueError("Instruction data too large")

    def to_bytes(self) -> bytes:
        """
        Serialize instruction.

        Format: program_id(20) || num_accounts(1) || accounts || data_len(2) || data
        """
        return (
            self.program_id +
            len(self.accounts).to_bytes(1, byteorder="big") +
            b"".join(self.accounts) +
            len(self.data).to_bytes(2, byteorder="big") +
            self.data
        )

    @classmethod
    def read_from(cls, data: bytes, offset: int) -> Tuple["Instruction", int]:
        """Deserialize one instruction at `offset`; returns (instruction, new_offset)."""
        program_id, offset = _take(data, offset, ADDRESS_LENGTH)
        num_accounts, offset = _take(data, offset, 1)
        accounts = []
        for _ in range(num_accounts[0]):
            account, offset = _take(data, offset, ADDRESS_LENGTH)
            accounts.append(account)
        data_len, offset = _take(data, offset, 2)
        payload, offset = _take(data, offset, int.from_bytes(data_len, byteorder="big"))
        return cls(program_id, accounts, payload), offset


def _take(data: bytes, offset: int, length: int) -> Tuple[bytes, int]:
    """Slice `length` bytes at `offset`, or raise ValueError if data ends first."""
    end = offset + length
    if end > len(data):
        raise ValueError(f"Truncated data: need {end} bytes, got {len(data)}")
    return data[offset:end], end


# =============================================================================
# Transaction
# =============================================================================


@dataclass
class Transaction:
    """
    Signed, ordered batch of instructions.

    Attributes:
        instructions: Instructions executed in order
        nonce: 32 random bytes distinguishing otherwise equal transactions
        signatures: (public_key, signature) pairs over the message hash
    """
    instructions: List[Instruction]
    nonce: bytes = field(default_factory=lambda: secrets.token_bytes(32))
    signatures: List[Tuple[bytes, bytes]] = field(default_factory=list)

    def __post_init__(self):
        if not self.instructions:
            raise ValueError("Transaction must have at least one instruction")
        if len(self.instructions) > MAX_INSTRUCTIONS:
            raise ValueError("Too many instructions")
        if len(self.nonce) != 32:
            raise ValueError("nonce must be 32 bytes")

    # =========================================================================
    # Hashing & Signing
    # =========================================================================

    def compute_message_bytes(self) -> bytes:
        parts = [self.nonce, len(self.instructions).to_bytes(1, byteorder="big")]
        parts.extend(ix.to_bytes() for ix in self.instructions)
        return b"".join(parts)

    def compute_message_hash(self) -> bytes:
        """Hash every signer signs; also the transaction id."""
        return sha256(self.compute_message_bytes())

    @property
    def tx_hash(self) -> bytes:
        return self.compute_message_hash()

    def sign(self, keypair: KeyPair) -> "Transaction":
        """Add `keypair`'s signature. Returns self for chaining."""
        signature = sign(self.compute_message_hash(), keypair.private_key)
        self.signatures.append((keypair.public_key, signature))
        return self

    def signer_addresses(self) -> Set[bytes]:
        """
        Verify every signature and return the signing addresses.

        Raises:
            InvalidSignature: if any signature fails to verify
        """
        message_hash = self.compute_message_hash()
        signers = set()
        for i, (public_key, signature) in enumerate(self.signatures):
            if not verify(message_hash, signature, public_key):
                raise InvalidSignature(f"Signature {i} does not verify")
            signers.add(address_from_public_key(public_key))
        return signers

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_bytes(self) -> bytes:
        """
        Serialize transaction.

        Format: message || num_signatures(1) || (public_key(64) || signature(64))*
        """
        parts = [self.compute_message_bytes(), len(self.signatures).to_bytes(1, byteorder="big")]
        for public_key, signature in self.signatures:
            parts.append(public_key)
            parts.append(signature)
        return b"".join(parts)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Transaction":
        """
        Deserialize transaction.

        Raises:
            ValueError: if data is truncated or has trailing bytes
        """
        nonce, offset = _take(data, 0, 32)
        num_instructions, offset = _take(data, offset, 1)
        instructions = []
        for _ in range(num_instructions[0]):
            ix, offset = Instruction.read_from(data, offset)
            instructions.append(ix)

        num_signatures, offset = _take(data, offset, 1)
        signatures = []
        for _ in range(num_signatures[0]):
            public_key, offset = _take(data, offset, 64)
            signature, offset = _take(data, offset, 64)
            signatures.append((public_key, signature))

        if offset != len(data):
            raise ValueError(f"{len(data) - offset} trailing bytes after transaction")

        return cls(instructions=instructions, nonce=nonce, signatures=signatures)

    def __repr__(self) -> str:
        tx_id = bytes_to_hex(self.tx_hash)[:10] + "..."
        return f"Transaction(id={tx_id}, instructions={len(self.instructions)}, signatures={len(self.signatures)})"
