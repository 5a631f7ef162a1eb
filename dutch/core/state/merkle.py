"""
State tree - a Merkle commitment to every token account.

Leaves are account commitments ordered by account address, so the root
depends only on the account set, never on the order in which accounts
were touched. The tree is rebuilt from scratch when a root is requested
after a change; accounts change in place (balances go up and down), so an
append-only structure does not fit.

Proofs are lists of (sibling_hash, sibling_is_right) pairs from leaf to
root; odd layers are padded with EMPTY_LEAF.
"""

from typing import Dict, List, Optional, Tuple

from dutch.crypto import sha256

EMPTY_LEAF = bytes(32)

Proof = List[Tuple[bytes, bool]]


def hash_pair(left: bytes, right: bytes) -> bytes:
    return sha256(left + right)


def _next_layer(layer: List[bytes]) -> List[bytes]:
    if len(layer) % 2:
        layer = layer + [EMPTY_LEAF]
    return [hash_pair(layer[i], layer[i + 1]) for i in range(0, len(layer), 2)]


class StateTree:
    """
    Merkle tree over (address -> commitment) entries.

    Usage:
        tree = StateTree()
        tree.update(address, commitment)
        root = tree.root()
        proof = tree.prove(address)
        assert StateTree.verify(commitment, proof, root)
    """

    def __init__(self):
        self._leaves: Dict[bytes, bytes] = {}
        self._root_cache: Optional[bytes] = None

    def update(self, key: bytes, commitment: bytes) -> None:
        """Insert or replace the commitment stored under `key`."""
        if len(commitment) != 32:
            raise ValueError("Commitment must be 32 bytes")
        self._leaves[key] = commitment
        self._root_cache = None

    def _ordered(self) -> List[bytes]:
        return [self._leaves[k] for k in sorted(self._leaves)]

    def root(self) -> bytes:
        """32-byte root; EMPTY_LEAF for an empty tree."""
        if self._root_cache is None:
            layer = self._ordered()
            if not layer:
                return EMPTY_LEAF
            while len(layer) > 1:
                layer = _next_layer(layer)
            self._root_cache = layer[0]
        return self._root_cache

    def prove(self, key: bytes) -> Proof:
        """Inclusion proof for the leaf stored under `key`."""
        if key not in self._leaves:
            raise KeyError("No leaf for key")

        index = sorted(self._leaves).index(key)
        layer = self._ordered()
        proof = []
        while len(layer) > 1:
            if len(layer) % 2:
                layer = layer + [EMPTY_LEAF]
            sibling = index ^ 1
            proof.append((layer[sibling], sibling > index))
            layer = _next_layer(layer)
            index //= 2
        return proof

    @staticmethod
    def verify(leaf: bytes, proof: Proof, root: bytes) -> bool:
        """Check that `leaf` is included under `root`."""
        current = leaf
        for sibling, is_right in proof:
            current = hash_pair(current, sibling) if is_right else hash_pair(sibling, current)
        return current == root

    def __len__(self) -> int:
        return len(self._leaves)

    def __contains__(self, key: bytes) -> bool:
        return key in self._leaves
