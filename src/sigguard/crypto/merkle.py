"""Domain-separated Merkle tree and inclusion-proof verification.

Uses Keccak-256 with a one-byte role prefix:

    leaf  = keccak256(0x00 ‖ data)
    node  = keccak256(0x01 ‖ left ‖ right)

A leaf can therefore never be mistaken for an internal node, which closes
the classic second-preimage forgery where an attacker presents the 64-byte
concatenation of two children as a "leaf".

Unlike a sorted-pair tree, leaf order is preserved: the root commits to an
append-only sequence, and proofs carry explicit path bits.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from eth_utils import keccak


LEAF_PREFIX = b"\x00"
NODE_PREFIX = b"\x01"

EMPTY_ROOT = keccak(b"")


@dataclass(frozen=True)
class MerkleProof:
    """An inclusion proof for a single leaf.

    ``path_bits[i]`` is 1 when ``siblings[i]`` sits on the left of the
    running hash, 0 when it sits on the right.
    """
    leaf_index: int
    siblings: tuple[bytes, ...]
    path_bits: tuple[int, ...]
    root: bytes


def leaf_hash(data: bytes) -> bytes:
    """Hash raw leaf data under the leaf domain."""
    return keccak(LEAF_PREFIX + data)


def node_hash(left: bytes, right: bytes) -> bytes:
    """Hash two children under the internal-node domain."""
    return keccak(NODE_PREFIX + left + right)


def verify(
    leaf: bytes,
    proof: Sequence[bytes],
    path_bits: Sequence[int],
    root: bytes,
) -> bool:
    """Check that raw *leaf* data is included under *root*.

    A structurally valid proof that does not reach *root* returns False.
    Inconsistent lengths also return False; this function never raises
    for a non-matching proof.
    """
    if len(proof) != len(path_bits):
        return False
    if len(root) != 32:
        return False

    current = leaf_hash(leaf)
    for sibling, bit in zip(proof, path_bits):
        if len(sibling) != 32 or bit not in (0, 1):
            return False
        if bit:
            current = node_hash(sibling, current)
        else:
            current = node_hash(current, sibling)
    return current == root


class MerkleTree:
    """A deterministic, order-preserving Merkle tree.

    Usage:
        tree = MerkleTree()
        tree.add_leaf(b"order-1")
        tree.add_leaf(b"order-2")
        root = tree.compute_root()
        proof = tree.inclusion_proof(0)
    """

    def __init__(self) -> None:
        self._leaves: list[bytes] = []
        self._tree: list[list[bytes]] = []
        self._computed = False

    def add_leaf(self, data: bytes) -> int:
        """Append raw leaf data. Returns the leaf index."""
        if self._computed:
            raise RuntimeError("Tree already computed. Create a new tree.")
        self._leaves.append(bytes(data))
        return len(self._leaves) - 1

    @property
    def leaf_count(self) -> int:
        return len(self._leaves)

    def compute_root(self) -> bytes:
        """Compute the Merkle root.

        An unpaired node at the end of a level moves up unchanged; it is
        never hashed with itself, so ``[a, b, c]`` and ``[a, b, c, c]``
        have different roots. With no leaves, returns keccak256 of the
        empty string.
        """
        if not self._leaves:
            self._computed = True
            self._tree = []
            return EMPTY_ROOT

        current_level = [leaf_hash(d) for d in self._leaves]
        self._tree = [current_level]

        while len(current_level) > 1:
            next_level: list[bytes] = []
            for i in range(0, len(current_level), 2):
                if i + 1 < len(current_level):
                    next_level.append(node_hash(current_level[i], current_level[i + 1]))
                else:
                    next_level.append(current_level[i])
            self._tree.append(next_level)
            current_level = next_level

        self._computed = True
        return current_level[0]

    def inclusion_proof(self, index: int) -> MerkleProof:
        """Generate an inclusion proof for the leaf at *index*.

        Must call compute_root first.
        """
        if not self._computed:
            raise RuntimeError("Must call compute_root before generating proofs")
        if not 0 <= index < len(self._leaves):
            raise IndexError(f"Leaf index {index} out of range")

        siblings: list[bytes] = []
        bits: list[int] = []
        current_idx = index
        for level in self._tree[:-1]:
            if current_idx % 2 == 0:
                sibling_idx = current_idx + 1
                # The last node of an odd level is promoted without a sibling.
                if sibling_idx < len(level):
                    siblings.append(level[sibling_idx])
                    bits.append(0)
            else:
                siblings.append(level[current_idx - 1])
                bits.append(1)
            current_idx //= 2

        return MerkleProof(
            leaf_index=index,
            siblings=tuple(siblings),
            path_bits=tuple(bits),
            root=self._tree[-1][0],
        )
