"""Cryptographic primitives — hashing, Merkle proofs, ECDSA, FROST, Lamport."""

from sigguard.crypto.hashing import DomainHasher, DomainSeparator, StructSchema
from sigguard.crypto.merkle import MerkleTree
from sigguard.crypto.frost import FrostKeyRegistry, FrostPublicKey, FrostSignature, FrostVerifier

__all__ = [
    "DomainHasher",
    "DomainSeparator",
    "StructSchema",
    "MerkleTree",
    "FrostKeyRegistry",
    "FrostPublicKey",
    "FrostSignature",
    "FrostVerifier",
]
