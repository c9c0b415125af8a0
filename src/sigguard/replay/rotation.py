"""Lamport commitment registry — verification with mandatory rotation.

Each principal has exactly one live commitment (pkh) and a counter. A
successful verification replaces the commitment with the ``nextPkh`` the
signer committed to and bumps the counter, in the same transaction that
accepted the signature. There is no code path that reports acceptance
without writing the rotation: the result object is only built after the
write is staged, and the write is applied when the transaction closes.

Replaying the same reveal afterwards fails, because the revealed public
key no longer hashes to the stored commitment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from sigguard.crypto.hashing import DomainHasher
from sigguard.crypto.lamport import public_key_hash, rotation_digest, verify_signed_hash
from sigguard.errors import InvalidSignature, MalformedInput, StoreCorruption
from sigguard.persistence.store import KeyValueStore, Transaction

logger = logging.getLogger(__name__)


LAMPORT_NAMESPACE = "lamport"


@dataclass(frozen=True)
class LamportCommitment:
    """The live one-time key commitment for a principal."""
    pkh: bytes
    counter: int


@dataclass(frozen=True)
class RotationResult:
    """Outcome of an accepted Lamport verification."""
    principal: str
    previous_pkh: bytes
    pkh: bytes
    counter: int


class LamportRegistry:
    """Holds Lamport commitments in a store and rotates them on use.

    The hasher fixes the contract and chain that every rotation digest is
    bound to; a reveal signed for another contract or chain fails here.
    """

    def __init__(self, store: KeyValueStore, hasher: DomainHasher) -> None:
        self._store = store
        self._hasher = hasher

    def enroll(self, principal: str, pkh: bytes) -> LamportCommitment:
        """Create the first commitment for *principal* (counter 0).

        Raises:
            MalformedInput: pkh is not 32 bytes.
            ValueError: principal already enrolled.
        """
        if len(pkh) != 32:
            raise MalformedInput("pkh must be 32 bytes")
        key = (LAMPORT_NAMESPACE, principal)
        with self._store.transaction() as txn:
            if txn.get(key) is not None:
                raise ValueError(f"Principal already enrolled: {principal}")
            commitment = LamportCommitment(pkh=pkh, counter=0)
            txn.put(key, commitment)
        logger.info("Lamport commitment enrolled for %s", principal)
        return commitment

    def commitment(self, principal: str) -> Optional[LamportCommitment]:
        return self._store.read((LAMPORT_NAMESPACE, principal))

    def verify_and_rotate(
        self,
        principal: str,
        message: bytes,
        current_public_key: Sequence[Sequence[bytes]],
        signature: Sequence[bytes],
        next_pkh: bytes,
    ) -> RotationResult:
        """Verify a one-time signature and rotate the commitment atomically.

        Raises:
            MalformedInput: bad key, signature or next_pkh encoding.
            InvalidSignature: unknown principal, stale commitment or bad reveal.
        """
        with self._store.transaction() as txn:
            result = self.rotate(txn, principal, message, current_public_key, signature, next_pkh)
        logger.info("Lamport commitment rotated for %s (counter=%d)", principal, result.counter)
        return result

    def rotate(
        self,
        txn: Transaction,
        principal: str,
        message: bytes,
        current_public_key: Sequence[Sequence[bytes]],
        signature: Sequence[bytes],
        next_pkh: bytes,
    ) -> RotationResult:
        """Same as ``verify_and_rotate`` inside a caller-owned transaction."""
        key = (LAMPORT_NAMESPACE, principal)
        state: Optional[LamportCommitment] = txn.get(key)
        if state is None:
            logger.warning("Lamport reveal for unenrolled principal %s", principal)
            raise InvalidSignature()
        if not isinstance(state, LamportCommitment) or state.counter < 0:
            raise StoreCorruption(f"Corrupt Lamport state for {principal}")

        if len(next_pkh) != 32:
            raise MalformedInput("next_pkh must be 32 bytes")
        # Checked against the revealed key before the live commitment is consulted.
        revealed_pkh = public_key_hash(current_public_key)
        if next_pkh == revealed_pkh:
            raise MalformedInput("next_pkh must differ from the revealed key")

        if revealed_pkh != state.pkh:
            logger.warning("Lamport reveal for %s does not match live commitment", principal)
            raise InvalidSignature()

        digest = rotation_digest(self._hasher, message, next_pkh, state.counter)
        if not verify_signed_hash(digest, signature, current_public_key):
            logger.warning("Lamport signature rejected for %s", principal)
            raise InvalidSignature()

        rotated = LamportCommitment(pkh=next_pkh, counter=state.counter + 1)
        txn.put(key, rotated)
        logger.debug("Lamport rotation staged for %s", principal)
        return RotationResult(
            principal=principal,
            previous_pkh=state.pkh,
            pkh=rotated.pkh,
            counter=rotated.counter,
        )
