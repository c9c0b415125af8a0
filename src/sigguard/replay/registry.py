"""Nonce registry and content-addressed consumed-set.

Two replay-protection styles:

1. ``NonceRegistry`` — per-principal monotonic counters. A supplied nonce
   is accepted iff it equals the stored counter; the counter then
   advances by one. Checking and advancing are separate calls: ``check``
   never writes, ``commit`` only runs after a passed check inside the same
   transaction. A failed verification therefore cannot move a counter.

2. ``ConsumedSet`` — for orders and intents that carry no counter. The
   key is a 32-byte digest of canonical fields, never signature bytes, so
   malleable variants of one signature map to the same entry.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from sigguard.crypto.hashing import DomainHasher, StructSchema
from sigguard.errors import MalformedInput, StaleOrReusedNonce, StoreCorruption
from sigguard.persistence.store import KeyValueStore, Transaction

logger = logging.getLogger(__name__)


NONCE_NAMESPACE = "nonce"
CONSUMED_NAMESPACE = "consumed"


class NonceRegistry:
    """Per-principal monotonic counters, default 0."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def current(self, principal: str) -> int:
        """The next nonce *principal* must supply."""
        return self._store.read((NONCE_NAMESPACE, principal), 0)

    @staticmethod
    def check(txn: Transaction, principal: str, supplied_nonce: int) -> int:
        """Pure comparison against the stored counter. Returns the counter.

        Raises:
            MalformedInput: nonce is not a non-negative int.
            StaleOrReusedNonce: nonce differs from the stored counter.
        """
        if isinstance(supplied_nonce, bool) or not isinstance(supplied_nonce, int):
            raise MalformedInput("Nonce must be an int")
        if supplied_nonce < 0:
            raise MalformedInput("Nonce must be non-negative")

        stored = txn.get((NONCE_NAMESPACE, principal), 0)
        if supplied_nonce != stored:
            raise StaleOrReusedNonce(
                f"Nonce {supplied_nonce} rejected for {principal}: expected {stored}"
            )
        return stored

    @staticmethod
    def commit(txn: Transaction, principal: str, checked_nonce: int) -> int:
        """Advance the counter past *checked_nonce*. Returns the new value.

        Raises:
            StoreCorruption: the counter moved between check and commit.
        """
        key = (NONCE_NAMESPACE, principal)
        stored = txn.get(key, 0)
        if stored != checked_nonce:
            raise StoreCorruption(
                f"Nonce for {principal} changed between check and commit"
            )
        new_value = stored + 1
        txn.put(key, new_value)
        return new_value

    def consume(self, principal: str, supplied_nonce: int) -> int:
        """Check and advance atomically. Returns the new counter value."""
        with self._store.transaction() as txn:
            checked = self.check(txn, principal, supplied_nonce)
            new_value = self.commit(txn, principal, checked)
        logger.debug("Nonce %d consumed for %s", supplied_nonce, principal)
        return new_value


class ConsumedSet:
    """Idempotent set of consumed content digests, grouped by namespace."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    @staticmethod
    def order_key(
        hasher: DomainHasher,
        schema: StructSchema,
        fields: Mapping[str, Any],
    ) -> bytes:
        """Replay key for an order or intent: its domain-separated digest."""
        return hasher.digest(schema, fields)

    def is_consumed(self, namespace: str, key: bytes) -> bool:
        return bool(self._store.read((CONSUMED_NAMESPACE, namespace, key), False))

    @staticmethod
    def check(txn: Transaction, namespace: str, key: bytes) -> None:
        if len(key) != 32:
            raise MalformedInput("Consumed-set keys must be 32-byte digests")
        if txn.get((CONSUMED_NAMESPACE, namespace, key), False):
            raise StaleOrReusedNonce(f"Digest {key.hex()} already consumed in {namespace}")

    @staticmethod
    def commit(txn: Transaction, namespace: str, key: bytes) -> None:
        txn.put((CONSUMED_NAMESPACE, namespace, key), True)

    def consume(self, namespace: str, key: bytes) -> None:
        """Mark *key* consumed; a second call raises StaleOrReusedNonce."""
        with self._store.transaction() as txn:
            self.check(txn, namespace, key)
            self.commit(txn, namespace, key)
        logger.debug("Digest %s consumed in %s", key.hex(), namespace)
