"""Key-value store handle for replay and rotation state.

Registries never keep state of their own: they receive a store handle and
do all reads and writes through a transaction. A transaction stages its
writes and applies them only if its block exits without an exception, so a
verification and its side effect commit together or not at all.

``InMemoryStore`` serializes transactions with a lock. Other backends can
implement the same ``transaction()`` contract.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Hashable, Iterator, Optional, Protocol


class Transaction:
    """Staged view over committed data."""

    def __init__(self, committed: dict[Hashable, Any]) -> None:
        self._committed = committed
        self._writes: dict[Hashable, Any] = {}
        self._closed = False

    def get(self, key: Hashable, default: Any = None) -> Any:
        self._require_open()
        if key in self._writes:
            return self._writes[key]
        return self._committed.get(key, default)

    def put(self, key: Hashable, value: Any) -> None:
        self._require_open()
        self._writes[key] = value

    @property
    def pending(self) -> dict[Hashable, Any]:
        return dict(self._writes)

    def _require_open(self) -> None:
        if self._closed:
            raise RuntimeError("Transaction already closed")


class KeyValueStore(Protocol):
    def transaction(self) -> Any: ...

    def read(self, key: Hashable, default: Any = None) -> Any: ...


class InMemoryStore:
    """Process-local store with all-or-nothing transactions.

    Usage:
        store = InMemoryStore()
        with store.transaction() as txn:
            txn.put(("nonce", "0xabc"), 1)
    """

    def __init__(self) -> None:
        self._data: dict[Hashable, Any] = {}
        self._lock = threading.RLock()
        self._active = False

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        with self._lock:
            if self._active:
                raise RuntimeError("Nested transactions are not supported")
            self._active = True
            txn = Transaction(self._data)
            try:
                yield txn
                self._data.update(txn._writes)
            finally:
                txn._closed = True
                self._active = False

    def read(self, key: Hashable, default: Optional[Any] = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
