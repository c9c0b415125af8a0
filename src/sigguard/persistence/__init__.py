"""State handles for replay and rotation registries."""

from sigguard.persistence.store import InMemoryStore, KeyValueStore, Transaction

__all__ = ["InMemoryStore", "KeyValueStore", "Transaction"]
