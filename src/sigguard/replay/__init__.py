"""Replay protection — nonce counters, consumed digests, Lamport rotation."""

from sigguard.replay.registry import ConsumedSet, NonceRegistry
from sigguard.replay.rotation import LamportCommitment, LamportRegistry, RotationResult

__all__ = [
    "ConsumedSet",
    "NonceRegistry",
    "LamportCommitment",
    "LamportRegistry",
    "RotationResult",
]
