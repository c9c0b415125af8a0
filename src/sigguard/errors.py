"""Error taxonomy for authorization failures.

Every error here is terminal for the input that produced it. Retrying the
same input yields the same error; recovery means resubmitting with a
corrected nonce or a freshly rotated key.
"""

from __future__ import annotations


class AuthorizationError(Exception):
    """Base class for all rejections raised by this package."""


class MalformedInput(AuthorizationError):
    """Bad encoding or length, rejected before any cryptographic work."""


class InvalidSignature(AuthorizationError):
    """Generic cryptographic failure.

    The message is deliberately uniform so callers cannot learn which
    internal check failed.
    """

    def __init__(self, message: str = "signature verification failed") -> None:
        super().__init__(message)


class ZeroAddress(InvalidSignature):
    """Recovery produced the zero-address sentinel."""


class MalleableSignature(AuthorizationError):
    """ECDSA ``s`` lies in the upper half of the curve order."""


class StaleOrReusedNonce(AuthorizationError):
    """Nonce does not match the stored counter, or a digest was already consumed."""


class InvalidKeyMaterial(AuthorizationError):
    """Public key fails the curve or range precondition."""


class DomainMismatch(AuthorizationError):
    """Chain or contract binding does not match the verification context."""


class StoreCorruption(RuntimeError):
    """Stored state violates an invariant (e.g. a counter went backwards)."""
