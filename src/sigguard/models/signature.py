"""Signature records — a tagged variant over the three supported schemes.

Each payload type knows how to authenticate itself against a digest and
return the principal it proves. Dispatch is by payload type, never by
inspecting raw bytes at runtime.

Raw encodings handled by ``decode_signature``:

    ECDSA    r(32) ‖ s(32) ‖ v(1)                         65 bytes
    FROST    R.x(32) ‖ R.y(32) ‖ z(32)                    96 bytes
    LAMPORT  public key(256×2×32) ‖ reveal(256×32) ‖ nextPkh(32)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import ClassVar, Optional, Union

from sigguard.crypto import ecdsa_guard, lamport
from sigguard.crypto.frost import FrostKeyRegistry, FrostSignature, FrostVerifier
from sigguard.errors import InvalidKeyMaterial, InvalidSignature, MalformedInput
from sigguard.persistence.store import Transaction
from sigguard.replay.rotation import LamportRegistry, RotationResult


class SchemeTag(str, enum.Enum):
    """Signature scheme identifiers."""
    ECDSA = "ecdsa"
    FROST = "frost"
    LAMPORT = "lamport"


FROST_PRINCIPAL_PREFIX = "frost:"
LAMPORT_PAYLOAD_SIZE = lamport.KEY_BITS * 2 * 32 + lamport.KEY_BITS * 32 + 32


@dataclass(frozen=True)
class VerificationContext:
    """Read-only collaborators a payload needs to authenticate."""
    frost_verifier: FrostVerifier = field(default_factory=FrostVerifier)
    frost_keys: Optional[FrostKeyRegistry] = None
    lamport_registry: Optional[LamportRegistry] = None


@dataclass(frozen=True)
class Verified:
    """A principal proven by a payload, plus any staged rotation."""
    principal: str
    rotation: Optional[RotationResult] = None


# ---------------------------------------------------------------------------
# Payload variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EcdsaPayload:
    r: int
    s: int
    v: int

    scheme: ClassVar[SchemeTag] = SchemeTag.ECDSA

    def authenticate(
        self, digest: bytes, context: VerificationContext, txn: Transaction
    ) -> Verified:
        return Verified(principal=ecdsa_guard.recover(digest, self.r, self.s, self.v))


@dataclass(frozen=True)
class FrostPayload:
    key_id: str
    signature: FrostSignature

    scheme: ClassVar[SchemeTag] = SchemeTag.FROST

    def authenticate(
        self, digest: bytes, context: VerificationContext, txn: Transaction
    ) -> Verified:
        if context.frost_keys is None:
            raise RuntimeError("No FROST key registry configured")
        if self.key_id not in context.frost_keys:
            raise InvalidKeyMaterial(f"Unknown FROST key: {self.key_id}")
        public_key = context.frost_keys.get(self.key_id)
        if not context.frost_verifier.verify(public_key, digest, self.signature):
            raise InvalidSignature()
        return Verified(principal=f"{FROST_PRINCIPAL_PREFIX}{self.key_id}")


@dataclass(frozen=True)
class LamportPayload:
    principal: str
    public_key: lamport.PublicKey
    reveal: lamport.Signature
    next_pkh: bytes

    scheme: ClassVar[SchemeTag] = SchemeTag.LAMPORT

    def authenticate(
        self, digest: bytes, context: VerificationContext, txn: Transaction
    ) -> Verified:
        if context.lamport_registry is None:
            raise RuntimeError("No Lamport registry configured")
        rotation = context.lamport_registry.rotate(
            txn, self.principal, digest, self.public_key, self.reveal, self.next_pkh
        )
        return Verified(principal=self.principal, rotation=rotation)


Payload = Union[EcdsaPayload, FrostPayload, LamportPayload]


@dataclass(frozen=True)
class SignatureRecord:
    """Scheme tag, parsed payload and the canonical digest it signs."""
    scheme: SchemeTag
    payload: Payload
    digest: bytes

    def __post_init__(self) -> None:
        if len(self.digest) != 32:
            raise MalformedInput(f"Digest must be 32 bytes, got {len(self.digest)}")
        if self.payload.scheme is not self.scheme:
            raise MalformedInput(
                f"Payload {type(self.payload).__name__} does not match scheme {self.scheme.value}"
            )


# ---------------------------------------------------------------------------
# Raw decoding
# ---------------------------------------------------------------------------

def decode_signature(
    scheme: SchemeTag,
    raw: bytes,
    *,
    key_id: Optional[str] = None,
    principal: Optional[str] = None,
) -> Payload:
    """Split a raw signature encoding into a scheme payload.

    Raises:
        MalformedInput: wrong length, or missing key_id / principal.
    """
    if scheme is SchemeTag.ECDSA:
        r, s, v = ecdsa_guard.split_signature(raw)
        return EcdsaPayload(r=r, s=s, v=v)

    if scheme is SchemeTag.FROST:
        if key_id is None:
            raise MalformedInput("FROST signatures need a key_id")
        if len(raw) != 96:
            raise MalformedInput(f"FROST signature must be 96 bytes, got {len(raw)}")
        rx, ry, z = (int.from_bytes(raw[i:i + 32], "big") for i in range(0, 96, 32))
        return FrostPayload(key_id=key_id, signature=FrostSignature(rx=rx, ry=ry, z=z))

    if scheme is SchemeTag.LAMPORT:
        if principal is None:
            raise MalformedInput("Lamport signatures need a principal")
        if len(raw) != LAMPORT_PAYLOAD_SIZE:
            raise MalformedInput(
                f"Lamport payload must be {LAMPORT_PAYLOAD_SIZE} bytes, got {len(raw)}"
            )
        pub_end = lamport.KEY_BITS * 2 * 32
        sig_end = pub_end + lamport.KEY_BITS * 32
        return LamportPayload(
            principal=principal,
            public_key=lamport.decode_public_key(raw[:pub_end]),
            reveal=lamport.decode_signature(raw[pub_end:sig_end]),
            next_pkh=raw[sig_end:],
        )

    raise MalformedInput(f"Unknown scheme: {scheme!r}")


def encode_lamport_payload(
    public_key: lamport.PublicKey,
    reveal: lamport.Signature,
    next_pkh: bytes,
) -> bytes:
    return lamport.encode_public_key(public_key) + lamport.encode_signature(reveal) + next_pkh
