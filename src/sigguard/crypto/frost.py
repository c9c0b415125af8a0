"""FROST threshold Schnorr verification over secp256k1.

A FROST group signature is an ordinary Schnorr signature (R, z) under the
group public key P, so verification does not depend on the threshold:

    e  = keccak256(TAG ‖ R.x ‖ R.y ‖ P.x ‖ P.y ‖ message) mod N
    R' = z·G + (N - e)·P
    accept iff R' == R

R' is computed by direct scalar multiplication on the curve rather than
by abusing an ECDSA-recovery primitive. The ``P.x < N`` key rule that the
recovery trick needs is kept as a registration policy (on by default) so
keys accepted here stay usable by verifiers that still rely on the trick.

Transcript layout is fixed by ``TRANSCRIPT_TAG``. Any change to the field
order must ship under a new tag.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ecdsa import SECP256k1
from ecdsa.ellipticcurve import INFINITY, Point, PointJacobi
from eth_utils import keccak

from sigguard.errors import InvalidKeyMaterial, MalformedInput

logger = logging.getLogger(__name__)


CURVE = SECP256k1.curve
N = SECP256k1.order
G = SECP256k1.generator
FIELD_PRIME = CURVE.p()

TRANSCRIPT_TAG = b"sigguard/frost-secp256k1-keccak256/v1"

# Verify-input layout, adapted from the on-chain precompile:
# [0:4] threshold t | [4:8] signers n | [8:72] P | [72:104] message | [104:200] R ‖ z
THRESHOLD_SIZE = 4
SIGNERS_SIZE = 4
WORD = 32
VERIFY_INPUT_SIZE = THRESHOLD_SIZE + SIGNERS_SIZE + 2 * WORD + WORD + 3 * WORD

RESULT_VALID = (1).to_bytes(32, "big")
RESULT_INVALID = bytes(32)


@dataclass(frozen=True)
class FrostPublicKey:
    """Group public key as affine coordinates."""
    px: int
    py: int

    def to_bytes(self) -> bytes:
        return _word(self.px) + _word(self.py)


@dataclass(frozen=True)
class FrostSignature:
    """Schnorr signature: commitment point R and response scalar z."""
    rx: int
    ry: int
    z: int


@dataclass(frozen=True)
class FrostVerifyInput:
    """Decoded precompile-style verification request."""
    threshold: int
    total_signers: int
    public_key: FrostPublicKey
    message: bytes
    signature: FrostSignature


def _word(value: int) -> bytes:
    return value.to_bytes(WORD, "big")


def _on_curve(x: int, y: int) -> bool:
    return 0 <= x < FIELD_PRIME and 0 <= y < FIELD_PRIME and CURVE.contains_point(x, y)


def challenge(signature: FrostSignature, public_key: FrostPublicKey, message: bytes) -> int:
    """Compute the Schnorr challenge scalar for the v1 transcript."""
    transcript = (
        TRANSCRIPT_TAG
        + _word(signature.rx)
        + _word(signature.ry)
        + public_key.to_bytes()
        + message
    )
    return int.from_bytes(keccak(transcript), "big") % N


class FrostVerifier:
    """Verifies FROST group signatures.

    Parameters (via *config* dict):
        require_x_below_order : bool — enforce P.x < N on keys (default True)
    """

    def __init__(self, config: Optional[dict] = None) -> None:
        config = config or {}
        self._require_x_below_order: bool = config.get("require_x_below_order", True)

    def is_valid_public_key(self, public_key: FrostPublicKey) -> bool:
        """On-curve, non-identity, and (by policy) P.x < N."""
        # The identity has no affine form, so any on-curve (x, y) is non-identity.
        if not _on_curve(public_key.px, public_key.py):
            return False
        if self._require_x_below_order and public_key.px >= N:
            return False
        return True

    def require_valid_public_key(self, public_key: FrostPublicKey) -> None:
        if not self.is_valid_public_key(public_key):
            raise InvalidKeyMaterial("FROST public key fails curve or range precondition")

    def verify(
        self,
        public_key: FrostPublicKey,
        message: bytes,
        signature: FrostSignature,
    ) -> bool:
        """Strict boolean verification of (R, z) over *message*."""
        if not self.is_valid_public_key(public_key):
            return False
        if not _on_curve(signature.rx, signature.ry):
            return False
        if not 0 < signature.z < N:
            return False

        e = challenge(signature, public_key, message)
        p_point = PointJacobi.from_affine(Point(CURVE, public_key.px, public_key.py, N))
        recomputed = G.mul_add(signature.z, p_point, (N - e) % N)
        if recomputed == INFINITY:
            return False
        affine = recomputed.to_affine()
        return affine.x() == signature.rx and affine.y() == signature.ry

    def verify_input(self, data: bytes) -> bytes:
        """Verify a packed request; returns a 32-byte result word.

        Raises:
            MalformedInput: wrong length or threshold outside (0, n].
        """
        request = decode_verify_input(data)
        valid = self.verify(request.public_key, request.message, request.signature)
        logger.debug(
            "FROST %d-of-%d verification: %s",
            request.threshold, request.total_signers, "valid" if valid else "invalid",
        )
        return RESULT_VALID if valid else RESULT_INVALID


def decode_verify_input(data: bytes) -> FrostVerifyInput:
    """Split a packed FROST verification request into fields."""
    if len(data) != VERIFY_INPUT_SIZE:
        raise MalformedInput(
            f"FROST input must be {VERIFY_INPUT_SIZE} bytes, got {len(data)}"
        )
    threshold = int.from_bytes(data[0:4], "big")
    total_signers = int.from_bytes(data[4:8], "big")
    if threshold == 0 or threshold > total_signers:
        raise MalformedInput("invalid threshold: t must be > 0 and <= n")

    words = [int.from_bytes(data[i:i + WORD], "big") for i in range(8, 72, WORD)]
    message = data[72:104]
    rx, ry, z = (int.from_bytes(data[i:i + WORD], "big") for i in range(104, 200, WORD))

    return FrostVerifyInput(
        threshold=threshold,
        total_signers=total_signers,
        public_key=FrostPublicKey(px=words[0], py=words[1]),
        message=message,
        signature=FrostSignature(rx=rx, ry=ry, z=z),
    )


def encode_verify_input(
    threshold: int,
    total_signers: int,
    public_key: FrostPublicKey,
    message: bytes,
    signature: FrostSignature,
) -> bytes:
    if len(message) != WORD:
        raise MalformedInput("message must be a 32-byte digest")
    return (
        threshold.to_bytes(THRESHOLD_SIZE, "big")
        + total_signers.to_bytes(SIGNERS_SIZE, "big")
        + public_key.to_bytes()
        + message
        + _word(signature.rx)
        + _word(signature.ry)
        + _word(signature.z)
    )


class FrostKeyRegistry:
    """Read-only view of provisioned group keys.

    Validity is enforced when a key is registered, not deferred to
    verification time.
    """

    def __init__(self, verifier: FrostVerifier) -> None:
        self._verifier = verifier
        self._keys: dict[str, FrostPublicKey] = {}

    def register(self, key_id: str, public_key: FrostPublicKey) -> None:
        """Register a group key.

        Raises:
            InvalidKeyMaterial: key fails the validity check.
            ValueError: key_id already registered.
        """
        self._verifier.require_valid_public_key(public_key)
        if key_id in self._keys:
            raise ValueError(f"Duplicate key ID: {key_id}")
        self._keys[key_id] = public_key

    def get(self, key_id: str) -> FrostPublicKey:
        key = self._keys.get(key_id)
        if key is None:
            raise KeyError(f"Unknown FROST key: {key_id}")
        return key

    def __contains__(self, key_id: object) -> bool:
        return key_id in self._keys
