"""ECDSA recovery guard for secp256k1 recoverable signatures.

Canonicalizes raw (r, s, v) signatures before recovery:
- ``s`` must lie in the lower half of the curve order (no malleable twin).
- The recovered principal must not be the zero address.

Pure predicate: nothing here touches replay state. Replay keys are derived
from message digests elsewhere, never from signature bytes.
"""

from __future__ import annotations

from eth_keys import keys
from eth_keys.constants import SECPK1_N
from eth_keys.exceptions import BadSignature, ValidationError

from sigguard.errors import InvalidSignature, MalformedInput, MalleableSignature, ZeroAddress


HALF_N = SECPK1_N // 2

ZERO_ADDRESS = "0x" + "00" * 20

SIGNATURE_LENGTH = 65


def normalize_v(v: int) -> int:
    """Map legacy 27/28 recovery ids to 0/1."""
    if v in (0, 1):
        return v
    if v in (27, 28):
        return v - 27
    raise MalformedInput(f"Invalid recovery id: {v}")


def split_signature(signature: bytes) -> tuple[int, int, int]:
    """Split a 65-byte ``r ‖ s ‖ v`` encoding into integers."""
    if len(signature) != SIGNATURE_LENGTH:
        raise MalformedInput(
            f"ECDSA signature must be {SIGNATURE_LENGTH} bytes, got {len(signature)}"
        )
    r = int.from_bytes(signature[0:32], "big")
    s = int.from_bytes(signature[32:64], "big")
    v = signature[64]
    return r, s, v


def is_low_s(s: int) -> bool:
    return 0 < s <= HALF_N


def recover(digest: bytes, r: int, s: int, v: int) -> str:
    """Recover the signer's checksummed address.

    Raises:
        MalformedInput: digest is not 32 bytes, or r/s/v out of range.
        MalleableSignature: s is above half the curve order.
        ZeroAddress: recovery yielded the zero-address sentinel.
        InvalidSignature: the curve primitive rejected the signature.
    """
    if len(digest) != 32:
        raise MalformedInput(f"Digest must be 32 bytes, got {len(digest)}")
    recovery_id = normalize_v(v)
    if not 0 < r < SECPK1_N:
        raise MalformedInput("r out of range")
    if not 0 < s < SECPK1_N:
        raise MalformedInput("s out of range")
    if s > HALF_N:
        raise MalleableSignature("s is in the upper half of the curve order")

    try:
        signature = keys.Signature(vrs=(recovery_id, r, s))
        public_key = signature.recover_public_key_from_msg_hash(digest)
    except (BadSignature, ValidationError) as exc:
        raise InvalidSignature() from exc

    principal = public_key.to_checksum_address()
    if principal == ZERO_ADDRESS:
        raise ZeroAddress()
    return principal


def recover_from_bytes(digest: bytes, signature: bytes) -> str:
    """Recover from a packed 65-byte signature."""
    r, s, v = split_signature(signature)
    return recover(digest, r, s, v)
