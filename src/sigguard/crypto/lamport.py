"""Lamport one-time signatures over Keccak-256.

A key is 256 pairs of 32-byte secrets, one pair per digest bit. The public
key holds the hash of each secret; its commitment (pkh) is the hash of the
packed ``bytes32[2][256]`` public key. Signing a digest reveals, for each
bit (most significant first), the secret selected by that bit.

A key is safe to use exactly once. Rotation to the next commitment is
enforced by ``sigguard.replay.rotation.LamportRegistry``; this module is
pure and stateless apart from ``KeyTracker``, the signer-side key chain.
"""

from __future__ import annotations

import json
import secrets
from pathlib import Path
from typing import Sequence

from eth_utils import keccak

from sigguard.crypto.hashing import DomainHasher, StructSchema
from sigguard.errors import MalformedInput


KEY_BITS = 256
WORD = 32

PublicKey = tuple[tuple[bytes, bytes], ...]
PrivateKey = tuple[tuple[bytes, bytes], ...]
Signature = tuple[bytes, ...]

ROTATION_SCHEMA = StructSchema(
    name="LamportRotation",
    fields=(
        ("bytes", "message"),
        ("bytes32", "nextPkh"),
        ("uint256", "counter"),
    ),
)


# ---------------------------------------------------------------------------
# Keys and signatures
# ---------------------------------------------------------------------------

def _random_secret() -> bytes:
    # Hash the raw randomness once so a weak RNG output is never revealed directly.
    return keccak(secrets.token_bytes(32))


def public_from_private(private_key: PrivateKey) -> PublicKey:
    return tuple((keccak(a), keccak(b)) for a, b in private_key)


def generate_keypair() -> tuple[PrivateKey, PublicKey]:
    """Generate a fresh one-time key pair."""
    private_key = tuple((_random_secret(), _random_secret()) for _ in range(KEY_BITS))
    return private_key, public_from_private(private_key)


def digest_bits(digest: bytes) -> list[int]:
    """The 256 bits of *digest*, most significant first."""
    if len(digest) != WORD:
        raise MalformedInput(f"Digest must be {WORD} bytes, got {len(digest)}")
    value = int.from_bytes(digest, "big")
    return [(value >> (KEY_BITS - 1 - i)) & 1 for i in range(KEY_BITS)]


def _check_public_key(public_key: Sequence[Sequence[bytes]]) -> None:
    if len(public_key) != KEY_BITS:
        raise MalformedInput(f"Lamport public key must have {KEY_BITS} pairs")
    for pair in public_key:
        if len(pair) != 2 or any(len(half) != WORD for half in pair):
            raise MalformedInput("Lamport public key halves must be 32 bytes")


def public_key_hash(public_key: Sequence[Sequence[bytes]]) -> bytes:
    """Commitment over the packed public key."""
    _check_public_key(public_key)
    return keccak(b"".join(half for pair in public_key for half in pair))


def sign_hash(digest: bytes, private_key: PrivateKey) -> Signature:
    """Reveal one secret per digest bit."""
    if len(private_key) != KEY_BITS:
        raise ValueError("invalid private key")
    return tuple(private_key[i][bit] for i, bit in enumerate(digest_bits(digest)))


def verify_signed_hash(
    digest: bytes,
    signature: Sequence[bytes],
    public_key: Sequence[Sequence[bytes]],
) -> bool:
    """Check every revealed preimage against the public half chosen by its bit.

    Runs over all 256 positions regardless of where a mismatch occurs.
    """
    _check_public_key(public_key)
    if len(signature) != KEY_BITS:
        return False
    ok = True
    for i, bit in enumerate(digest_bits(digest)):
        preimage = signature[i]
        if len(preimage) != WORD:
            ok = False
            continue
        if keccak(preimage) != public_key[i][bit]:
            ok = False
    return ok


def rotation_digest(
    hasher: DomainHasher,
    message: bytes,
    next_pkh: bytes,
    counter: int,
) -> bytes:
    """Digest a Lamport key signs: message, next commitment and counter,
    bound to the hasher's contract and chain."""
    return hasher.digest(
        ROTATION_SCHEMA,
        {"message": message, "nextPkh": next_pkh, "counter": counter},
    )


# ---------------------------------------------------------------------------
# Raw encodings
# ---------------------------------------------------------------------------

def encode_public_key(public_key: PublicKey) -> bytes:
    _check_public_key(public_key)
    return b"".join(half for pair in public_key for half in pair)


def decode_public_key(raw: bytes) -> PublicKey:
    if len(raw) != KEY_BITS * 2 * WORD:
        raise MalformedInput(f"Lamport public key must be {KEY_BITS * 2 * WORD} bytes")
    words = [raw[i:i + WORD] for i in range(0, len(raw), WORD)]
    return tuple((words[2 * i], words[2 * i + 1]) for i in range(KEY_BITS))


def encode_signature(signature: Signature) -> bytes:
    return b"".join(signature)


def decode_signature(raw: bytes) -> Signature:
    if len(raw) != KEY_BITS * WORD:
        raise MalformedInput(f"Lamport signature must be {KEY_BITS * WORD} bytes")
    return tuple(raw[i:i + WORD] for i in range(0, len(raw), WORD))


# ---------------------------------------------------------------------------
# Signer-side key chain
# ---------------------------------------------------------------------------

class KeyTracker:
    """Signer-side chain of one-time key pairs.

    Usage:
        tracker = KeyTracker("treasury")
        pkh0 = tracker.pkh                 # enroll this
        current = tracker.current_key_pair()
        nxt = tracker.next_key_pair()      # commit to public_key_hash(nxt[1])
    """

    KEEP_ON_TRIM = 3

    def __init__(self, name: str = "default") -> None:
        self.name = name
        self._private_keys: list[PrivateKey] = []
        self._public_keys: list[PublicKey] = []

    @property
    def pkh(self) -> bytes:
        return public_key_hash(self.current_key_pair()[1])

    @property
    def key_count(self) -> int:
        return len(self._private_keys)

    def next_key_pair(self) -> tuple[PrivateKey, PublicKey]:
        """Generate and append a new key pair."""
        private_key, public_key = generate_keypair()
        self._private_keys.append(private_key)
        self._public_keys.append(public_key)
        return private_key, public_key

    def current_key_pair(self) -> tuple[PrivateKey, PublicKey]:
        """The newest key pair, generating the first one on demand."""
        if not self._private_keys:
            return self.next_key_pair()
        return self._private_keys[-1], self._public_keys[-1]

    def previous_key_pair(self) -> tuple[PrivateKey, PublicKey]:
        if len(self._private_keys) < 2:
            raise RuntimeError("No previous key pair")
        return self._private_keys[-2], self._public_keys[-2]

    def save(self, path: Path, trim: bool = False) -> None:
        """Write the key chain as JSON. With *trim*, keep the last three pairs."""
        private_keys = self._private_keys
        public_keys = self._public_keys
        if trim:
            private_keys = private_keys[-self.KEEP_ON_TRIM:]
            public_keys = public_keys[-self.KEEP_ON_TRIM:]
        data = {
            "name": self.name,
            "private_keys": [[[a.hex(), b.hex()] for a, b in k] for k in private_keys],
            "public_keys": [[[a.hex(), b.hex()] for a, b in k] for k in public_keys],
        }
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> KeyTracker:
        data = json.loads(path.read_text(encoding="utf-8"))
        tracker = cls(data["name"])
        for key in data["private_keys"]:
            tracker._private_keys.append(
                tuple((bytes.fromhex(a), bytes.fromhex(b)) for a, b in key)
            )
        for key in data["public_keys"]:
            tracker._public_keys.append(
                tuple((bytes.fromhex(a), bytes.fromhex(b)) for a, b in key)
            )
        if len(tracker._private_keys) != len(tracker._public_keys):
            raise ValueError(f"Key tracker file {path} has mismatched key lists")
        return tracker
