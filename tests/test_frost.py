"""Tests for FROST Schnorr verification, key validity and precompile input codec."""

import pytest

from eth_utils import keccak

from sigguard.crypto.frost import (
    FIELD_PRIME,
    N,
    RESULT_INVALID,
    RESULT_VALID,
    VERIFY_INPUT_SIZE,
    FrostKeyRegistry,
    FrostPublicKey,
    FrostSignature,
    FrostVerifier,
    challenge,
    decode_verify_input,
    encode_verify_input,
)
from sigguard.errors import InvalidKeyMaterial, MalformedInput

import frost_signer


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

MESSAGE = keccak(b"execute proposal 42")


def _key_with_large_x() -> FrostPublicKey:
    """A valid curve point whose x coordinate is >= N."""
    x = N
    while True:
        rhs = (pow(x, 3, FIELD_PRIME) + 7) % FIELD_PRIME
        y = pow(rhs, (FIELD_PRIME + 1) // 4, FIELD_PRIME)
        if y * y % FIELD_PRIME == rhs:
            return FrostPublicKey(px=x, py=y)
        x += 1


@pytest.fixture(scope="module")
def group():
    public_key, shares = frost_signer.keygen(threshold=2, total=3)
    return public_key, shares


@pytest.fixture(scope="module")
def signed(group):
    public_key, shares = group
    subset = {i: shares[i] for i in (1, 3)}
    return public_key, frost_signer.sign(MESSAGE, public_key, subset)


class TestVerify:
    def test_threshold_signature_accepted(self, signed) -> None:
        public_key, signature = signed
        assert FrostVerifier().verify(public_key, MESSAGE, signature) is True

    def test_every_signer_subset(self, group) -> None:
        public_key, shares = group
        verifier = FrostVerifier()
        for subset in ((1, 2), (1, 3), (2, 3), (1, 2, 3)):
            sig = frost_signer.sign(MESSAGE, public_key, {i: shares[i] for i in subset})
            assert verifier.verify(public_key, MESSAGE, sig)

    def test_single_party_schnorr(self) -> None:
        public_key, signature = frost_signer.single_sign(0xC0FFEE, MESSAGE)
        assert FrostVerifier().verify(public_key, MESSAGE, signature)

    def test_wrong_message_rejected(self, signed) -> None:
        public_key, signature = signed
        assert FrostVerifier().verify(public_key, keccak(b"other"), signature) is False

    def test_below_threshold_rejected(self, group) -> None:
        public_key, shares = group
        sig = frost_signer.sign(MESSAGE, public_key, {1: shares[1]})
        assert FrostVerifier().verify(public_key, MESSAGE, sig) is False

    @pytest.mark.parametrize("bit", [0, 1, 7, 128, 255])
    def test_bit_flip_in_z(self, signed, bit: int) -> None:
        public_key, sig = signed
        mutated = FrostSignature(rx=sig.rx, ry=sig.ry, z=sig.z ^ (1 << bit))
        assert FrostVerifier().verify(public_key, MESSAGE, mutated) is False

    @pytest.mark.parametrize("bit", [0, 1, 64, 255])
    def test_bit_flip_in_r(self, signed, bit: int) -> None:
        public_key, sig = signed
        verifier = FrostVerifier()
        assert not verifier.verify(
            public_key, MESSAGE, FrostSignature(rx=sig.rx ^ (1 << bit), ry=sig.ry, z=sig.z)
        )
        assert not verifier.verify(
            public_key, MESSAGE, FrostSignature(rx=sig.rx, ry=sig.ry ^ (1 << bit), z=sig.z)
        )

    @pytest.mark.parametrize("bit", [0, 1, 64, 255])
    def test_bit_flip_in_public_key(self, signed, bit: int) -> None:
        public_key, sig = signed
        verifier = FrostVerifier()
        assert not verifier.verify(
            FrostPublicKey(px=public_key.px ^ (1 << bit), py=public_key.py), MESSAGE, sig
        )
        assert not verifier.verify(
            FrostPublicKey(px=public_key.px, py=public_key.py ^ (1 << bit)), MESSAGE, sig
        )

    def test_negated_r_rejected(self, signed) -> None:
        public_key, sig = signed
        mutated = FrostSignature(rx=sig.rx, ry=FIELD_PRIME - sig.ry, z=sig.z)
        assert FrostVerifier().verify(public_key, MESSAGE, mutated) is False

    @pytest.mark.parametrize("z", [0, N, N + 1])
    def test_z_out_of_range(self, signed, z: int) -> None:
        public_key, sig = signed
        assert not FrostVerifier().verify(public_key, MESSAGE, FrostSignature(sig.rx, sig.ry, z))

    def test_challenge_depends_on_field_order(self, signed) -> None:
        public_key, sig = signed
        swapped_key = FrostPublicKey(px=sig.rx, py=sig.ry)
        swapped_sig = FrostSignature(rx=public_key.px, ry=public_key.py, z=sig.z)
        assert challenge(sig, public_key, MESSAGE) != challenge(swapped_sig, swapped_key, MESSAGE)


class TestPublicKeyValidity:
    def test_group_key_valid(self, group) -> None:
        assert FrostVerifier().is_valid_public_key(group[0])

    def test_off_curve_invalid(self, group) -> None:
        key = group[0]
        assert not FrostVerifier().is_valid_public_key(FrostPublicKey(key.px, key.py + 1))

    def test_coordinates_outside_field_invalid(self) -> None:
        assert not FrostVerifier().is_valid_public_key(FrostPublicKey(FIELD_PRIME, 0))

    def test_origin_invalid(self) -> None:
        assert not FrostVerifier().is_valid_public_key(FrostPublicKey(0, 0))

    def test_x_at_or_above_order_invalid_by_default(self) -> None:
        key = _key_with_large_x()
        assert key.px >= N
        assert not FrostVerifier().is_valid_public_key(key)

    def test_x_rule_can_be_disabled(self) -> None:
        key = _key_with_large_x()
        assert FrostVerifier({"require_x_below_order": False}).is_valid_public_key(key)


class TestKeyRegistry:
    def test_register_and_get(self, group) -> None:
        registry = FrostKeyRegistry(FrostVerifier())
        registry.register("committee-1", group[0])
        assert registry.get("committee-1") == group[0]
        assert "committee-1" in registry

    def test_invalid_key_rejected_at_registration(self) -> None:
        registry = FrostKeyRegistry(FrostVerifier())
        with pytest.raises(InvalidKeyMaterial):
            registry.register("bad", _key_with_large_x())
        assert "bad" not in registry

    def test_duplicate_rejected(self, group) -> None:
        registry = FrostKeyRegistry(FrostVerifier())
        registry.register("committee-1", group[0])
        with pytest.raises(ValueError):
            registry.register("committee-1", group[0])

    def test_unknown_key(self) -> None:
        with pytest.raises(KeyError):
            FrostKeyRegistry(FrostVerifier()).get("missing")


class TestVerifyInput:
    def test_valid_input(self, signed) -> None:
        public_key, sig = signed
        data = encode_verify_input(2, 3, public_key, MESSAGE, sig)
        assert len(data) == VERIFY_INPUT_SIZE
        assert FrostVerifier().verify_input(data) == RESULT_VALID

    def test_invalid_signature_word(self, signed) -> None:
        public_key, sig = signed
        bad = FrostSignature(sig.rx, sig.ry, (sig.z + 1) % N)
        data = encode_verify_input(2, 3, public_key, MESSAGE, bad)
        assert FrostVerifier().verify_input(data) == RESULT_INVALID

    def test_decode_round_trip_fields(self, signed) -> None:
        public_key, sig = signed
        decoded = decode_verify_input(encode_verify_input(2, 3, public_key, MESSAGE, sig))
        assert decoded.threshold == 2
        assert decoded.total_signers == 3
        assert decoded.public_key == public_key
        assert decoded.signature == sig

    @pytest.mark.parametrize("t,n", [(0, 3), (4, 3), (0, 0)])
    def test_bad_threshold(self, signed, t: int, n: int) -> None:
        public_key, sig = signed
        with pytest.raises(MalformedInput):
            decode_verify_input(encode_verify_input(t, n, public_key, MESSAGE, sig))

    def test_bad_length(self) -> None:
        with pytest.raises(MalformedInput):
            decode_verify_input(b"\x00" * (VERIFY_INPUT_SIZE - 1))


class TestTranscriptV1KnownAnswer:
    """Fixed secret 1 (P = G), nonce 2 (R = 2G). Every value here is built
    from literal bytes, never from the module's own challenge function."""

    GX = 0x79BE667EF9DCBBAC55A06295CE870B07029BFCDB2DCE28D959F2815B16F81798
    GY = 0x483ADA7726A3C4655DA4FBFC0E1108A8FD17B448A68554199C47D08FFB10D4B8
    G2X = 0xC6047F9441ED7D6D3045406E95C07CD85C778E4B8CEF3CA7ABAC09B95C709EE5
    G2Y = 0x1AE168FEA63DC339A3C58419466CEAEEF7F632653266D0E1236431A950CFE52A
    MSG = bytes.fromhex("11" * 32)

    def _expected_e(self) -> int:
        preimage = (
            b"sigguard/frost-secp256k1-keccak256/v1"
            + self.G2X.to_bytes(32, "big")
            + self.G2Y.to_bytes(32, "big")
            + self.GX.to_bytes(32, "big")
            + self.GY.to_bytes(32, "big")
            + self.MSG
        )
        return int.from_bytes(keccak(preimage), "big") % N

    def test_challenge_matches_v1_layout(self) -> None:
        sig = FrostSignature(rx=self.G2X, ry=self.G2Y, z=1)
        key = FrostPublicKey(px=self.GX, py=self.GY)
        assert challenge(sig, key, self.MSG) == self._expected_e()

    def test_reordered_transcript_differs(self) -> None:
        reordered = keccak(
            b"sigguard/frost-secp256k1-keccak256/v1"
            + self.GX.to_bytes(32, "big")
            + self.GY.to_bytes(32, "big")
            + self.MSG
            + self.G2X.to_bytes(32, "big")
            + self.G2Y.to_bytes(32, "big")
        )
        sig = FrostSignature(rx=self.G2X, ry=self.G2Y, z=1)
        key = FrostPublicKey(px=self.GX, py=self.GY)
        assert challenge(sig, key, self.MSG) != int.from_bytes(reordered, "big") % N

    def test_hand_built_signature_verifies(self) -> None:
        z = (2 + self._expected_e()) % N
        key = FrostPublicKey(px=self.GX, py=self.GY)
        sig = FrostSignature(rx=self.G2X, ry=self.G2Y, z=z)
        verifier = FrostVerifier()
        assert verifier.verify(key, self.MSG, sig) is True
        assert verifier.verify(key, self.MSG, FrostSignature(sig.rx, sig.ry, (z + 1) % N)) is False

    def test_reference_signer_agrees(self) -> None:
        key, sig = frost_signer.single_sign(1, self.MSG, nonce=2)
        assert (key.px, key.py) == (self.GX, self.GY)
        assert (sig.rx, sig.ry) == (self.G2X, self.G2Y)
        assert sig.z == (2 + self._expected_e()) % N
