"""Tests for signing keys and key conversion."""

import pytest
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from pubkychat.keys import (
    PublicKey,
    SigningKeypair,
    as_public_key,
    public_to_x25519,
    secret_to_x25519,
    x25519_ecdh,
    x25519_public_from_secret,
)
from pubkychat.types import InvalidKeyError, InvalidPointError
from .test_vectors import (
    ALICE_SECRET_HEX,
    BOB_SECRET_HEX,
    IDENTITY_POINT_HEX,
    ORDER_TWO_POINT_HEX,
    RFC8032_PUBLIC_1_HEX,
    RFC8032_PUBLIC_2_HEX,
    RFC8032_SECRET_1_HEX,
    RFC8032_SECRET_2_HEX,
    RFC8032_SIGNATURE_1_HEX,
)


class TestSigningKeypair:
    """Test Ed25519 keypairs."""

    @pytest.mark.parametrize(
        "secret_hex,public_hex",
        [
            (RFC8032_SECRET_1_HEX, RFC8032_PUBLIC_1_HEX),
            (RFC8032_SECRET_2_HEX, RFC8032_PUBLIC_2_HEX),
        ],
    )
    def test_public_key_matches_rfc8032(self, secret_hex: str, public_hex: str) -> None:
        """Public keys match the RFC 8032 test vectors."""
        keypair = SigningKeypair(bytes.fromhex(secret_hex))
        assert keypair.public_key.raw.hex() == public_hex

    def test_signature_matches_rfc8032(self) -> None:
        """Signing the empty message gives the RFC 8032 signature."""
        keypair = SigningKeypair(bytes.fromhex(RFC8032_SECRET_1_HEX))
        assert keypair.sign(b"").hex() == RFC8032_SIGNATURE_1_HEX

    def test_invalid_secret_length(self) -> None:
        """Reject secrets that are not 32 bytes."""
        with pytest.raises(InvalidKeyError, match="32 bytes"):
            SigningKeypair(b"too short")

    def test_equality_by_public_key(self) -> None:
        """Keypairs from the same secret compare equal."""
        secret = bytes.fromhex(ALICE_SECRET_HEX)
        assert SigningKeypair(secret) == SigningKeypair.from_secret_key(secret)
        assert SigningKeypair(secret) != SigningKeypair(bytes.fromhex(BOB_SECRET_HEX))

    def test_generate_is_random(self) -> None:
        assert SigningKeypair.generate().public_key != SigningKeypair.generate().public_key


class TestPublicKey:
    """Test public key text encoding."""

    @pytest.fixture
    def public_key(self) -> PublicKey:
        return SigningKeypair(bytes.fromhex(ALICE_SECRET_HEX)).public_key

    def test_string_roundtrip(self, public_key: PublicKey) -> None:
        """The text form parses back to the same key."""
        text = str(public_key)
        assert len(text) == 52
        assert PublicKey.from_string(text) == public_key

    def test_zbase32_alphabet(self, public_key: PublicKey) -> None:
        """Encoded keys only use z-base-32 characters."""
        alphabet = set("ybndrfg8ejkmcpqxot1uwisza345h769")
        assert set(str(public_key)) <= alphabet

    def test_known_encoding(self) -> None:
        """All-zero bytes encode to the z-base-32 zero digit."""
        assert str(PublicKey(bytes(32))) == "y" * 52

    @pytest.mark.parametrize("prefix", ["pk:", "pubky://"])
    def test_prefixes_accepted(self, public_key: PublicKey, prefix: str) -> None:
        assert PublicKey.from_string(prefix + str(public_key)) == public_key

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "not a key",
            "y" * 51,
            "y" * 53,
            "Y" * 52,
            "l" * 52,  # 'l' is not in the alphabet
            "y" * 51 + "n",  # non-zero trailing bits
        ],
    )
    def test_invalid_text(self, text: str) -> None:
        with pytest.raises(InvalidKeyError):
            PublicKey.from_string(text)

    def test_invalid_length(self) -> None:
        with pytest.raises(InvalidKeyError):
            PublicKey(b"\x00" * 31)

    def test_as_public_key(self, public_key: PublicKey) -> None:
        """Keys can be given as objects, text or raw bytes."""
        assert as_public_key(public_key) is public_key
        assert as_public_key(str(public_key)) == public_key
        assert as_public_key(public_key.raw) == public_key

    def test_verify(self) -> None:
        keypair = SigningKeypair(bytes.fromhex(ALICE_SECRET_HEX))
        signature = keypair.sign(b"data")
        assert keypair.public_key.verify(signature, b"data") is True
        assert keypair.public_key.verify(signature, b"other") is False
        assert keypair.public_key.verify(b"\x00" * 64, b"data") is False


class TestKeyConversion:
    """Test Ed25519 to X25519 conversion."""

    @pytest.fixture
    def alice(self) -> SigningKeypair:
        return SigningKeypair(bytes.fromhex(ALICE_SECRET_HEX))

    @pytest.fixture
    def bob(self) -> SigningKeypair:
        return SigningKeypair(bytes.fromhex(BOB_SECRET_HEX))

    def test_secret_is_clamped(self, alice: SigningKeypair) -> None:
        """Converted secrets follow RFC 7748 clamping."""
        scalar = secret_to_x25519(alice.secret_key())
        assert len(scalar) == 32
        assert scalar[0] & 0b111 == 0
        assert scalar[31] & 0x80 == 0
        assert scalar[31] & 0x40 == 0x40

    def test_secret_conversion_deterministic(self, alice: SigningKeypair) -> None:
        assert secret_to_x25519(alice.secret_key()) == secret_to_x25519(alice.secret_key())

    def test_conversions_agree(self, alice: SigningKeypair, bob: SigningKeypair) -> None:
        """The converted public key is the public key of the converted secret."""
        for keypair in (alice, bob):
            scalar = secret_to_x25519(keypair.secret_key())
            assert public_to_x25519(keypair.public_key) == x25519_public_from_secret(scalar)

    def test_public_conversion_deterministic(self, alice: SigningKeypair) -> None:
        assert public_to_x25519(alice.public_key) == public_to_x25519(str(alice.public_key))

    @pytest.mark.parametrize("point_hex", [IDENTITY_POINT_HEX, ORDER_TWO_POINT_HEX])
    def test_small_order_points_rejected(self, point_hex: str) -> None:
        """Small-order public keys cannot be converted."""
        with pytest.raises(InvalidPointError):
            public_to_x25519(PublicKey(bytes.fromhex(point_hex)))

    def test_ecdh_matches_cryptography(self, alice: SigningKeypair, bob: SigningKeypair) -> None:
        """x25519_ecdh is plain X25519 on the converted keys."""
        alice_scalar = secret_to_x25519(alice.secret_key())
        bob_x25519 = public_to_x25519(bob.public_key)

        expected = X25519PrivateKey.from_private_bytes(alice_scalar).exchange(
            X25519PrivateKey.from_private_bytes(secret_to_x25519(bob.secret_key())).public_key()
        )
        assert x25519_ecdh(alice_scalar, bob_x25519) == expected
