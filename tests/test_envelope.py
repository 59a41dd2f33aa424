"""Tests for private message envelopes."""

import json
import time
import uuid
from dataclasses import replace

import pytest

from pubkychat.crypto import encrypt, generate_shared_secret
from pubkychat.envelope import PrivateMessage, decode_envelope, encode_envelope
from pubkychat.keys import SigningKeypair
from pubkychat.signature import sign_message
from pubkychat.types import DecryptionError, InvalidEnvelopeError
from .test_vectors import (
    ALICE_SECRET_HEX,
    BOB_SECRET_HEX,
    CAROL_SECRET_HEX,
    TEST_MESSAGES,
)


@pytest.fixture
def alice() -> SigningKeypair:
    return SigningKeypair(bytes.fromhex(ALICE_SECRET_HEX))


@pytest.fixture
def bob() -> SigningKeypair:
    return SigningKeypair(bytes.fromhex(BOB_SECRET_HEX))


@pytest.fixture
def carol() -> SigningKeypair:
    return SigningKeypair(bytes.fromhex(CAROL_SECRET_HEX))


class TestCreate:
    """Test message creation."""

    def test_fields(self, alice, bob) -> None:
        message = PrivateMessage.create(alice, bob.public_key, "Hello, Bob!", timestamp=1700000000)

        assert message.timestamp == 1700000000
        assert len(message.signature_bytes) == 64
        assert len(message.encrypted_content) > len("Hello, Bob!")
        assert b"Hello" not in message.encrypted_content
        assert str(alice.public_key).encode() not in message.encrypted_sender

    def test_default_timestamp_is_now(self, alice, bob) -> None:
        before = int(time.time())
        message = PrivateMessage.create(alice, bob.public_key, "hi")
        assert before <= message.timestamp <= int(time.time())

    @pytest.mark.parametrize("timestamp", [-1, 2**64])
    def test_timestamp_out_of_range(self, alice, bob, timestamp: int) -> None:
        with pytest.raises(ValueError, match="Timestamp out of range"):
            PrivateMessage.create(alice, bob.public_key, "hi", timestamp=timestamp)

    def test_timestamp_bounds_accepted(self, alice, bob) -> None:
        for timestamp in (0, 2**64 - 1):
            message = PrivateMessage.create(alice, bob.public_key, "hi", timestamp=timestamp)
            assert message.decrypt(bob, alice.public_key).verified

    def test_generate_id(self) -> None:
        first = PrivateMessage.generate_id()
        assert uuid.UUID(first).version == 4
        assert str(uuid.UUID(first)) == first
        assert first != PrivateMessage.generate_id()


class TestDecrypt:
    """Test decryption by either participant."""

    @pytest.mark.parametrize("message_key,text", TEST_MESSAGES.items())
    def test_recipient_roundtrip(self, alice, bob, message_key: str, text: str) -> None:
        """Bob decrypts Alice's message and the signature verifies."""
        message = PrivateMessage.create(alice, bob.public_key, text)

        content = message.decrypt_content(bob, alice.public_key)
        sender = message.decrypt_sender(bob, alice.public_key)

        assert content == text
        assert sender == str(alice.public_key)
        assert message.verify_signature(content, sender) is True

    def test_sender_can_decrypt(self, alice, bob) -> None:
        """Alice can read her own message using Bob's key."""
        message = PrivateMessage.create(alice, bob.public_key, "I sent this!")
        decrypted = message.decrypt(alice, bob.public_key)

        assert decrypted.content == "I sent this!"
        assert decrypted.sender == str(alice.public_key)
        assert decrypted.verified is True

    def test_third_party_cannot_decrypt(self, alice, bob, carol) -> None:
        message = PrivateMessage.create(alice, bob.public_key, "secret")
        with pytest.raises(DecryptionError):
            message.decrypt_content(carol, alice.public_key)
        with pytest.raises(DecryptionError):
            message.decrypt_sender(carol, bob.public_key)


class TestVerify:
    """Test signature verification and tamper detection."""

    @pytest.fixture
    def message(self, alice, bob) -> PrivateMessage:
        return PrivateMessage.create(alice, bob.public_key, "tamper with me", timestamp=1700000000)

    def _decrypt_and_verify(self, message: PrivateMessage, bob, alice) -> bool:
        return message.decrypt(bob, alice.public_key).verified

    @pytest.mark.parametrize("field_name", ["encrypted_content", "encrypted_sender", "signature_bytes"])
    def test_bit_flip_detected(self, message, alice, bob, field_name: str) -> None:
        """Flipping any bit gives a decrypt failure or a failed verification."""
        original = getattr(message, field_name)
        for index in range(len(original)):
            for bit in (0x01, 0x80):
                tampered = bytearray(original)
                tampered[index] ^= bit
                forged = replace(message, **{field_name: bytes(tampered)})
                try:
                    verified = self._decrypt_and_verify(forged, bob, alice)
                except DecryptionError:
                    continue
                assert verified is False, f"{field_name}[{index}] ^ {bit:#x} verified"

    def test_changed_timestamp_fails(self, message, alice, bob) -> None:
        forged = replace(message, timestamp=message.timestamp + 1)
        assert self._decrypt_and_verify(forged, bob, alice) is False

    def test_malformed_sender_is_not_verified(self, message) -> None:
        assert message.verify_signature("tamper with me", "not a public key") is False

    def test_peer_cannot_impersonate(self, alice, bob) -> None:
        """Bob can encrypt a message claiming to be Alice, but it does not verify."""
        key = generate_shared_secret(bob, alice.public_key)
        forged = PrivateMessage(
            timestamp=1700000000,
            encrypted_sender=encrypt(str(alice.public_key).encode(), key),
            encrypted_content=encrypt(b"pay Bob", key),
            signature_bytes=sign_message("pay Bob", bob, 1700000000),
        )

        decrypted = forged.decrypt(alice, bob.public_key)
        assert decrypted.sender == str(alice.public_key)
        assert decrypted.verified is False


class TestEncoding:
    """Test the JSON storage record."""

    def test_roundtrip(self, alice, bob) -> None:
        message = PrivateMessage.create(alice, bob.public_key, "stored")
        decoded = decode_envelope(encode_envelope(message))
        assert decoded == message
        assert decoded.decrypt_content(bob, alice.public_key) == "stored"

    def test_record_layout(self, alice, bob) -> None:
        """Byte fields are stored as arrays of integers."""
        message = PrivateMessage.create(alice, bob.public_key, "stored", timestamp=5)
        record = json.loads(encode_envelope(message))

        assert set(record) == {"timestamp", "encrypted_sender", "encrypted_content", "signature_bytes"}
        assert record["timestamp"] == 5
        assert record["signature_bytes"] == list(message.signature_bytes)
        assert all(isinstance(b, int) for b in record["encrypted_content"])

    def test_unknown_fields_ignored(self, alice, bob) -> None:
        message = PrivateMessage.create(alice, bob.public_key, "stored")
        record = json.loads(encode_envelope(message))
        record["extra"] = "ignored"
        assert decode_envelope(json.dumps(record).encode()) == message

    @pytest.mark.parametrize(
        "data",
        [
            b"",
            b"not json",
            b"\xff\xfe",
            b"[]",
            b'{"timestamp": 1}',
            b'{"timestamp": -1, "encrypted_sender": [], "encrypted_content": [], "signature_bytes": []}',
            b'{"timestamp": "1", "encrypted_sender": [], "encrypted_content": [], "signature_bytes": []}',
            b'{"timestamp": true, "encrypted_sender": [], "encrypted_content": [], "signature_bytes": []}',
            b"[" * 100000 + b"]" * 100000,
            b'{"timestamp": ' + b"1" * 5000 + b"}",
        ],
    )
    def test_invalid_records(self, data: bytes) -> None:
        with pytest.raises(InvalidEnvelopeError):
            decode_envelope(data)

    def test_invalid_byte_values(self, alice, bob) -> None:
        record = json.loads(encode_envelope(PrivateMessage.create(alice, bob.public_key, "x")))
        record["encrypted_content"][0] = 256
        with pytest.raises(InvalidEnvelopeError, match="byte values"):
            decode_envelope(json.dumps(record).encode())

    def test_signature_length_enforced(self, alice, bob) -> None:
        record = json.loads(encode_envelope(PrivateMessage.create(alice, bob.public_key, "x")))
        record["signature_bytes"] = record["signature_bytes"][:63]
        with pytest.raises(InvalidEnvelopeError, match="64 bytes"):
            decode_envelope(json.dumps(record).encode())
