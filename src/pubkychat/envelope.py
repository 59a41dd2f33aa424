"""Private message envelopes and their storage encoding."""

import json
import time
import uuid
from dataclasses import dataclass
from typing import Any, Optional

from .crypto import decrypt_text, encrypt, generate_shared_secret
from .keys import PublicKey, PublicKeyLike, SigningKeypair
from .signature import sign_message, verify_message
from .types import (
    MAX_TIMESTAMP,
    SIGNATURE_SIZE,
    DecryptedMessage,
    InvalidEnvelopeError,
    InvalidKeyError,
)


@dataclass(frozen=True)
class PrivateMessage:
    """
    A private message with encrypted sender and content.

    The signature covers the plaintext, the sender's key and the timestamp.
    Content and sender are then encrypted separately under the pair's
    shared secret, so either participant can decrypt but only the real
    sender can produce a signature that verifies.
    """
    timestamp: int
    encrypted_sender: bytes
    encrypted_content: bytes
    signature_bytes: bytes  # 64 bytes

    @classmethod
    def create(
        cls,
        sender_keypair: SigningKeypair,
        recipient: PublicKeyLike,
        content: str,
        timestamp: Optional[int] = None,
    ) -> "PrivateMessage":
        """
        Create a new encrypted message.

        Args:
            sender_keypair: The sender's signing keypair
            recipient: The recipient's public key
            content: Message text
            timestamp: Unix seconds (default: now)

        Returns:
            The sealed PrivateMessage

        Raises:
            ValueError: If the timestamp is outside the unsigned 64-bit range
            InvalidPointError: If the recipient key is not a valid point
        """
        if timestamp is None:
            timestamp = int(time.time())

        signature_bytes = sign_message(content, sender_keypair, timestamp)

        key = generate_shared_secret(sender_keypair, recipient)
        encrypted_content = encrypt(content.encode("utf-8"), key)
        encrypted_sender = encrypt(str(sender_keypair.public_key).encode("utf-8"), key)

        return cls(
            timestamp=timestamp,
            encrypted_sender=encrypted_sender,
            encrypted_content=encrypted_content,
            signature_bytes=signature_bytes,
        )

    def decrypt_content(self, receiver_keypair: SigningKeypair, other_participant: PublicKeyLike) -> str:
        """
        Decrypt the message content.

        Works for either participant: pass your own keypair and the other
        party's public key.

        Raises:
            DecryptionError: On tag mismatch, malformed ciphertext or invalid UTF-8
            InvalidPointError: If the other participant's key is not a valid point
        """
        key = generate_shared_secret(receiver_keypair, other_participant)
        return decrypt_text(self.encrypted_content, key)

    def decrypt_sender(self, receiver_keypair: SigningKeypair, other_participant: PublicKeyLike) -> str:
        """Decrypt the sender's public key string."""
        key = generate_shared_secret(receiver_keypair, other_participant)
        return decrypt_text(self.encrypted_sender, key)

    def verify_signature(self, decrypted_content: str, decrypted_sender: str) -> bool:
        """
        Verify the message signature against the decrypted sender.

        Returns:
            True if the signature is valid. A malformed sender string or a bad
            signature gives False.
        """
        try:
            sender = PublicKey.from_string(decrypted_sender)
        except InvalidKeyError:
            return False

        return verify_message(decrypted_content, sender, self.timestamp, self.signature_bytes)

    def decrypt(self, receiver_keypair: SigningKeypair, other_participant: PublicKeyLike) -> DecryptedMessage:
        """Decrypt content and sender and check the signature."""
        content = self.decrypt_content(receiver_keypair, other_participant)
        sender = self.decrypt_sender(receiver_keypair, other_participant)
        return DecryptedMessage(
            sender=sender,
            content=content,
            timestamp=self.timestamp,
            verified=self.verify_signature(content, sender),
        )

    @staticmethod
    def generate_id() -> str:
        """Generate a unique message ID (UUID4, hyphenated)."""
        return str(uuid.uuid4())


def encode_envelope(message: PrivateMessage) -> bytes:
    """
    Encode a message as its JSON storage record.

    Byte fields are written as arrays of integers:

        {"timestamp": 1700000000,
         "encrypted_sender": [..],
         "encrypted_content": [..],
         "signature_bytes": [..64 values..]}
    """
    record = {
        "timestamp": message.timestamp,
        "encrypted_sender": list(message.encrypted_sender),
        "encrypted_content": list(message.encrypted_content),
        "signature_bytes": list(message.signature_bytes),
    }
    return json.dumps(record, separators=(",", ":")).encode("utf-8")


def decode_envelope(data: bytes) -> PrivateMessage:
    """
    Decode a JSON storage record into a message.

    Raises:
        InvalidEnvelopeError: If the record is malformed
    """
    try:
        record = json.loads(data)
    except (ValueError, RecursionError) as e:
        # JSONDecodeError and UnicodeDecodeError are ValueErrors
        raise InvalidEnvelopeError(f"Envelope is not valid JSON: {e}") from e

    if not isinstance(record, dict):
        raise InvalidEnvelopeError("Envelope must be a JSON object")

    timestamp = record.get("timestamp")
    if isinstance(timestamp, bool) or not isinstance(timestamp, int) or not 0 <= timestamp <= MAX_TIMESTAMP:
        raise InvalidEnvelopeError(f"Invalid timestamp: {timestamp!r}")

    signature_bytes = _byte_field(record, "signature_bytes")
    if len(signature_bytes) != SIGNATURE_SIZE:
        raise InvalidEnvelopeError(
            f"Signature must be {SIGNATURE_SIZE} bytes, got {len(signature_bytes)}"
        )

    return PrivateMessage(
        timestamp=timestamp,
        encrypted_sender=_byte_field(record, "encrypted_sender"),
        encrypted_content=_byte_field(record, "encrypted_content"),
        signature_bytes=signature_bytes,
    )


def _byte_field(record: dict[str, Any], name: str) -> bytes:
    value = record.get(name)
    if not isinstance(value, list):
        raise InvalidEnvelopeError(f"Missing or invalid field: {name}")
    if any(isinstance(b, bool) or not isinstance(b, int) or not 0 <= b <= 255 for b in value):
        raise InvalidEnvelopeError(f"Field {name} must be a list of byte values")
    return bytes(value)
