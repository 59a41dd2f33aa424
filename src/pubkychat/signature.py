"""
Message signatures for pubkychat.

A message is signed over a BLAKE3 digest that binds the plaintext to the
sender's public key and the send time. The digest, not the raw content, is
what gets passed to Ed25519.
"""

import blake3

from .keys import PublicKey, SigningKeypair
from .types import MAX_TIMESTAMP, SIGNATURE_SIZE, TIMESTAMP_SIZE


def message_digest(content: str, sender: PublicKey, timestamp: int) -> bytes:
    """
    Compute the signing digest for a message.

    BLAKE3(content utf-8 || sender raw key || timestamp as big-endian u64).

    Args:
        content: The message plaintext
        sender: The sender's public key
        timestamp: Unix time in seconds

    Returns:
        32-byte digest

    Raises:
        ValueError: If the timestamp does not fit an unsigned 64-bit integer
    """
    if not 0 <= timestamp <= MAX_TIMESTAMP:
        raise ValueError(f"Timestamp out of range: {timestamp}")

    hasher = blake3.blake3()
    hasher.update(content.encode("utf-8"))
    hasher.update(sender.raw)
    hasher.update(timestamp.to_bytes(TIMESTAMP_SIZE, "big"))
    return hasher.digest()


def sign_message(content: str, keypair: SigningKeypair, timestamp: int) -> bytes:
    """Sign a message digest with the sender's keypair (64 bytes)."""
    digest = message_digest(content, keypair.public_key, timestamp)
    return keypair.sign(digest)


def verify_message(content: str, sender: PublicKey, timestamp: int, signature: bytes) -> bool:
    """
    Verify a message signature.

    Returns:
        True if the signature is valid for this content, sender and time.
        A wrong-length signature is simply not valid.
    """
    if len(signature) != SIGNATURE_SIZE:
        return False

    digest = message_digest(content, sender, timestamp)
    return sender.verify(signature, digest)
