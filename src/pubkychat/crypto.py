"""Shared secrets, conversation paths and symmetric encryption for pubkychat."""

import blake3
from nacl.exceptions import CryptoError
from nacl.secret import SecretBox

from .keys import (
    PublicKeyLike,
    SigningKeypair,
    public_to_x25519,
    secret_to_x25519,
    x25519_ecdh,
)
from .types import (
    NONCE_SIZE,
    PRIVATE_MESSAGES_PATH,
    SHARED_SECRET_SIZE,
    TAG_SIZE,
    DecryptionError,
    InvalidKeyError,
)


def generate_shared_secret(keypair: SigningKeypair, other_public_key: PublicKeyLike) -> bytes:
    """
    Derive the symmetric key shared by two parties.

    X25519(converted own secret, converted peer public key). Either side of
    the pair computes the same 32 bytes.

    Args:
        keypair: Our signing keypair
        other_public_key: The other party's signing public key

    Returns:
        32-byte shared secret

    Raises:
        InvalidPointError: If the other party's key is not a valid point
    """
    dh_secret = secret_to_x25519(keypair.secret_key())
    dh_public = public_to_x25519(other_public_key)
    return x25519_ecdh(dh_secret, dh_public)


def generate_conversation_path(keypair: SigningKeypair, other_public_key: PublicKeyLike) -> str:
    """
    Derive the storage path segment shared by a conversation's two parties.

    The path is ``/pub/private_messages/{blake3(hex shared secret)}/``. Both
    parties get the same string without coordinating.
    """
    shared_secret = generate_shared_secret(keypair, other_public_key)
    path_id = blake3.blake3(shared_secret.hex().encode("ascii")).hexdigest()
    return f"{PRIVATE_MESSAGES_PATH}{path_id}/"


def encrypt(plaintext: bytes, key: bytes) -> bytes:
    """
    Encrypt with XSalsa20-Poly1305.

    Output layout: nonce (24 bytes) || tag (16 bytes) || ciphertext.
    A fresh random nonce is used for every call.
    """
    if len(key) != SHARED_SECRET_SIZE:
        raise InvalidKeyError(f"Encryption key must be {SHARED_SECRET_SIZE} bytes, got {len(key)}")

    return bytes(SecretBox(key).encrypt(plaintext))


def decrypt(data: bytes, key: bytes) -> bytes:
    """
    Decrypt data produced by encrypt.

    Raises:
        DecryptionError: On a short input or authentication failure
    """
    if len(key) != SHARED_SECRET_SIZE:
        raise InvalidKeyError(f"Encryption key must be {SHARED_SECRET_SIZE} bytes, got {len(key)}")

    if len(data) < NONCE_SIZE + TAG_SIZE:
        raise DecryptionError(f"Ciphertext too short: {len(data)} bytes")

    try:
        return SecretBox(key).decrypt(bytes(data))
    except CryptoError as e:
        raise DecryptionError(f"Decryption failed: {e}") from e


def decrypt_text(data: bytes, key: bytes) -> str:
    """Decrypt and decode as UTF-8."""
    plaintext = decrypt(data, key)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError(f"Decrypted data is not valid UTF-8: {e}") from e
