"""Signing keys, public key encoding and Ed25519 to X25519 conversion."""

import base64
import hashlib
import os
from dataclasses import dataclass
from typing import Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from nacl.bindings import crypto_sign_ed25519_pk_to_curve25519
from nacl.exceptions import CryptoError

from .types import (
    PUBLIC_KEY_SIZE,
    SECRET_KEY_SIZE,
    InvalidKeyError,
    InvalidPointError,
)

# z-base-32 shares the RFC 4648 bit layout, only the alphabet differs
_RFC4648_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
_ZBASE32_ALPHABET = "ybndrfg8ejkmcpqxot1uwisza345h769"
_TO_ZBASE32 = str.maketrans(_RFC4648_ALPHABET, _ZBASE32_ALPHABET)
_FROM_ZBASE32 = str.maketrans(_ZBASE32_ALPHABET, _RFC4648_ALPHABET)

ENCODED_PUBLIC_KEY_LENGTH = 52
PUBLIC_KEY_PREFIXES = ("pubky://", "pk:")


def _zbase32_encode(data: bytes) -> str:
    return base64.b32encode(data).decode("ascii").rstrip("=").translate(_TO_ZBASE32)


def _zbase32_decode(text: str) -> bytes:
    if any(c not in _ZBASE32_ALPHABET for c in text):
        raise InvalidKeyError(f"Invalid z-base-32 character in {text!r}")
    padded = text.translate(_FROM_ZBASE32)
    padded += "=" * ((8 - len(padded) % 8) % 8)
    try:
        return base64.b32decode(padded)
    except ValueError as e:
        raise InvalidKeyError(f"Invalid z-base-32 text {text!r}: {e}") from e


@dataclass(frozen=True)
class PublicKey:
    """
    An Ed25519 public key identifying a user and their storage namespace.

    The canonical text form is the 52-character z-base-32 encoding of the
    32 raw key bytes.
    """

    raw: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.raw, (bytes, bytearray)) or len(self.raw) != PUBLIC_KEY_SIZE:
            size = len(self.raw) if isinstance(self.raw, (bytes, bytearray)) else type(self.raw).__name__
            raise InvalidKeyError(f"Public key must be {PUBLIC_KEY_SIZE} bytes, got {size}")
        object.__setattr__(self, "raw", bytes(self.raw))

    @classmethod
    def from_string(cls, text: str) -> "PublicKey":
        """
        Parse a public key from its z-base-32 text form.

        A leading ``pk:`` or ``pubky://`` is accepted and ignored.

        Raises:
            InvalidKeyError: If the text is not a canonical encoded key.
        """
        if not isinstance(text, str):
            raise InvalidKeyError(f"Public key text must be str, got {type(text).__name__}")

        for prefix in PUBLIC_KEY_PREFIXES:
            if text.startswith(prefix):
                text = text[len(prefix):]
                break

        if len(text) != ENCODED_PUBLIC_KEY_LENGTH:
            raise InvalidKeyError(
                f"Public key text must be {ENCODED_PUBLIC_KEY_LENGTH} characters, got {len(text)}"
            )

        raw = _zbase32_decode(text)
        # Reject encodings with non-zero trailing bits
        if _zbase32_encode(raw) != text:
            raise InvalidKeyError(f"Non-canonical public key text: {text!r}")
        return cls(raw)

    def to_string(self) -> str:
        """The canonical z-base-32 text form."""
        return _zbase32_encode(self.raw)

    def verify(self, signature: bytes, data: bytes) -> bool:
        """Check an Ed25519 signature over ``data``; never raises on mismatch."""
        try:
            Ed25519PublicKey.from_public_bytes(self.raw).verify(signature, data)
            return True
        except (InvalidSignature, ValueError):
            return False

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"PublicKey({self.to_string()})"


PublicKeyLike = Union[PublicKey, str, bytes]


def as_public_key(value: PublicKeyLike) -> PublicKey:
    """Accept a PublicKey, its text form or its raw bytes."""
    if isinstance(value, PublicKey):
        return value
    if isinstance(value, str):
        return PublicKey.from_string(value)
    return PublicKey(value)


class SigningKeypair:
    """
    An Ed25519 keypair owned by the calling session.

    The 32-byte secret is the Ed25519 seed. Instances are read-only and may be
    shared across concurrent operations.
    """

    __slots__ = ("_secret_key", "_signing_key", "_public_key")

    def __init__(self, secret_key: bytes) -> None:
        if len(secret_key) != SECRET_KEY_SIZE:
            raise InvalidKeyError(f"Secret key must be {SECRET_KEY_SIZE} bytes, got {len(secret_key)}")

        self._secret_key = bytes(secret_key)
        self._signing_key = Ed25519PrivateKey.from_private_bytes(self._secret_key)
        self._public_key = PublicKey(self._signing_key.public_key().public_bytes_raw())

    @classmethod
    def generate(cls) -> "SigningKeypair":
        """Generate a random keypair."""
        return cls(os.urandom(SECRET_KEY_SIZE))

    @classmethod
    def from_secret_key(cls, secret_key: bytes) -> "SigningKeypair":
        return cls(secret_key)

    @property
    def public_key(self) -> PublicKey:
        return self._public_key

    def secret_key(self) -> bytes:
        """
        The raw 32-byte secret.

        Warning: Handle with care. This should only be used for key conversion
        and secure storage.
        """
        return self._secret_key

    def sign(self, data: bytes) -> bytes:
        """Sign ``data``, returning the 64-byte Ed25519 signature."""
        return self._signing_key.sign(data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SigningKeypair):
            return NotImplemented
        return self._public_key == other._public_key

    def __hash__(self) -> int:
        return hash(self._public_key)

    def __repr__(self) -> str:
        return f"SigningKeypair({self._public_key})"


def secret_to_x25519(secret_key: bytes) -> bytes:
    """
    Convert an Ed25519 secret to an X25519 scalar.

    SHA-512 of the secret, low 32 bytes, clamped per RFC 7748. This is the
    same scalar Ed25519 uses internally, so it pairs with public_to_x25519.

    Args:
        secret_key: 32-byte Ed25519 secret

    Returns:
        32-byte clamped X25519 private scalar
    """
    if len(secret_key) != SECRET_KEY_SIZE:
        raise InvalidKeyError(f"Secret key must be {SECRET_KEY_SIZE} bytes, got {len(secret_key)}")

    scalar = bytearray(hashlib.sha512(secret_key).digest()[:32])
    scalar[0] &= 248
    scalar[31] &= 127
    scalar[31] |= 64
    return bytes(scalar)


def public_to_x25519(public_key: PublicKeyLike) -> bytes:
    """
    Map an Ed25519 public key to its X25519 (Montgomery u-coordinate) form.

    Args:
        public_key: The Ed25519 public key

    Returns:
        32-byte X25519 public key

    Raises:
        InvalidPointError: If the bytes do not decompress to a usable point
    """
    raw = as_public_key(public_key).raw
    try:
        return crypto_sign_ed25519_pk_to_curve25519(raw)
    except CryptoError as e:
        raise InvalidPointError(f"Cannot convert public key to X25519: {e}") from e


def x25519_ecdh(private_scalar: bytes, public_key: bytes) -> bytes:
    """
    Perform X25519 ECDH key exchange.

    Args:
        private_scalar: Our 32-byte X25519 private scalar
        public_key: Their 32-byte X25519 public key

    Returns:
        32-byte shared secret
    """
    private_key = X25519PrivateKey.from_private_bytes(private_scalar)
    try:
        return private_key.exchange(X25519PublicKey.from_public_bytes(public_key))
    except ValueError as e:
        # Low-order peer points yield an all-zero secret
        raise InvalidPointError(f"X25519 exchange failed: {e}") from e


def x25519_public_from_secret(private_scalar: bytes) -> bytes:
    """The X25519 public key for a private scalar."""
    return X25519PrivateKey.from_private_bytes(private_scalar).public_key().public_bytes_raw()
