"""
Keypair recovery for pubkychat.

Two formats load a SigningKeypair:

- A BIP39 recovery phrase. The first 32 bytes of the BIP39 seed are the
  Ed25519 secret.
- An encrypted recovery file: a spec line, a newline, then the secret
  sealed with XSalsa20-Poly1305 under an Argon2id key derived from the
  passphrase.
"""

from argon2.exceptions import Argon2Error
from argon2.low_level import Type, hash_secret_raw
from mnemonic import Mnemonic

from .crypto import decrypt, encrypt
from .keys import SigningKeypair
from .types import SECRET_KEY_SIZE, DecryptionError, RecoveryError

DEFAULT_LANGUAGE = "english"

RECOVERY_SPEC_LINE = b"pubky.org/recovery"
LEGACY_RECOVERY_SPEC_LINE = b"pkarr.org/recovery"

# Argon2id parameters (argon2 crate defaults)
RECOVERY_KDF_SALT = b"recovery"
RECOVERY_KDF_TIME_COST = 2
RECOVERY_KDF_MEMORY_COST = 19456  # KiB
RECOVERY_KDF_PARALLELISM = 1


def keypair_from_recovery_phrase(
    phrase: str,
    passphrase: str = "",
    language: str = DEFAULT_LANGUAGE,
) -> SigningKeypair:
    """
    Derive a keypair from a BIP39 recovery phrase.

    Args:
        phrase: The mnemonic (12, 15, 18, 21 or 24 lowercase words)
        passphrase: Optional BIP39 passphrase
        language: Wordlist language (default: english)

    Returns:
        The SigningKeypair for this phrase and passphrase

    Raises:
        RecoveryError: If the language is unknown or the phrase is invalid
    """
    if language not in Mnemonic.list_languages():
        raise RecoveryError(f"Unsupported mnemonic language: {language}")

    normalized = " ".join(phrase.split())
    mnemonic = Mnemonic(language)
    if not normalized or not mnemonic.check(normalized):
        raise RecoveryError("Invalid mnemonic phrase")

    seed = mnemonic.to_seed(normalized, passphrase=passphrase)
    return SigningKeypair(seed[:SECRET_KEY_SIZE])


def generate_recovery_phrase(strength: int = 128, language: str = DEFAULT_LANGUAGE) -> str:
    """Generate a new random recovery phrase (128 bits gives 12 words)."""
    if language not in Mnemonic.list_languages():
        raise RecoveryError(f"Unsupported mnemonic language: {language}")
    return Mnemonic(language).generate(strength=strength)


def recovery_file_key(passphrase: str) -> bytes:
    """Derive the 32-byte recovery file encryption key from a passphrase."""
    try:
        return hash_secret_raw(
            secret=passphrase.encode("utf-8"),
            salt=RECOVERY_KDF_SALT,
            time_cost=RECOVERY_KDF_TIME_COST,
            memory_cost=RECOVERY_KDF_MEMORY_COST,
            parallelism=RECOVERY_KDF_PARALLELISM,
            hash_len=32,
            type=Type.ID,
        )
    except Argon2Error as e:
        raise RecoveryError(f"Key derivation failed: {e}") from e


def create_recovery_file(keypair: SigningKeypair, passphrase: str = "") -> bytes:
    """Seal a keypair's secret into recovery file bytes."""
    key = recovery_file_key(passphrase)
    return RECOVERY_SPEC_LINE + b"\n" + encrypt(keypair.secret_key(), key)


def decrypt_recovery_file(data: bytes, passphrase: str = "") -> SigningKeypair:
    """
    Load a keypair from recovery file bytes.

    Raises:
        RecoveryError: If the file is malformed or the passphrase is wrong
    """
    newline = data.find(b"\n")
    if newline < 0:
        raise RecoveryError("Recovery file is missing its spec line")

    spec_line = data[:newline]
    if not (spec_line.startswith(RECOVERY_SPEC_LINE) or spec_line.startswith(LEGACY_RECOVERY_SPEC_LINE)):
        raise RecoveryError(f"Unknown recovery file spec line: {spec_line!r}")

    encrypted = data[newline + 1:]
    if not encrypted:
        raise RecoveryError("Recovery file has no encrypted payload")

    try:
        secret = decrypt(encrypted, recovery_file_key(passphrase))
    except DecryptionError as e:
        raise RecoveryError("Failed to decrypt recovery file (wrong passphrase?)") from e

    if len(secret) != SECRET_KEY_SIZE:
        raise RecoveryError(f"Recovered secret must be {SECRET_KEY_SIZE} bytes, got {len(secret)}")

    return SigningKeypair(secret)
