"""Type definitions for pubkychat."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class DecryptedMessage:
    """A decrypted message for application use."""
    sender: str
    content: str
    timestamp: int
    verified: bool


# Key constants
PUBLIC_KEY_SIZE = 32
SECRET_KEY_SIZE = 32
SHARED_SECRET_SIZE = 32

# Signature constants
SIGNATURE_SIZE = 64
TIMESTAMP_SIZE = 8
MAX_TIMESTAMP = 2**64 - 1

# Symmetric encryption (XSalsa20-Poly1305)
NONCE_SIZE = 24
TAG_SIZE = 16

# Storage layout
PRIVATE_MESSAGES_PATH = "/pub/private_messages/"
PROFILE_PATH = "/pub/pubky.app/profile.json"
FOLLOWS_PATH = "/pub/pubky.app/follows/"
MESSAGE_SUFFIX = ".json"

# Status code the store uses to ask for a backoff
RATE_LIMITED_STATUS = 429


# Exception types
class MessengerError(Exception):
    """Base exception for pubkychat errors."""
    pass


class InvalidKeyError(MessengerError):
    """Malformed public key text or key bytes."""
    pass


class InvalidPointError(MessengerError):
    """Public key bytes do not decode to a usable curve point."""
    pass


class DecryptionError(MessengerError):
    """Authenticated decryption failed or plaintext is not valid UTF-8."""
    pass


class InvalidEnvelopeError(MessengerError):
    """Stored message record could not be parsed."""
    pass


class RecoveryError(MessengerError):
    """Recovery phrase or recovery file could not be turned into a keypair."""
    pass


class SessionError(MessengerError):
    """The store has no valid session for this keypair."""
    pass


class StoreError(MessengerError):
    """A store operation reported failure."""

    def __init__(self, message: str, path: Optional[str] = None, status: Optional[int] = None) -> None:
        self.path = path
        self.status = status
        super().__init__(message)


class StoreWriteError(StoreError):
    """Writing an object failed."""
    pass


class StoreReadError(StoreError):
    """Reading an object failed."""
    pass


class StoreListError(StoreError):
    """Listing a prefix failed."""
    pass


class StoreDeleteError(StoreError):
    """Deleting an object failed."""
    pass


class RateLimitedError(StoreDeleteError):
    """The store answered 429; the caller may retry after a backoff."""

    def __init__(self, path: Optional[str] = None) -> None:
        super().__init__(f"Rate limited while deleting {path}", path=path, status=RATE_LIMITED_STATUS)


class PartialBatchFailure(MessengerError):
    """
    A multi-item delete stopped on a failing item.

    Deletes are not transactional: ``completed`` lists the ids (or paths)
    that were removed before the failure was reported.
    """

    def __init__(self, failed_id: str, cause: Exception, completed: Optional[list[str]] = None) -> None:
        self.failed_id = failed_id
        self.cause = cause
        self.completed = list(completed or [])
        super().__init__(f"Failed to delete message {failed_id}: {cause}")
