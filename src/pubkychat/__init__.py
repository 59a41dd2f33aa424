"""
pubkychat - Private messaging on public-key addressed storage

Python implementation of pairwise end-to-end encrypted messaging using
Ed25519 identities, X25519 shared secrets and XSalsa20-Poly1305.
"""

from .keys import (
    PublicKey,
    SigningKeypair,
    secret_to_x25519,
    public_to_x25519,
)
from .crypto import (
    generate_shared_secret,
    generate_conversation_path,
    encrypt,
    decrypt,
)
from .signature import message_digest, sign_message, verify_message
from .envelope import PrivateMessage, encode_envelope, decode_envelope
from .recovery import (
    keypair_from_recovery_phrase,
    generate_recovery_phrase,
    create_recovery_file,
    decrypt_recovery_file,
)
from .types import (
    DecryptedMessage,
    SIGNATURE_SIZE,
    MessengerError,
    InvalidKeyError,
    InvalidPointError,
    DecryptionError,
    InvalidEnvelopeError,
    RecoveryError,
    SessionError,
    StoreError,
    StoreWriteError,
    StoreReadError,
    StoreListError,
    StoreDeleteError,
    RateLimitedError,
    PartialBatchFailure,
)
from .models import Profile, FollowedUser
from .store import (
    ObjectStore,
    StoreResponse,
    HomeserverConfig,
    InMemoryObjectStore,
    HttpObjectStore,
)
from .client import (
    MessengerConfig,
    PrivateMessengerClient,
)

__version__ = "0.1.0"

__all__ = [
    # Keys
    "PublicKey",
    "SigningKeypair",
    "secret_to_x25519",
    "public_to_x25519",
    # Crypto
    "generate_shared_secret",
    "generate_conversation_path",
    "encrypt",
    "decrypt",
    # Signature
    "message_digest",
    "sign_message",
    "verify_message",
    "SIGNATURE_SIZE",
    # Envelope
    "PrivateMessage",
    "encode_envelope",
    "decode_envelope",
    # Recovery
    "keypair_from_recovery_phrase",
    "generate_recovery_phrase",
    "create_recovery_file",
    "decrypt_recovery_file",
    # Types
    "DecryptedMessage",
    # Models
    "Profile",
    "FollowedUser",
    # Errors
    "MessengerError",
    "InvalidKeyError",
    "InvalidPointError",
    "DecryptionError",
    "InvalidEnvelopeError",
    "RecoveryError",
    "SessionError",
    "StoreError",
    "StoreWriteError",
    "StoreReadError",
    "StoreListError",
    "StoreDeleteError",
    "RateLimitedError",
    "PartialBatchFailure",
    # Store
    "ObjectStore",
    "StoreResponse",
    "HomeserverConfig",
    "InMemoryObjectStore",
    "HttpObjectStore",
    # Client
    "MessengerConfig",
    "PrivateMessengerClient",
]
