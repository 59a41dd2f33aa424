"""
pubkychat client for end-to-end encrypted private messaging.

The PrivateMessengerClient provides a high-level API for sending, reading
and deleting encrypted messages kept on a public-key addressed object store.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, Optional

from .crypto import generate_conversation_path
from .envelope import PrivateMessage, decode_envelope, encode_envelope
from .keys import PublicKey, PublicKeyLike, SigningKeypair, as_public_key
from .models import FollowedUser, Profile
from .recovery import DEFAULT_LANGUAGE, decrypt_recovery_file, keypair_from_recovery_phrase
from .store import ObjectStore, StoreResponse
from .types import (
    FOLLOWS_PATH,
    MESSAGE_SUFFIX,
    PROFILE_PATH,
    RATE_LIMITED_STATUS,
    DecryptedMessage,
    DecryptionError,
    InvalidEnvelopeError,
    InvalidKeyError,
    PartialBatchFailure,
    RateLimitedError,
    StoreDeleteError,
    StoreError,
    StoreListError,
    StoreReadError,
    StoreWriteError,
)

log = logging.getLogger(__name__)


@dataclass
class MessengerConfig:
    """Rate-limit policy for bulk deletes."""
    delete_batch_size: int = 5
    batch_pause: timedelta = timedelta(milliseconds=200)
    rate_limit_backoff: timedelta = timedelta(seconds=1)

    def __post_init__(self) -> None:
        if self.delete_batch_size < 1:
            raise ValueError(f"delete_batch_size must be positive, got {self.delete_batch_size}")


class PrivateMessengerClient:
    """
    High-level client for private messaging.

    The PrivateMessengerClient provides methods for:
    - Sending encrypted messages
    - Fetching, decrypting and verifying a conversation
    - Deleting single messages, several messages or a whole conversation
    - Reading profiles and managing follows

    Messages for a pair are written by each party into their own namespace,
    under a conversation path both parties derive from their shared secret.

    Example usage:
        ```python
        store = HttpObjectStore(HomeserverConfig(url, session_cookie=cookie))
        client = PrivateMessengerClient.from_recovery_phrase(phrase, store)
        await client.sign_in()

        msg_id = await client.send_message(peer, "Hello!")
        for msg in await client.get_messages(peer):
            print(f"{msg.sender}: {msg.content} ({msg.verified})")
        ```
    """

    def __init__(
        self,
        keypair: SigningKeypair,
        store: ObjectStore,
        config: Optional[MessengerConfig] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            keypair: The signing keypair for this session.
            store: The object store to read and write messages.
            config: Delete batching policy (default: MessengerConfig()).
        """
        self.keypair = keypair
        self.store = store
        self.config = config or MessengerConfig()

    @classmethod
    def from_recovery_phrase(
        cls,
        phrase: str,
        store: ObjectStore,
        passphrase: str = "",
        language: str = DEFAULT_LANGUAGE,
        config: Optional[MessengerConfig] = None,
    ) -> "PrivateMessengerClient":
        """Create a client from a BIP39 recovery phrase."""
        keypair = keypair_from_recovery_phrase(phrase, passphrase=passphrase, language=language)
        return cls(keypair, store, config)

    @classmethod
    def from_recovery_file(
        cls,
        data: bytes,
        store: ObjectStore,
        passphrase: str = "",
        config: Optional[MessengerConfig] = None,
    ) -> "PrivateMessengerClient":
        """Create a client from encrypted recovery file bytes."""
        return cls(decrypt_recovery_file(data, passphrase), store, config)

    @property
    def public_key(self) -> PublicKey:
        """The client's public key."""
        return self.keypair.public_key

    @property
    def public_key_string(self) -> str:
        """The client's public key as text."""
        return str(self.keypair.public_key)

    async def sign_in(self) -> None:
        """Establish the store session; required before any write."""
        await self.store.sign_in(self.keypair)

    # MARK: - Messages

    def conversation_prefix(self, other: PublicKeyLike, owner: Optional[PublicKeyLike] = None) -> str:
        """
        The store prefix holding one side of a conversation.

        Args:
            other: The other participant.
            owner: Whose namespace (default: ours).
        """
        owner_key = self.public_key if owner is None else as_public_key(owner)
        return f"{owner_key}{generate_conversation_path(self.keypair, other)}"

    async def send_message(self, recipient: PublicKeyLike, content: str) -> str:
        """
        Send an encrypted message.

        Args:
            recipient: The recipient's public key.
            content: The message text.

        Returns:
            The new message's ID.

        Raises:
            StoreWriteError: If the store does not accept the write.
            InvalidPointError: If the recipient key is not a valid point.
        """
        recipient = as_public_key(recipient)
        message = PrivateMessage.create(self.keypair, recipient, content)
        msg_id = PrivateMessage.generate_id()
        path = self._message_path(self.conversation_prefix(recipient), msg_id)

        response = await self.store.put(path, encode_envelope(message))
        if not response.ok:
            raise StoreWriteError(
                f"Failed to store message: {response.status}",
                path=path,
                status=response.status,
            )

        log.debug("Stored message %s for %s", msg_id, recipient)
        return msg_id

    async def get_messages(self, other: PublicKeyLike) -> list[DecryptedMessage]:
        """
        Get all messages in a conversation, oldest first.

        Objects that cannot be read, parsed or decrypted are skipped.

        Args:
            other: The other participant's public key.

        Returns:
            Decrypted messages sorted by timestamp.
        """
        other = as_public_key(other)
        prefixes = [
            self.conversation_prefix(other),
            self.conversation_prefix(other, owner=other),
        ]

        listings = await asyncio.gather(*(self._list_or_empty(p) for p in prefixes))
        # A conversation with ourselves lists the same prefix twice
        paths = list(dict.fromkeys(p for listing in listings for p in listing))

        results = await asyncio.gather(*(self._fetch_message(p, other) for p in paths))
        messages = [m for m in results if m is not None]
        messages.sort(key=lambda m: m.timestamp)

        log.debug("Fetched %d of %d messages with %s", len(messages), len(paths), other)
        return messages

    async def delete_message(self, message_id: str, other: PublicKeyLike) -> None:
        """
        Delete one of our messages from a conversation.

        Raises:
            RateLimitedError: If the store asks us to back off.
            StoreDeleteError: If the delete fails.
        """
        await self._delete(self._message_path(self.conversation_prefix(other), message_id))

    async def delete_messages(self, message_ids: Iterable[str], other: PublicKeyLike) -> None:
        """
        Delete several of our messages concurrently.

        Raises:
            PartialBatchFailure: Names the first failing ID (in input order).
                Deletes that succeeded are not rolled back.
        """
        message_ids = list(message_ids)
        if not message_ids:
            return

        prefix = self.conversation_prefix(other)
        results = await asyncio.gather(
            *(self._delete(self._message_path(prefix, msg_id)) for msg_id in message_ids),
            return_exceptions=True,
        )

        completed = [msg_id for msg_id, result in zip(message_ids, results) if result is None]
        for msg_id, result in zip(message_ids, results):
            if isinstance(result, BaseException):
                raise PartialBatchFailure(msg_id, result, completed) from result

    async def clear_messages(self, other: PublicKeyLike) -> int:
        """
        Delete all messages we sent in a conversation.

        Deletes run in concurrent batches with a pause between batches. A
        rate-limited delete is retried once after a backoff.

        Returns:
            The number of deleted messages (0 if there was nothing to clear).

        Raises:
            PartialBatchFailure: On the first delete that still fails.
                Earlier batches stay deleted.
        """
        prefix = self.conversation_prefix(other)
        try:
            paths = await self.store.list(prefix)
        except StoreListError as e:
            log.debug("Nothing to clear under %s: %s", prefix, e)
            return 0

        batch_size = self.config.delete_batch_size
        deleted = 0
        for start in range(0, len(paths), batch_size):
            batch = paths[start:start + batch_size]
            results = await asyncio.gather(
                *(self._delete_with_retry(path) for path in batch),
                return_exceptions=True,
            )

            for path, result in zip(batch, results):
                if isinstance(result, BaseException):
                    completed = [_message_id(p) for p in paths[:start]]
                    completed += [_message_id(p) for p, r in zip(batch, results) if r is None]
                    raise PartialBatchFailure(_message_id(path), result, completed) from result

            deleted += len(batch)
            if start + batch_size < len(paths):
                await asyncio.sleep(self.config.batch_pause.total_seconds())

        log.debug("Cleared %d messages under %s", deleted, prefix)
        return deleted

    # MARK: - Profiles and Follows

    async def get_own_profile(self) -> Optional[Profile]:
        """Get the user's own profile (None if missing or unparsable)."""
        return await self.get_profile(self.public_key)

    async def get_profile(self, pubky: PublicKeyLike) -> Optional[Profile]:
        """Get a user's profile (None if missing or unparsable)."""
        response = await self.store.get(f"{as_public_key(pubky)}{PROFILE_PATH}")
        if not response.ok:
            return None
        return Profile.from_json(response.body)

    async def get_user_profile(self, follow_url: str) -> FollowedUser:
        """
        Resolve a follow entry into a FollowedUser.

        The followed key is the last path segment of ``follow_url``.
        """
        pubky = follow_url.rstrip("/").rsplit("/", 1)[-1]
        try:
            profile = await self.get_profile(pubky)
        except (StoreError, InvalidKeyError) as e:
            log.warning("Could not load profile for %s: %s", pubky, e)
            profile = None

        return FollowedUser(pubky=pubky, name=profile.name if profile else None)

    async def get_followed_users(self) -> list[FollowedUser]:
        """Get the users we follow, with their profile names."""
        return await self.get_followed_users_for(self.public_key)

    async def get_followed_users_for(self, pubky: PublicKeyLike) -> list[FollowedUser]:
        """Get the users a given key follows; profiles are fetched concurrently."""
        follow_urls = await self._list_or_empty(f"{as_public_key(pubky)}{FOLLOWS_PATH}")
        return list(await asyncio.gather(*(self.get_user_profile(url) for url in follow_urls)))

    async def put_follow(self, target: PublicKeyLike) -> None:
        """
        Follow a user.

        Raises:
            StoreWriteError: If the store does not accept the write.
        """
        path = f"{self.public_key}{FOLLOWS_PATH}{as_public_key(target)}"
        body = json.dumps({"created_at": int(time.time())}).encode("utf-8")

        response = await self.store.put(path, body)
        if not response.ok:
            raise StoreWriteError(
                f"Failed to create follow: {response.status}",
                path=path,
                status=response.status,
            )

    async def delete_follow(self, target: PublicKeyLike) -> None:
        """Unfollow a user."""
        await self._delete(f"{self.public_key}{FOLLOWS_PATH}{as_public_key(target)}")

    # MARK: - Private Helpers

    @staticmethod
    def _message_path(prefix: str, message_id: str) -> str:
        return f"{prefix}{message_id}{MESSAGE_SUFFIX}"

    async def _list_or_empty(self, prefix: str) -> list[str]:
        """List a prefix; a failed listing counts as no objects."""
        try:
            return await self.store.list(prefix)
        except StoreListError as e:
            log.debug("Listing %s failed: %s", prefix, e)
            return []

    async def _fetch_message(self, path: str, other: PublicKey) -> Optional[DecryptedMessage]:
        """Fetch and decrypt one stored message; None if it is unusable."""
        try:
            response = await self.store.get(path)
            if not response.ok:
                raise StoreReadError(f"Failed to read message: {response.status}", path=path, status=response.status)

            message = decode_envelope(response.body)
            return message.decrypt(self.keypair, other)
        except (StoreError, InvalidEnvelopeError, DecryptionError) as e:
            log.warning("Skipping message at %s: %s", path, e)
            return None

    async def _delete(self, path: str) -> None:
        response = await self.store.delete(path)
        _check_delete(path, response)

    async def _delete_with_retry(self, path: str) -> None:
        try:
            await self._delete(path)
        except RateLimitedError:
            backoff = self.config.rate_limit_backoff.total_seconds()
            log.warning("Rate limited deleting %s, retrying in %.1fs", path, backoff)
            await asyncio.sleep(backoff)
            await self._delete(path)


def _check_delete(path: str, response: StoreResponse) -> None:
    if response.status == RATE_LIMITED_STATUS:
        raise RateLimitedError(path)
    if not response.ok:
        raise StoreDeleteError(
            f"Failed to delete {path}: {response.status}",
            path=path,
            status=response.status,
        )


def _message_id(path: str) -> str:
    """The message ID from a message path (the path itself if it does not match)."""
    name = path.rsplit("/", 1)[-1]
    if name.endswith(MESSAGE_SUFFIX):
        return name[:-len(MESSAGE_SUFFIX)]
    return path
