"""
Object store interfaces for pubkychat.

Messages live on a key-value store addressed by public keys. A store path
is ``{owner public key}/pub/...``; only the owner may write or delete
under their own namespace, anyone may read and list.

This module provides the abstract ObjectStore every backend implements, an
in-memory implementation, and an HTTP implementation for homeservers.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Optional

import httpx

from .keys import SigningKeypair
from .types import (
    SessionError,
    StoreDeleteError,
    StoreListError,
    StoreReadError,
    StoreWriteError,
)

log = logging.getLogger(__name__)

URL_SCHEME = "pubky://"
HOST_HEADER = "pubky-host"


def split_store_path(path: str) -> tuple[str, str]:
    """
    Split a store path into its owner and the owner-relative part.

    ``"abc.../pub/x.json"`` gives ``("abc...", "/pub/x.json")``.
    """
    if path.startswith(URL_SCHEME):
        path = path[len(URL_SCHEME):]
    owner, _, rest = path.partition("/")
    return owner, "/" + rest


@dataclass(frozen=True)
class StoreResponse:
    """Status and body returned by a store operation."""

    status: int
    """HTTP-style status code."""

    body: bytes = b""
    """Response body (object contents for get)."""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass
class HomeserverConfig:
    """Configuration for an HTTP homeserver connection."""

    url: str
    """Homeserver base URL."""

    session_cookie: Optional[str] = None
    """Session cookie (``name=value``) obtained by the identity layer."""

    timeout: float = 30.0
    """Request timeout in seconds."""

    @classmethod
    def localhost(cls, port: int = 6286) -> "HomeserverConfig":
        """Creates configuration for a homeserver on localhost."""
        return cls(url=f"http://localhost:{port}")

    def with_session(self, cookie: str) -> "HomeserverConfig":
        """Sets the session cookie."""
        return replace(self, session_cookie=cookie)


class ObjectStore(ABC):
    """Abstract base class for the remote object store."""

    @abstractmethod
    async def sign_in(self, keypair: SigningKeypair) -> None:
        """Establish a session for ``keypair``; required before writes."""
        pass

    @abstractmethod
    async def put(self, path: str, body: bytes) -> StoreResponse:
        """Write an object."""
        pass

    @abstractmethod
    async def get(self, path: str) -> StoreResponse:
        """Read an object."""
        pass

    @abstractmethod
    async def list(self, prefix: str) -> list[str]:
        """
        List object paths under a prefix.

        Raises:
            StoreListError: If the listing failed
        """
        pass

    @abstractmethod
    async def delete(self, path: str) -> StoreResponse:
        """Delete an object."""
        pass


class InMemoryObjectStore(ObjectStore):
    """
    In-memory implementation of ObjectStore.

    Each instance is one session. Use ``connect()`` to get another session
    over the same objects, e.g. one per conversation participant.
    """

    def __init__(self) -> None:
        self._objects: dict[str, bytes] = {}
        self._lock = asyncio.Lock()
        self._owner: Optional[str] = None

    def connect(self) -> "InMemoryObjectStore":
        """Open a new, signed-out session sharing this store's objects."""
        view = InMemoryObjectStore()
        view._objects = self._objects
        view._lock = self._lock
        return view

    def paths(self) -> list[str]:
        """All stored paths, sorted."""
        return sorted(self._objects)

    async def sign_in(self, keypair: SigningKeypair) -> None:
        self._owner = str(keypair.public_key)

    async def put(self, path: str, body: bytes) -> StoreResponse:
        status = self._check_write(path)
        if status is not None:
            return StoreResponse(status)

        async with self._lock:
            self._objects[path] = bytes(body)
        return StoreResponse(201)

    async def get(self, path: str) -> StoreResponse:
        async with self._lock:
            body = self._objects.get(path)
        if body is None:
            return StoreResponse(404)
        return StoreResponse(200, body)

    async def list(self, prefix: str) -> list[str]:
        async with self._lock:
            return sorted(p for p in self._objects if p.startswith(prefix))

    async def delete(self, path: str) -> StoreResponse:
        status = self._check_write(path)
        if status is not None:
            return StoreResponse(status)

        async with self._lock:
            if self._objects.pop(path, None) is None:
                return StoreResponse(404)
        return StoreResponse(204)

    def _check_write(self, path: str) -> Optional[int]:
        if self._owner is None:
            return 401
        owner, _ = split_store_path(path)
        if owner != self._owner:
            return 403
        return None


class HttpObjectStore(ObjectStore):
    """
    ObjectStore backed by a homeserver's HTTP API.

    The session cookie comes from the identity layer; ``sign_in`` only checks
    that the homeserver accepts it for this keypair.
    """

    def __init__(
        self,
        config: HomeserverConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=config.url,
            timeout=config.timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpObjectStore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def sign_in(self, keypair: SigningKeypair) -> None:
        if not self.config.session_cookie:
            raise SessionError("No session cookie configured for homeserver")

        owner = str(keypair.public_key)
        try:
            response = await self._client.get("/session", headers=self._headers(owner))
        except httpx.HTTPError as e:
            raise SessionError(f"Failed to reach homeserver: {e}") from e

        if not response.is_success:
            raise SessionError(f"Session rejected for {owner}: {response.status_code}")
        log.debug("Session confirmed for %s", owner)

    async def put(self, path: str, body: bytes) -> StoreResponse:
        owner, rest = split_store_path(path)
        try:
            response = await self._client.put(rest, content=body, headers=self._headers(owner))
        except httpx.HTTPError as e:
            raise StoreWriteError(f"Failed to write {path}: {e}", path=path) from e
        return StoreResponse(response.status_code, response.content)

    async def get(self, path: str) -> StoreResponse:
        owner, rest = split_store_path(path)
        try:
            response = await self._client.get(rest, headers=self._headers(owner))
        except httpx.HTTPError as e:
            raise StoreReadError(f"Failed to read {path}: {e}", path=path) from e
        return StoreResponse(response.status_code, response.content)

    async def list(self, prefix: str) -> list[str]:
        owner, rest = split_store_path(prefix)
        if not rest.endswith("/"):
            rest += "/"

        try:
            response = await self._client.get(rest, headers=self._headers(owner))
        except httpx.HTTPError as e:
            raise StoreListError(f"Failed to list {prefix}: {e}", path=prefix) from e

        if not response.is_success:
            raise StoreListError(
                f"Failed to list {prefix}: {response.status_code}",
                path=prefix,
                status=response.status_code,
            )

        paths = []
        for line in response.text.splitlines():
            line = line.strip()
            if not line:
                continue
            if line.startswith(URL_SCHEME):
                line = line[len(URL_SCHEME):]
            paths.append(line)
        return paths

    async def delete(self, path: str) -> StoreResponse:
        owner, rest = split_store_path(path)
        try:
            response = await self._client.delete(rest, headers=self._headers(owner))
        except httpx.HTTPError as e:
            raise StoreDeleteError(f"Failed to delete {path}: {e}", path=path) from e
        return StoreResponse(response.status_code, response.content)

    def _headers(self, owner: str) -> dict[str, str]:
        headers = {HOST_HEADER: owner}
        if self.config.session_cookie:
            headers["cookie"] = self.config.session_cookie
        return headers
