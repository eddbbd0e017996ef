"""Client-side key management.

Keypairs live on local disk as one JSON file per user. Public keys of other
users are fetched over HTTP and cached for ``PUBLIC_KEY_CACHE_TTL_SECONDS``.
RSA work is pushed onto worker threads so it never stalls the event loop.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
from cryptography.hazmat.primitives.asymmetric import rsa

from murmur.core.errors import MurmurError
from murmur.core.settings import settings
from murmur.services.crypto import CryptoService, Envelope, EncryptionError

logger = logging.getLogger(__name__)

__all__ = [
    "EncryptionSession",
    "KeyDirectory",
    "KeyDirectoryError",
    "LocalKeyStore",
    "PublicKeyCache",
]


class KeyDirectoryError(MurmurError):
    """Raised when the server cannot be reached for key lookup or publication."""

    status_code = 502
    default_message = "Failed to get encryption keys for participants"


class LocalKeyStore:
    """Persist identity keypairs as ``<directory>/<user_id>.json``."""

    def __init__(self, directory: str | os.PathLike[str] | None = None) -> None:
        self.directory = Path(directory or settings.client_keystore_dir)

    def _path(self, user_id: str) -> Path:
        return self.directory / f"{user_id}.json"

    def load(self, user_id: str) -> tuple[str, str] | None:
        """Return ``(public_key_b64, private_key_b64)`` or None if nothing is stored."""
        path = self._path(user_id)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as handle:
            record = json.load(handle)
        return record["public_key_b64"], record["private_key_b64"]

    def save(self, user_id: str, public_key_b64: str, private_key_b64: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(user_id)
        with path.open("w", encoding="utf-8") as handle:
            json.dump(
                {"public_key_b64": public_key_b64, "private_key_b64": private_key_b64},
                handle,
            )
        path.chmod(0o600)

    def load_or_create(self, user_id: str) -> tuple[tuple[str, str], bool]:
        """Return the stored keypair, generating and saving one if absent.

        Returns:
            Tuple of (keypair, created)
        """
        existing = self.load(user_id)
        if existing is not None:
            return existing, False
        logger.info("Generating new keypair for user %s", user_id)
        public_key_b64, private_key_b64 = CryptoService.generate_identity_keypair()
        self.save(user_id, public_key_b64, private_key_b64)
        return (public_key_b64, private_key_b64), True

    def clear(self, user_id: str) -> None:
        """Remove a stored keypair; content encrypted to it becomes unreadable."""
        self._path(user_id).unlink(missing_ok=True)


@dataclass
class _CachedKey:
    public_key: str
    fetched_at: float


class PublicKeyCache:
    """Per-process cache of other users' public keys with a fixed TTL."""

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = (
            settings.public_key_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        )
        self._clock = clock
        self._entries: dict[str, _CachedKey] = {}

    def get(self, user_id: str) -> str | None:
        """Return a fresh cached key, evicting it if it has expired."""
        entry = self._entries.get(user_id)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self.ttl_seconds:
            del self._entries[user_id]
            return None
        return entry.public_key

    def put(self, user_id: str, public_key: str) -> None:
        self._entries[user_id] = _CachedKey(public_key, self._clock())

    def invalidate(self, user_id: str) -> None:
        self._entries.pop(user_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class KeyDirectory:
    """HTTP access to the server's public key directory."""

    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        cache: PublicKeyCache | None = None,
    ) -> None:
        self.cache = cache or PublicKeyCache()
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.client_base_url,
            timeout=settings.client_http_timeout_seconds,
        )
        self._headers = {"Authorization": f"Bearer {token}"}

    async def fetch_public_key(self, user_id: str) -> str | None:
        """Return a user's published key, or None if they have not published one."""
        cached = self.cache.get(user_id)
        if cached is not None:
            return cached

        try:
            response = await self._client.get(f"/api/v1/users/{user_id}", headers=self._headers)
        except httpx.HTTPError as exc:
            raise KeyDirectoryError() from exc
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.is_error:
            raise KeyDirectoryError(f"Key lookup failed with status {response.status_code}")

        public_key = response.json().get("data", {}).get("publicKey")
        if public_key:
            self.cache.put(user_id, public_key)
        else:
            logger.warning("No public key found for user %s", user_id)
        return public_key or None

    async def publish_public_key(self, user_id: str, public_key: str) -> None:
        """Upload the caller's public key."""
        try:
            response = await self._client.put(
                "/api/v1/users/me/public-key",
                json={"publicKey": public_key},
                headers=self._headers,
            )
        except httpx.HTTPError as exc:
            raise KeyDirectoryError("Failed to upload public key") from exc
        if response.is_error:
            raise KeyDirectoryError(f"Key upload failed with status {response.status_code}")
        self.cache.put(user_id, public_key)
        logger.info("Public key uploaded for user %s", user_id)

    async def aclose(self) -> None:
        await self._client.aclose()


class EncryptionSession:
    """Encrypt outgoing and decrypt incoming messages for the signed-in user."""

    def __init__(self, directory: KeyDirectory, store: LocalKeyStore | None = None) -> None:
        self.directory = directory
        self.store = store or LocalKeyStore()
        self.user_id: str | None = None
        self._public_key: str | None = None
        self._private_key: rsa.RSAPrivateKey | None = None

    @property
    def initialized(self) -> bool:
        return self._private_key is not None

    async def initialize(self, user_id: str) -> None:
        """Load or create the user's keypair, publishing it when newly created."""
        (public_key, private_key), created = await asyncio.to_thread(
            self.store.load_or_create, user_id
        )
        self._private_key = await asyncio.to_thread(CryptoService.load_private_key, private_key)
        self._public_key = public_key
        self.user_id = user_id
        if created:
            await self.directory.publish_public_key(user_id, public_key)

    async def encrypt_for_conversation(
        self,
        plaintext: str,
        participant_ids: Iterable[str],
    ) -> Envelope:
        """Encrypt for every participant, the sender included.

        Raises:
            EncryptionError: If the session is not initialized or a participant
                has no usable key
        """
        if self.user_id is None or self._public_key is None:
            raise EncryptionError("Encryption not initialized")

        keys: dict[str, str | None] = {}
        for user_id in dict.fromkeys(participant_ids):
            if user_id == self.user_id:
                keys[user_id] = self._public_key
            else:
                keys[user_id] = await self.directory.fetch_public_key(user_id)
        keys.setdefault(self.user_id, self._public_key)
        return await asyncio.to_thread(CryptoService.encrypt_for_recipients, plaintext, keys)

    async def decrypt_message(self, message: Mapping[str, Any]) -> str:
        """Return the plaintext of a wire-format message.

        Unencrypted messages (including deleted placeholders) are returned as-is.
        """
        if not message.get("encrypted"):
            return str(message.get("content", ""))
        if self.user_id is None or self._private_key is None:
            raise EncryptionError("Encryption not initialized")
        envelope = Envelope(
            ciphertext=message["content"],
            iv=message.get("iv") or "",
            wrapped_keys=dict(message.get("wrappedKeys") or {}),
        )
        return await asyncio.to_thread(
            CryptoService.decrypt, envelope, self.user_id, self._private_key
        )

    async def clear(self) -> None:
        """Forget the keypair and cached keys, and delete the stored keypair."""
        if self.user_id is not None:
            await asyncio.to_thread(self.store.clear, self.user_id)
        self.directory.cache.clear()
        self.user_id = None
        self._public_key = None
        self._private_key = None
