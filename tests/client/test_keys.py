"""Tests for client key storage, lookup and message encryption."""

import json
import stat

import httpx
import pytest

from murmur.client.keys import (
    EncryptionSession,
    KeyDirectory,
    KeyDirectoryError,
    LocalKeyStore,
    PublicKeyCache,
)
from murmur.services.crypto import CryptoService, EncryptionError

ME = "1" * 32
PEER = "2" * 32
KEYLESS = "3" * 32
MISSING = "4" * 32


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class KeyServer:
    """In-memory stand-in for the user endpoints, mounted on httpx.MockTransport."""

    def __init__(self, keys: dict[str, str | None]) -> None:
        self.keys = dict(keys)
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"success": False, "error": "boom"})
        if request.method == "PUT" and request.url.path == "/api/v1/users/me/public-key":
            self.keys[ME] = json.loads(request.content)["publicKey"]
            return httpx.Response(200, json={"success": True, "data": {"id": ME}})
        user_id = request.url.path.rsplit("/", 1)[-1]
        if user_id not in self.keys:
            return httpx.Response(404, json={"success": False, "error": "User not found"})
        return httpx.Response(
            200, json={"success": True, "data": {"id": user_id, "publicKey": self.keys[user_id]}}
        )


@pytest.fixture
def server(other_rsa_keypair) -> KeyServer:
    return KeyServer({PEER: other_rsa_keypair[0], KEYLESS: None})


@pytest.fixture
def directory(server) -> KeyDirectory:
    client = httpx.AsyncClient(transport=httpx.MockTransport(server), base_url="http://test")
    return KeyDirectory("token", client=client)


@pytest.fixture
def store(tmp_path) -> LocalKeyStore:
    return LocalKeyStore(tmp_path / "keys")


def test_store_round_trip(store, rsa_keypair) -> None:
    assert store.load(ME) is None

    store.save(ME, *rsa_keypair)

    assert store.load(ME) == rsa_keypair
    mode = stat.S_IMODE((store.directory / f"{ME}.json").stat().st_mode)
    assert mode == 0o600


def test_store_creates_once(store) -> None:
    keypair, created = store.load_or_create(ME)
    again, created_again = store.load_or_create(ME)

    assert created is True
    assert created_again is False
    assert again == keypair


def test_store_clear(store, rsa_keypair) -> None:
    store.save(ME, *rsa_keypair)

    store.clear(ME)
    store.clear(ME)

    assert store.load(ME) is None


def test_cache_expires_after_ttl() -> None:
    clock = FakeClock()
    cache = PublicKeyCache(ttl_seconds=60, clock=clock)
    cache.put(PEER, "key")

    clock.now += 59
    assert cache.get(PEER) == "key"

    clock.now += 1
    assert cache.get(PEER) is None
    assert len(cache) == 0


def test_cache_invalidate_and_clear() -> None:
    cache = PublicKeyCache(ttl_seconds=60)
    cache.put(PEER, "a")
    cache.put(ME, "b")

    cache.invalidate(PEER)
    assert cache.get(PEER) is None
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_fetch_public_key_is_cached(directory, server, other_rsa_keypair) -> None:
    first = await directory.fetch_public_key(PEER)
    second = await directory.fetch_public_key(PEER)

    assert first == second == other_rsa_keypair[0]
    assert len(server.requests) == 1
    assert server.requests[0].headers["authorization"] == "Bearer token"


@pytest.mark.asyncio
async def test_fetch_unpublished_or_unknown_key(directory, server) -> None:
    assert await directory.fetch_public_key(KEYLESS) is None
    assert await directory.fetch_public_key(MISSING) is None
    # Absent keys are not cached.
    assert await directory.fetch_public_key(KEYLESS) is None
    assert len(server.requests) == 3


@pytest.mark.asyncio
async def test_fetch_server_error(directory, server) -> None:
    server.fail_with = 500

    with pytest.raises(KeyDirectoryError):
        await directory.fetch_public_key(PEER)


@pytest.mark.asyncio
async def test_fetch_transport_error() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(refuse), base_url="http://test")
    directory = KeyDirectory("token", client=client)

    with pytest.raises(KeyDirectoryError):
        await directory.fetch_public_key(PEER)
    await directory.aclose()


@pytest.mark.asyncio
async def test_publish_public_key(directory, server, rsa_keypair) -> None:
    await directory.publish_public_key(ME, rsa_keypair[0])

    (request,) = server.requests
    assert request.method == "PUT"
    assert json.loads(request.content) == {"publicKey": rsa_keypair[0]}
    assert directory.cache.get(ME) == rsa_keypair[0]


@pytest.mark.asyncio
async def test_session_publishes_new_keypair(directory, server, store) -> None:
    session = EncryptionSession(directory, store)

    await session.initialize(ME)

    assert session.initialized
    assert server.keys[ME] == store.load(ME)[0]


@pytest.mark.asyncio
async def test_session_reuses_stored_keypair(directory, server, store, rsa_keypair) -> None:
    store.save(ME, *rsa_keypair)
    session = EncryptionSession(directory, store)

    await session.initialize(ME)

    assert session.initialized
    assert server.requests == []


@pytest.mark.asyncio
async def test_session_round_trip(directory, store, rsa_keypair, other_rsa_keypair) -> None:
    store.save(ME, *rsa_keypair)
    session = EncryptionSession(directory, store)
    await session.initialize(ME)

    envelope = await session.encrypt_for_conversation("hello peer", [PEER])

    assert set(envelope.wrapped_keys) == {ME, PEER}
    wire = {
        "content": envelope.ciphertext,
        "encrypted": True,
        "iv": envelope.iv,
        "wrappedKeys": envelope.wrapped_keys,
    }
    assert await session.decrypt_message(wire) == "hello peer"
    assert CryptoService.decrypt(envelope, PEER, other_rsa_keypair[1]) == "hello peer"


@pytest.mark.asyncio
async def test_session_refuses_partial_encryption(directory, store, rsa_keypair) -> None:
    store.save(ME, *rsa_keypair)
    session = EncryptionSession(directory, store)
    await session.initialize(ME)

    with pytest.raises(EncryptionError):
        await session.encrypt_for_conversation("hello", [ME, PEER, KEYLESS])


@pytest.mark.asyncio
async def test_plain_messages_pass_through(directory, store) -> None:
    session = EncryptionSession(directory, store)

    assert await session.decrypt_message({"content": "This message was deleted"}) == (
        "This message was deleted"
    )


@pytest.mark.asyncio
async def test_uninitialized_session(directory, store) -> None:
    session = EncryptionSession(directory, store)

    with pytest.raises(EncryptionError, match="not initialized"):
        await session.encrypt_for_conversation("hello", [PEER])
    with pytest.raises(EncryptionError):
        await session.decrypt_message({"content": "x", "encrypted": True})


@pytest.mark.asyncio
async def test_clear_forgets_everything(directory, store, rsa_keypair) -> None:
    store.save(ME, *rsa_keypair)
    session = EncryptionSession(directory, store)
    await session.initialize(ME)
    await directory.fetch_public_key(PEER)

    await session.clear()

    assert not session.initialized
    assert store.load(ME) is None
    assert len(directory.cache) == 0
