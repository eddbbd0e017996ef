"""Client side of the realtime socket.

``SocketSession`` keeps one WebSocket open to ``/api/v1/ws``, relays every
inbound frame to subscribers in receipt order and reconnects with
exponential backoff until ``stop()`` is called or the server rejects the
credentials.
"""
from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidStatus

from murmur.core.errors import MurmurError
from murmur.core.settings import settings
from murmur.services.crypto import Envelope

logger = logging.getLogger(__name__)

__all__ = ["NotConnectedError", "SocketSession"]

Handler = Callable[[Any], Awaitable[None] | None]

AUTH_REJECTION_STATUSES = frozenset({401, 403})


class NotConnectedError(MurmurError):
    """Raised when emitting while the socket is down."""

    status_code = 503
    default_message = "Socket is not connected"


def socket_url(base_url: str) -> str:
    """Derive the WebSocket endpoint from an HTTP base URL."""
    if base_url.startswith("https://"):
        base_url = "wss://" + base_url[len("https://"):]
    elif base_url.startswith("http://"):
        base_url = "ws://" + base_url[len("http://"):]
    return base_url.rstrip("/") + "/api/v1/ws"


class SocketSession:
    """One authenticated, self-healing realtime connection."""

    def __init__(
        self,
        token: str,
        url: str | None = None,
        *,
        on_auth_failure: Callable[[], Awaitable[None] | None] | None = None,
        reconnect_delay: float | None = None,
        reconnect_delay_max: float | None = None,
        connector: Callable[..., Any] = connect,
    ) -> None:
        self.url = url or socket_url(settings.client_base_url)
        self.on_auth_failure = on_auth_failure
        self.reconnect_delay = (
            settings.client_reconnect_delay_seconds if reconnect_delay is None else reconnect_delay
        )
        self.reconnect_delay_max = (
            settings.client_reconnect_delay_max_seconds
            if reconnect_delay_max is None
            else reconnect_delay_max
        )
        self._token = token
        self._connector = connector
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._connection: Any | None = None
        self._connected = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._stopping = False

    @property
    def connected(self) -> bool:
        return self._connection is not None and self._connected.is_set()

    def on(self, event: str, handler: Handler) -> None:
        """Subscribe ``handler`` to a server event; handlers may be sync or async."""
        self._handlers[event].append(handler)

    def off(self, event: str, handler: Handler | None = None) -> None:
        """Unsubscribe one handler, or every handler of ``event``."""
        if handler is None:
            self._handlers.pop(event, None)
        elif handler in self._handlers.get(event, []):
            self._handlers[event].remove(handler)

    async def start(self) -> None:
        """Begin connecting in the background; no-op if already running."""
        if self._task is not None and not self._task.done():
            return
        self._stopping = False
        self._task = asyncio.create_task(self._run())

    async def wait_connected(self, timeout: float | None = None) -> None:
        await asyncio.wait_for(self._connected.wait(), timeout)

    async def stop(self) -> None:
        """Close the connection for good; no reconnect follows."""
        self._stopping = True
        if self._connection is not None:
            await self._connection.close()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self) -> None:
        delay = self.reconnect_delay
        while not self._stopping:
            try:
                async with self._connector(
                    self.url,
                    additional_headers={"Authorization": f"Bearer {self._token}"},
                ) as connection:
                    self._connection = connection
                    self._connected.set()
                    delay = self.reconnect_delay
                    logger.info("Socket connected to %s", self.url)
                    async for raw in connection:
                        await self._relay(raw)
                logger.info("Socket closed by server")
            except InvalidStatus as exc:
                status_code = exc.response.status_code
                if status_code in AUTH_REJECTION_STATUSES:
                    logger.warning("Socket handshake rejected with status %s", status_code)
                    self._stopping = True
                    await self._notify_auth_failure()
                    break
                logger.warning("Socket handshake failed with status %s", status_code)
            except (ConnectionClosed, InvalidHandshake, OSError) as exc:
                logger.warning("Socket connection lost: %s", exc)
            finally:
                self._connection = None
                self._connected.clear()

            if self._stopping:
                break
            logger.info("Reconnecting in %.1f seconds", delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.reconnect_delay_max)

    async def _notify_auth_failure(self) -> None:
        if self.on_auth_failure is None:
            return
        result = self.on_auth_failure()
        if inspect.isawaitable(result):
            await result

    async def _relay(self, raw: str | bytes) -> None:
        try:
            frame = json.loads(raw)
            event = frame["event"]
        except (ValueError, KeyError, TypeError):
            logger.warning("Ignoring malformed frame")
            return
        for handler in list(self._handlers.get(event, ())):
            try:
                result = handler(frame.get("data"))
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Handler for %s failed", event)

    async def emit(self, event: str, data: Any) -> None:
        """Send one client event.

        Raises:
            NotConnectedError: If the socket is currently down
        """
        if self._connection is None:
            raise NotConnectedError()
        await self._connection.send(json.dumps({"event": event, "data": data}))

    async def join_chat(self, conversation_id: str) -> None:
        await self.emit("joinChat", conversation_id)

    async def leave_chat(self, conversation_id: str) -> None:
        await self.emit("leaveChat", conversation_id)

    async def send_message(
        self,
        conversation_id: str,
        content: str | None = None,
        *,
        message_type: str = "text",
        reply_to: str | None = None,
        envelope: Envelope | None = None,
    ) -> None:
        """Send plain ``content`` or, when given, an encrypted ``envelope``."""
        data: dict[str, Any] = {"conversationId": conversation_id, "type": message_type}
        if envelope is not None:
            data.update(
                content=envelope.ciphertext,
                iv=envelope.iv,
                wrappedKeys=envelope.wrapped_keys,
            )
        elif content is not None:
            data["content"] = content
        else:
            raise ValueError("Either content or envelope is required")
        if reply_to is not None:
            data["replyTo"] = reply_to
        await self.emit("sendMessage", data)

    async def edit_message(
        self,
        message_id: str,
        content: str | None = None,
        *,
        envelope: Envelope | None = None,
    ) -> None:
        data: dict[str, Any] = {"messageId": message_id}
        if envelope is not None:
            data.update(
                content=envelope.ciphertext,
                iv=envelope.iv,
                wrappedKeys=envelope.wrapped_keys,
            )
        elif content is not None:
            data["content"] = content
        else:
            raise ValueError("Either content or envelope is required")
        await self.emit("editMessage", data)

    async def delete_message(self, message_id: str) -> None:
        await self.emit("deleteMessage", message_id)

    async def set_typing(self, conversation_id: str, is_typing: bool) -> None:
        await self.emit("typing", {"conversationId": conversation_id, "isTyping": is_typing})

    async def mark_as_read(self, conversation_id: str, message_id: str) -> None:
        await self.emit("markAsRead", {"conversationId": conversation_id, "messageId": message_id})

    async def add_reaction(self, message_id: str, emoji: str) -> None:
        await self.emit("addReaction", {"messageId": message_id, "emoji": emoji})

    async def remove_reaction(self, message_id: str, emoji: str) -> None:
        await self.emit("removeReaction", {"messageId": message_id, "emoji": emoji})
