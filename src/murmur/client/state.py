"""Optimistic in-memory chat state driven by socket events."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from murmur.core.settings import settings
from murmur.utils.ids import new_id

from .session import SocketSession

logger = logging.getLogger(__name__)

__all__ = ["ChatState", "TypingNotifier"]

SERVER_EVENTS = (
    "message",
    "messageUpdated",
    "messageDeleted",
    "typing",
    "userOnline",
    "userOffline",
    "chatCreated",
    "chatUpdated",
    "chatDeleted",
)


class ChatState:
    """Conversations, messages, typing and presence as seen by one client.

    Messages are stored in wire format (camelCase dicts). Optimistic sends
    carry ``pending=True`` and a local id until the server echo replaces them.
    """

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        self.conversations: dict[str, dict[str, Any]] = {}
        self.messages: dict[str, list[dict[str, Any]]] = {}
        self.typing: dict[str, set[str]] = {}
        self.online_users: set[str] = set()
        self.last_seen: dict[str, str] = {}
        self._handlers: dict[str, Callable[[Any], None]] = {
            "message": self._on_message,
            "messageUpdated": self._on_message_updated,
            "messageDeleted": self._on_message_deleted,
            "typing": self._on_typing,
            "userOnline": self._on_user_online,
            "userOffline": self._on_user_offline,
            "chatCreated": self._on_chat_created,
            "chatUpdated": self._on_chat_updated,
            "chatDeleted": self._on_chat_deleted,
        }

    def bind(self, session: SocketSession) -> None:
        """Subscribe to every server event this state understands."""
        for event in SERVER_EVENTS:
            session.on(event, self._handlers[event])

    def apply(self, event: str, data: Any) -> None:
        """Apply one server event; unknown events are ignored."""
        handler = self._handlers.get(event)
        if handler is not None:
            handler(data)

    def set_conversations(self, conversations: list[dict[str, Any]]) -> None:
        self.conversations = {conv["id"]: conv for conv in conversations}

    def set_messages(self, conversation_id: str, messages: list[dict[str, Any]]) -> None:
        self.messages[conversation_id] = list(messages)

    def add_optimistic(
        self,
        conversation_id: str,
        content: str,
        message_type: str = "text",
        *,
        sent_content: str | None = None,
    ) -> str:
        """Record a message that has been sent but not yet echoed.

        ``sent_content`` is what went over the wire when it differs from the
        displayed ``content`` (ciphertext for encrypted sends); the echo is
        matched against it.

        Returns:
            The local id of the pending entry
        """
        local_id = f"local-{new_id()}"
        self.messages.setdefault(conversation_id, []).append(
            {
                "id": local_id,
                "conversationId": conversation_id,
                "senderId": self.user_id,
                "content": content,
                "type": message_type,
                "pending": True,
                "sentContent": content if sent_content is None else sent_content,
            }
        )
        return local_id

    def pending(self, conversation_id: str) -> list[dict[str, Any]]:
        return [m for m in self.messages.get(conversation_id, []) if m.get("pending")]

    def _on_message(self, message: dict[str, Any]) -> None:
        conversation_id = message["conversationId"]
        bucket = self.messages.setdefault(conversation_id, [])
        if any(existing["id"] == message["id"] for existing in bucket):
            return

        replaced = False
        if message.get("senderId") == self.user_id:
            # Echoes arrive in send order; messages from other devices match nothing.
            for index, existing in enumerate(bucket):
                if (
                    existing.get("pending")
                    and existing["sentContent"] == message.get("content")
                    and existing["type"] == message.get("type", "text")
                ):
                    bucket[index] = message
                    replaced = True
                    break
        if not replaced:
            bucket.append(message)

        conversation = self.conversations.get(conversation_id)
        if conversation is not None:
            conversation["lastMessageId"] = message["id"]
        self.typing.get(conversation_id, set()).discard(message.get("senderId", ""))

    def _on_message_updated(self, message: dict[str, Any]) -> None:
        bucket = self.messages.get(message["conversationId"], [])
        for index, existing in enumerate(bucket):
            if existing["id"] == message["id"]:
                bucket[index] = message
                return

    def _on_message_deleted(self, message_id: str) -> None:
        for conversation_id, bucket in self.messages.items():
            remaining = [m for m in bucket if m["id"] != message_id]
            if len(remaining) != len(bucket):
                self.messages[conversation_id] = remaining
                return

    def _on_typing(self, data: dict[str, Any]) -> None:
        users = self.typing.setdefault(data["conversationId"], set())
        if data.get("isTyping"):
            users.add(data["userId"])
        else:
            users.discard(data["userId"])

    def _on_user_online(self, data: dict[str, Any]) -> None:
        self.online_users.add(data["userId"])

    def _on_user_offline(self, data: dict[str, Any]) -> None:
        self.online_users.discard(data["userId"])
        if data.get("lastSeen"):
            self.last_seen[data["userId"]] = data["lastSeen"]

    def _on_chat_created(self, conversation: dict[str, Any]) -> None:
        if conversation["id"] not in self.conversations:
            self.conversations[conversation["id"]] = conversation

    def _on_chat_updated(self, conversation: dict[str, Any]) -> None:
        self.conversations[conversation["id"]] = conversation

    def _on_chat_deleted(self, data: dict[str, Any]) -> None:
        conversation_id = data["conversationId"]
        self.conversations.pop(conversation_id, None)
        self.messages.pop(conversation_id, None)
        self.typing.pop(conversation_id, None)


class TypingNotifier:
    """Damp typing notifications for one composer.

    The first input change sends ``typing(true)``; ``typing(false)`` follows
    once no input has arrived for ``idle_seconds``.
    """

    def __init__(
        self,
        send: Callable[[str, bool], Awaitable[None]],
        idle_seconds: float | None = None,
    ) -> None:
        self._send = send
        self.idle_seconds = settings.typing_idle_seconds if idle_seconds is None else idle_seconds
        self._active: set[str] = set()
        self._timers: dict[str, asyncio.Task[None]] = {}

    def is_typing(self, conversation_id: str) -> bool:
        return conversation_id in self._active

    async def input_changed(self, conversation_id: str) -> None:
        """Register a keystroke in ``conversation_id``'s composer."""
        if conversation_id not in self._active:
            self._active.add(conversation_id)
            await self._send(conversation_id, True)
        timer = self._timers.pop(conversation_id, None)
        if timer is not None:
            timer.cancel()
        self._timers[conversation_id] = asyncio.create_task(self._expire(conversation_id))

    async def _expire(self, conversation_id: str) -> None:
        await asyncio.sleep(self.idle_seconds)
        self._timers.pop(conversation_id, None)
        await self.stop_typing(conversation_id)

    async def stop_typing(self, conversation_id: str) -> None:
        """Send ``typing(false)`` now, e.g. after the message was sent."""
        timer = self._timers.pop(conversation_id, None)
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()
        if conversation_id in self._active:
            self._active.discard(conversation_id)
            await self._send(conversation_id, False)

    async def close(self) -> None:
        for conversation_id in list(self._active):
            await self.stop_typing(conversation_id)
