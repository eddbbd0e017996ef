"""Socket event handlers.

The dispatcher turns one inbound event into a list of delivery
instructions. It never touches sockets itself; the realtime hub applies the
instructions on the event loop. Handlers run synchronously against a
SQLAlchemy session so the endpoint can run them on a worker thread.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from murmur.core.errors import (
    AuthorizationError,
    MurmurError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from murmur.db.time import utcnow
from murmur.repositories.conversation_repo import ConversationRepository
from murmur.repositories.user_repo import UserRepository
from murmur.schemas.events import (
    AddReactionEvent,
    ClientEvent,
    DeleteMessageEvent,
    EditMessageEvent,
    JoinChatEvent,
    LeaveChatEvent,
    MarkAsReadEvent,
    RemoveReactionEvent,
    SendMessageEvent,
    ServerEvent,
    TypingEvent,
    parse_client_event,
)
from murmur.schemas.message import MessageResponse
from murmur.services import membership
from murmur.services.messages import MessageService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Broadcast:
    """Send to every connection joined to ``room``."""

    room: str
    event: str
    data: Any
    exclude_connection: str | None = None


@dataclass(frozen=True)
class BroadcastAll:
    """Send to every live connection."""

    event: str
    data: Any
    exclude_connection: str | None = None


@dataclass(frozen=True)
class Reply:
    """Send to the initiating connection only."""

    event: str
    data: Any


@dataclass(frozen=True)
class JoinRoom:
    room: str


@dataclass(frozen=True)
class LeaveRoom:
    room: str


Instruction = Union[Broadcast, BroadcastAll, Reply, JoinRoom, LeaveRoom]


@dataclass(frozen=True)
class ConnectionContext:
    """Identity of the connection an event arrived on."""

    user_id: str
    connection_id: str


def error_reply(message: str) -> Reply:
    return Reply(ServerEvent.ERROR.value, message)


class EventDispatcher:
    """Route validated client events to their handlers."""

    def __init__(self, db: Session, now: Callable[[], datetime] = utcnow) -> None:
        self.db = db
        self.now = now
        self.messages = MessageService(db, now=now)
        self.conversations = ConversationRepository(db)
        self.users = UserRepository(db)
        # One session per connection; dispatch and disconnect may run on different threads.
        self._lock = threading.Lock()
        self._handlers: dict[str, Callable[[ConnectionContext, Any], list[Instruction]]] = {
            "joinChat": self._join_chat,
            "leaveChat": self._leave_chat,
            "sendMessage": self._send_message,
            "editMessage": self._edit_message,
            "deleteMessage": self._delete_message,
            "typing": self._typing,
            "markAsRead": self._mark_as_read,
            "addReaction": self._add_reaction,
            "removeReaction": self._remove_reaction,
        }

    def dispatch_raw(self, ctx: ConnectionContext, raw: str | bytes) -> list[Instruction]:
        """Parse a frame and dispatch it; malformed frames yield an error reply."""
        try:
            event = parse_client_event(raw)
        except ValidationError as exc:
            logger.info("Rejected frame from %s: %s", ctx.connection_id, exc.message)
            return [error_reply(exc.message)]
        return self.dispatch(ctx, event)

    def dispatch(self, ctx: ConnectionContext, event: ClientEvent) -> list[Instruction]:
        """Run the handler for ``event`` and return the resulting instructions."""
        handler = self._handlers[event.event]
        with self._lock:
            # Other connections may have written since this session last read.
            self.db.expire_all()
            try:
                return handler(ctx, event)
            except MurmurError as exc:
                return [error_reply(exc.message)]
            except SQLAlchemyError:
                self.db.rollback()
                logger.error(
                    "Storage failure handling %s from %s", event.event, ctx.user_id, exc_info=True
                )
                return [error_reply(StorageError().message)]

    # Presence

    def connect(self, ctx: ConnectionContext) -> list[Instruction]:
        """Mark the user online and announce it to everyone else."""
        self._store_presence(ctx.user_id, online=True)
        logger.info("User %s connected on %s", ctx.user_id, ctx.connection_id)
        return [
            BroadcastAll(
                ServerEvent.USER_ONLINE.value,
                {"userId": ctx.user_id},
                exclude_connection=ctx.connection_id,
            )
        ]

    def disconnect(self, ctx: ConnectionContext) -> list[Instruction]:
        """Mark the user offline and announce it to everyone else."""
        last_seen = self._store_presence(ctx.user_id, online=False)
        logger.info("User %s disconnected from %s", ctx.user_id, ctx.connection_id)
        return [
            BroadcastAll(
                ServerEvent.USER_OFFLINE.value,
                {"userId": ctx.user_id, "lastSeen": last_seen.isoformat()},
                exclude_connection=ctx.connection_id,
            )
        ]

    def _store_presence(self, user_id: str, *, online: bool) -> datetime:
        seen_at = self.now()
        with self._lock:
            try:
                self.db.expire_all()
                self.users.set_presence(user_id, online=online, seen_at=seen_at)
                self.db.commit()
            except SQLAlchemyError:
                self.db.rollback()
                logger.error("Failed to store presence for user %s", user_id, exc_info=True)
        return seen_at

    # Rooms

    def _join_chat(self, ctx: ConnectionContext, event: JoinChatEvent) -> list[Instruction]:
        conversation = self.conversations.get(event.data)
        if conversation is None or not membership.is_participant(conversation, ctx.user_id):
            logger.warning("User %s tried to join conversation %s", ctx.user_id, event.data)
            return []
        logger.debug("Connection %s joined room %s", ctx.connection_id, event.data)
        return [JoinRoom(event.data)]

    def _leave_chat(self, ctx: ConnectionContext, event: LeaveChatEvent) -> list[Instruction]:
        return [LeaveRoom(event.data)]

    # Messages

    def _send_message(self, ctx: ConnectionContext, event: SendMessageEvent) -> list[Instruction]:
        payload = event.data
        message = self.messages.send(
            ctx.user_id,
            payload.conversation_id,
            payload.content,
            message_type=payload.type,
            reply_to=payload.reply_to,
            iv=payload.iv,
            wrapped_keys=payload.wrapped_keys,
        )
        return [
            Broadcast(
                message.conversation_id,
                ServerEvent.MESSAGE.value,
                MessageResponse.from_model(message).to_wire(),
            )
        ]

    def _edit_message(self, ctx: ConnectionContext, event: EditMessageEvent) -> list[Instruction]:
        payload = event.data
        message = self.messages.edit(
            payload.message_id,
            ctx.user_id,
            payload.content,
            iv=payload.iv,
            wrapped_keys=payload.wrapped_keys,
        )
        return [
            Broadcast(
                message.conversation_id,
                ServerEvent.MESSAGE_UPDATED.value,
                MessageResponse.from_model(message).to_wire(),
            )
        ]

    def _delete_message(
        self, ctx: ConnectionContext, event: DeleteMessageEvent
    ) -> list[Instruction]:
        message = self.messages.delete(event.data, ctx.user_id)
        return [Broadcast(message.conversation_id, ServerEvent.MESSAGE_DELETED.value, message.id)]

    def _typing(self, ctx: ConnectionContext, event: TypingEvent) -> list[Instruction]:
        payload = event.data
        conversation = self.conversations.get(payload.conversation_id)
        if conversation is None or not membership.is_participant(conversation, ctx.user_id):
            return []
        return [
            Broadcast(
                payload.conversation_id,
                ServerEvent.TYPING.value,
                {
                    "userId": ctx.user_id,
                    "conversationId": payload.conversation_id,
                    "isTyping": payload.is_typing,
                },
                exclude_connection=ctx.connection_id,
            )
        ]

    def _mark_as_read(self, ctx: ConnectionContext, event: MarkAsReadEvent) -> list[Instruction]:
        payload = event.data
        try:
            self.messages.mark_as_read(payload.message_id, ctx.user_id, payload.conversation_id)
        except (NotFoundError, AuthorizationError):
            logger.debug("Ignored read receipt from %s for %s", ctx.user_id, payload.message_id)
        return []

    def _add_reaction(self, ctx: ConnectionContext, event: AddReactionEvent) -> list[Instruction]:
        message = self.messages.add_reaction(event.data.message_id, ctx.user_id, event.data.emoji)
        return [
            Broadcast(
                message.conversation_id,
                ServerEvent.MESSAGE_UPDATED.value,
                MessageResponse.from_model(message).to_wire(),
            )
        ]

    def _remove_reaction(
        self, ctx: ConnectionContext, event: RemoveReactionEvent
    ) -> list[Instruction]:
        message = self.messages.remove_reaction(
            event.data.message_id, ctx.user_id, event.data.emoji
        )
        return [
            Broadcast(
                message.conversation_id,
                ServerEvent.MESSAGE_UPDATED.value,
                MessageResponse.from_model(message).to_wire(),
            )
        ]
