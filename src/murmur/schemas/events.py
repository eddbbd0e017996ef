"""Socket frame schemas.

Inbound frames form a discriminated union keyed on ``event``; anything that
does not match one of the known shapes is rejected before it reaches a
handler. Outbound frames are plain ``{"event": ..., "data": ...}`` dicts.
"""
from __future__ import annotations

import json
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from murmur.core.errors import ValidationError

from .common import CamelModel, ObjectId
from .message import MessageCreate


class ServerEvent(str, Enum):
    """Names of server-emitted events."""

    MESSAGE = "message"
    MESSAGE_UPDATED = "messageUpdated"
    MESSAGE_DELETED = "messageDeleted"
    TYPING = "typing"
    USER_ONLINE = "userOnline"
    USER_OFFLINE = "userOffline"
    CHAT_CREATED = "chatCreated"
    CHAT_UPDATED = "chatUpdated"
    CHAT_DELETED = "chatDeleted"
    ERROR = "error"


class EditMessagePayload(CamelModel):
    message_id: ObjectId
    content: str = Field(..., min_length=1)
    iv: str | None = Field(None, pattern=r"^[0-9a-fA-F]{32}$")
    wrapped_keys: dict[str, str] | None = None


class TypingPayload(CamelModel):
    conversation_id: ObjectId
    is_typing: bool


class MarkAsReadPayload(CamelModel):
    conversation_id: ObjectId
    message_id: ObjectId


class ReactionPayload(CamelModel):
    message_id: ObjectId
    emoji: str = Field(..., min_length=1, max_length=10)


class JoinChatEvent(BaseModel):
    event: Literal["joinChat"]
    data: ObjectId


class LeaveChatEvent(BaseModel):
    event: Literal["leaveChat"]
    data: ObjectId


class SendMessageEvent(BaseModel):
    event: Literal["sendMessage"]
    data: MessageCreate


class EditMessageEvent(BaseModel):
    event: Literal["editMessage"]
    data: EditMessagePayload


class DeleteMessageEvent(BaseModel):
    event: Literal["deleteMessage"]
    data: ObjectId


class TypingEvent(BaseModel):
    event: Literal["typing"]
    data: TypingPayload


class MarkAsReadEvent(BaseModel):
    event: Literal["markAsRead"]
    data: MarkAsReadPayload


class AddReactionEvent(BaseModel):
    event: Literal["addReaction"]
    data: ReactionPayload


class RemoveReactionEvent(BaseModel):
    event: Literal["removeReaction"]
    data: ReactionPayload


ClientEvent = Annotated[
    Union[
        JoinChatEvent,
        LeaveChatEvent,
        SendMessageEvent,
        EditMessageEvent,
        DeleteMessageEvent,
        TypingEvent,
        MarkAsReadEvent,
        AddReactionEvent,
        RemoveReactionEvent,
    ],
    Field(discriminator="event"),
]

CLIENT_EVENT_NAMES = frozenset(
    {
        "joinChat",
        "leaveChat",
        "sendMessage",
        "editMessage",
        "deleteMessage",
        "typing",
        "markAsRead",
        "addReaction",
        "removeReaction",
    }
)

_client_event_adapter: TypeAdapter[ClientEvent] = TypeAdapter(ClientEvent)


def parse_client_event(raw: str | bytes | dict[str, Any]) -> ClientEvent:
    """Parse and validate one inbound frame.

    Raises:
        ValidationError: If the frame is not JSON, names an unknown event or
            carries a payload of the wrong shape
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise ValidationError("Malformed frame") from exc
    if not isinstance(raw, dict):
        raise ValidationError("Malformed frame")

    name = raw.get("event")
    if name not in CLIENT_EVENT_NAMES:
        raise ValidationError(f"Unknown event: {name}")
    try:
        return _client_event_adapter.validate_python(raw)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid payload for {name}") from exc


def server_frame(event: ServerEvent | str, data: Any) -> dict[str, Any]:
    """Build an outbound frame."""
    name = event.value if isinstance(event, ServerEvent) else event
    return {"event": name, "data": data}
