"""Message-related Pydantic schemas."""

from datetime import datetime

from pydantic import Field, field_validator

from murmur.core.settings import settings
from murmur.models import Message, MessageType

from .common import CamelModel, ObjectId


def _require_text(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


class MessageCreate(CamelModel):
    """Schema for sending a message, over REST or as a ``sendMessage`` event."""

    conversation_id: ObjectId
    content: str = Field(..., min_length=1, max_length=settings.message_max_length)
    type: MessageType = MessageType.TEXT
    reply_to: ObjectId | None = None
    iv: str | None = Field(None, pattern=r"^[0-9a-fA-F]{32}$", description="Hex AES-CBC IV")
    wrapped_keys: dict[str, str] | None = Field(
        None,
        description="Per-participant RSA-OAEP wrapped content keys (base64)",
    )

    _content_not_blank = field_validator("content")(_require_text)


class MessageEdit(CamelModel):
    """Schema for replacing the content of a message."""

    content: str = Field(..., min_length=1, max_length=settings.message_max_length)
    iv: str | None = Field(None, pattern=r"^[0-9a-fA-F]{32}$")
    wrapped_keys: dict[str, str] | None = None

    _content_not_blank = field_validator("content")(_require_text)


class ReadReceiptCreate(CamelModel):
    """Schema for marking a message as read over REST."""

    conversation_id: ObjectId


class ReactionCreate(CamelModel):
    """Schema for adding a reaction."""

    emoji: str = Field(..., min_length=1, max_length=10)

    @field_validator("emoji", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class ReactionResponse(CamelModel):
    user_id: str
    emoji: str
    at: datetime


class ReadReceiptResponse(CamelModel):
    user_id: str
    at: datetime


class MessageResponse(CamelModel):
    """Schema for message information returned by the API and socket."""

    id: str
    conversation_id: str
    sender_id: str
    content: str
    type: MessageType
    encrypted: bool
    iv: str | None
    wrapped_keys: dict[str, str]
    reply_to: str | None
    reactions: list[ReactionResponse]
    is_edited: bool
    is_deleted: bool
    read_by: list[ReadReceiptResponse]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, message: Message) -> "MessageResponse":
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            content=message.content,
            type=message.type,
            encrypted=message.encrypted,
            iv=message.iv,
            wrapped_keys=dict(message.wrapped_keys or {}),
            reply_to=message.reply_to,
            reactions=[
                ReactionResponse(user_id=r.user_id, emoji=r.emoji, at=r.created_at)
                for r in message.reactions
            ],
            is_edited=message.is_edited,
            is_deleted=message.is_deleted,
            read_by=[
                ReadReceiptResponse(user_id=r.user_id, at=r.read_at) for r in message.read_by
            ],
            created_at=message.created_at,
            updated_at=message.updated_at,
        )
