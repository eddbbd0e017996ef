"""Conversation-related Pydantic schemas."""

from datetime import datetime

from pydantic import Field, field_validator

from murmur.models import Conversation, ConversationType

from .common import CamelModel, ObjectId
from .user import UserResponse


class ConversationCreate(CamelModel):
    """Schema for creating a conversation; the caller is added implicitly."""

    type: ConversationType
    participants: list[ObjectId] = Field(..., min_length=1)
    name: str | None = Field(None, min_length=1, max_length=50)
    description: str | None = Field(None, max_length=200)

    @field_validator("name", "description", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class ConversationUpdate(CamelModel):
    """Schema for editing group metadata."""

    name: str | None = Field(None, min_length=1, max_length=50)
    description: str | None = Field(None, max_length=200)
    avatar: str | None = Field(None, pattern=r"^https?://\S+$")

    @field_validator("name", "description", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class ParticipantAdd(CamelModel):
    """Schema for adding a member to a group."""

    user_id: ObjectId


class ConversationResponse(CamelModel):
    """Schema for conversation information returned by the API and socket."""

    id: str
    type: ConversationType
    name: str | None
    description: str | None
    avatar: str | None
    participants: list[UserResponse]
    admins: list[str]
    last_message_id: str | None
    created_by: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, conversation: Conversation) -> "ConversationResponse":
        return cls(
            id=conversation.id,
            type=conversation.type,
            name=conversation.name,
            description=conversation.description,
            avatar=conversation.avatar,
            participants=[UserResponse.from_model(user) for user in conversation.participants],
            admins=conversation.admin_ids,
            last_message_id=conversation.last_message_id,
            created_by=conversation.created_by,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )
