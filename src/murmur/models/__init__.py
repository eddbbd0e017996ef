# src/murmur/models/__init__.py
"""SQLAlchemy models for the Murmur messaging core."""

from .conversation import (
    Conversation,
    ConversationType,
    conversation_admin,
    conversation_participant,
)
from .message import Message, MessageRead, MessageReaction, MessageStatus, MessageType
from .user import User

__all__ = [
    "Conversation", "ConversationType", "conversation_admin", "conversation_participant",
    "Message", "MessageRead", "MessageReaction", "MessageStatus", "MessageType",
    "User",
]
