"""Data access helpers for working with messages.

Every read path used by the protocol goes through :class:`MessageRepository`,
which filters on :class:`MessageStatus` explicitly. Soft-deleted rows are only
reachable through the ``*_including_deleted`` helpers kept for audit use.
"""
from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from murmur.models.message import Message, MessageStatus

__all__ = ["MessageRepository"]


class MessageRepository:
    """Thin wrapper around database access for message entities."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def get_active(self, message_id: str) -> Message | None:
        """Return a message by identifier unless it has been soft-deleted."""
        return self.session.scalars(
            select(Message).where(
                Message.id == message_id,
                Message.status == MessageStatus.ACTIVE,
            )
        ).first()

    def get_including_deleted(self, message_id: str) -> Message | None:
        """Return a message by identifier regardless of status."""
        return self.session.get(Message, message_id)

    def list_active(self, conversation_id: str, *, offset: int, limit: int) -> list[Message]:
        """Return active messages for a conversation, newest first."""
        stmt = (
            select(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.status == MessageStatus.ACTIVE,
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    def count_active(self, conversation_id: str) -> int:
        """Return the number of active messages in a conversation."""
        stmt = select(func.count()).select_from(Message).where(
            Message.conversation_id == conversation_id,
            Message.status == MessageStatus.ACTIVE,
        )
        return int(self.session.scalar(stmt) or 0)

    def count_including_deleted(self, conversation_id: str) -> int:
        """Return the number of messages ever posted to a conversation."""
        stmt = select(func.count()).select_from(Message).where(
            Message.conversation_id == conversation_id,
        )
        return int(self.session.scalar(stmt) or 0)

    def add(self, message: Message) -> Message:
        """Stage a new message and flush so its identifier is assigned."""
        self.session.add(message)
        self.session.flush()
        return message
