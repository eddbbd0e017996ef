# src/murmur/models/message.py
"""Models describing messages, reactions and read receipts."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from murmur.db.session import Base
from murmur.db.time import utcnow
from murmur.utils.ids import ID_LENGTH, new_id

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from .conversation import Conversation


class MessageType(str, Enum):
    """Content kinds a message may carry."""

    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    AUDIO = "audio"
    VIDEO = "video"


class MessageStatus(str, Enum):
    """Lifecycle state of a message row."""

    ACTIVE = "active"
    DELETED = "deleted"


class Message(Base):
    """A message posted to a conversation.

    When ``encrypted`` is set, ``content`` is AES-CBC ciphertext and the
    envelope (``iv`` plus per-recipient ``wrapped_keys``) travels with it.
    The server never sees plaintext or unwrapped keys.
    """

    __tablename__ = "message"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=new_id)
    conversation_id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        ForeignKey("conversation.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("user_account.id"), nullable=False, index=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[MessageType] = mapped_column(
        SAEnum(
            MessageType,
            name="message_type",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        default=MessageType.TEXT,
        nullable=False,
    )
    encrypted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    iv: Mapped[str | None] = mapped_column(String(64), nullable=True)
    wrapped_keys: Mapped[dict[str, str]] = mapped_column(JSON, default=dict, nullable=False)
    reply_to: Mapped[str | None] = mapped_column(
        String(ID_LENGTH), ForeignKey("message.id", ondelete="SET NULL"), nullable=True
    )
    is_edited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[MessageStatus] = mapped_column(
        SAEnum(
            MessageStatus,
            name="message_status",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        default=MessageStatus.ACTIVE,
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    conversation: Mapped[Conversation] = relationship("Conversation", back_populates="messages")
    reactions: Mapped[list[MessageReaction]] = relationship(
        "MessageReaction",
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="MessageReaction.created_at",
    )
    read_by: Mapped[list[MessageRead]] = relationship(
        "MessageRead",
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="MessageRead.read_at",
    )

    @property
    def is_deleted(self) -> bool:
        """Return True once the message has been soft-deleted."""
        return self.status == MessageStatus.DELETED


class MessageReaction(Base):
    """One emoji reaction by one user; unique per (message, user, emoji)."""

    __tablename__ = "message_reaction"
    __table_args__ = (UniqueConstraint("message_id", "user_id", "emoji"),)

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=new_id)
    message_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("message.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("user_account.id"), nullable=False
    )
    emoji: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    message: Mapped[Message] = relationship("Message", back_populates="reactions")


class MessageRead(Base):
    """First-read timestamp of a message for one user."""

    __tablename__ = "message_read"
    __table_args__ = (UniqueConstraint("message_id", "user_id"),)

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=new_id)
    message_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("message.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("user_account.id"), nullable=False
    )
    read_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    message: Mapped[Message] = relationship("Message", back_populates="read_by")
