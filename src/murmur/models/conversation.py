# src/murmur/models/conversation.py
"""Models describing private and group conversations."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Column, DateTime, ForeignKey, String, Table, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from murmur.db.session import Base
from murmur.db.time import utcnow
from murmur.utils.ids import ID_LENGTH, new_id

from .user import User

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from .message import Message


class ConversationType(str, Enum):
    """Kinds of conversation."""

    PRIVATE = "private"
    GROUP = "group"


conversation_participant = Table(
    "conversation_participant",
    Base.metadata,
    Column(
        "conversation_id",
        String(ID_LENGTH),
        ForeignKey("conversation.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "user_id",
        String(ID_LENGTH),
        ForeignKey("user_account.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)

conversation_admin = Table(
    "conversation_admin",
    Base.metadata,
    Column(
        "conversation_id",
        String(ID_LENGTH),
        ForeignKey("conversation.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "user_id",
        String(ID_LENGTH),
        ForeignKey("user_account.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Conversation(Base):
    """A private (two-party) or group messaging context."""

    __tablename__ = "conversation"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=new_id)
    type: Mapped[ConversationType] = mapped_column(
        SAEnum(
            ConversationType,
            name="conversation_type",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(String(200), nullable=True)
    avatar: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("user_account.id"), nullable=False
    )
    # Loose pointer; messages reference conversations, not the other way round.
    last_message_id: Mapped[str | None] = mapped_column(String(ID_LENGTH), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    participants: Mapped[list[User]] = relationship(
        User,
        secondary=conversation_participant,
        order_by=User.id,
    )
    admins: Mapped[list[User]] = relationship(
        User,
        secondary=conversation_admin,
        order_by=User.id,
    )
    messages: Mapped[list[Message]] = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
    )

    @property
    def participant_ids(self) -> list[str]:
        """Return the ids of all participants."""
        return [user.id for user in self.participants]

    @property
    def admin_ids(self) -> list[str]:
        """Return the ids of all admins."""
        return [user.id for user in self.admins]
