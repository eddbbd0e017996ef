"""Data access helpers for conversations and their members."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session, aliased

from murmur.models.conversation import Conversation, ConversationType, conversation_participant

__all__ = ["ConversationRepository"]


class ConversationRepository:
    """Thin wrapper around database access for conversation entities."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, conversation_id: str) -> Conversation | None:
        """Return a conversation by identifier."""
        return self.session.get(Conversation, conversation_id)

    def find_private_between(self, user_a: str, user_b: str) -> Conversation | None:
        """Return the private conversation joining exactly these two users, if any."""
        first = aliased(conversation_participant)
        second = aliased(conversation_participant)
        stmt = (
            select(Conversation)
            .join(first, first.c.conversation_id == Conversation.id)
            .join(second, second.c.conversation_id == Conversation.id)
            .where(
                Conversation.type == ConversationType.PRIVATE,
                first.c.user_id == user_a,
                second.c.user_id == user_b,
            )
        )
        return self.session.scalars(stmt).first()

    def list_for_user(self, user_id: str) -> list[Conversation]:
        """Return conversations the user participates in, most recently active first."""
        stmt = (
            select(Conversation)
            .join(
                conversation_participant,
                conversation_participant.c.conversation_id == Conversation.id,
            )
            .where(conversation_participant.c.user_id == user_id)
            .order_by(Conversation.updated_at.desc())
        )
        return list(self.session.scalars(stmt))

    def add(self, conversation: Conversation) -> Conversation:
        """Stage a new conversation and flush so its identifier is assigned."""
        self.session.add(conversation)
        self.session.flush()
        return conversation

    def delete(self, conversation: Conversation) -> None:
        """Delete a conversation; messages cascade through the ORM relationship."""
        self.session.delete(conversation)
        self.session.flush()
