"""Conversation lifecycle and membership management."""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from sqlalchemy.orm import Session

from murmur.core.errors import AuthorizationError, NotFoundError, ValidationError
from murmur.db.time import utcnow
from murmur.models import Conversation, ConversationType, User
from murmur.repositories.conversation_repo import ConversationRepository
from murmur.repositories.user_repo import UserRepository
from murmur.services import membership
from murmur.services.storage import commit_or_raise

logger = logging.getLogger(__name__)

__all__ = ["ConversationService"]


class ConversationService:
    """Create, inspect and administer conversations on behalf of a user."""

    def __init__(self, db: Session, now: Callable[[], datetime] = utcnow) -> None:
        self.db = db
        self.now = now
        self.conversations = ConversationRepository(db)
        self.users = UserRepository(db)

    def _require_users(self, user_ids: Iterable[str]) -> list[User]:
        wanted = list(dict.fromkeys(user_ids))
        found = {user.id: user for user in self.users.get_many(wanted)}
        missing = [uid for uid in wanted if uid not in found]
        if missing:
            raise NotFoundError("User not found")
        return [found[uid] for uid in wanted]

    def _require_conversation(self, conversation_id: str) -> Conversation:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        return conversation

    def create(
        self,
        creator_id: str,
        conversation_type: ConversationType,
        participant_ids: Iterable[str],
        *,
        name: str | None = None,
        description: str | None = None,
    ) -> tuple[Conversation, bool]:
        """Create a conversation of either kind.

        Returns:
            Tuple of (conversation, created); ``created`` is False when an
            existing private conversation was returned
        """
        if conversation_type == ConversationType.PRIVATE:
            participants, _ = membership.normalize_participants(
                conversation_type, creator_id, participant_ids
            )
            return self.get_or_create_private(creator_id, participants[1])
        group = self.create_group(creator_id, participant_ids, name=name, description=description)
        return group, True

    def get_or_create_private(self, creator_id: str, other_id: str) -> tuple[Conversation, bool]:
        """Return the private conversation between two users, creating it if absent."""
        participant_ids, _ = membership.normalize_participants(
            ConversationType.PRIVATE, creator_id, [other_id]
        )
        users = self._require_users(participant_ids)

        existing = self.conversations.find_private_between(creator_id, other_id)
        if existing is not None:
            return existing, False

        timestamp = self.now()
        conversation = Conversation(
            type=ConversationType.PRIVATE,
            created_by=creator_id,
            created_at=timestamp,
            updated_at=timestamp,
        )
        conversation.participants = users
        self.conversations.add(conversation)
        commit_or_raise(self.db, "create conversation")
        logger.info("Private conversation %s created by %s", conversation.id, creator_id)
        return conversation, True

    def create_group(
        self,
        creator_id: str,
        other_ids: Iterable[str],
        *,
        name: str | None,
        description: str | None = None,
    ) -> Conversation:
        """Create a group with the creator as its first admin."""
        name = (name or "").strip()
        if not name or len(name) > 50:
            raise ValidationError("Group name must be between 1 and 50 characters")
        if description is not None and len(description) > 200:
            raise ValidationError("Description cannot exceed 200 characters")

        participant_ids, admin_ids = membership.normalize_participants(
            ConversationType.GROUP, creator_id, other_ids
        )
        users = self._require_users(participant_ids)
        by_id = {user.id: user for user in users}

        timestamp = self.now()
        conversation = Conversation(
            type=ConversationType.GROUP,
            name=name,
            description=description,
            created_by=creator_id,
            created_at=timestamp,
            updated_at=timestamp,
        )
        conversation.participants = users
        conversation.admins = [by_id[uid] for uid in admin_ids]
        self.conversations.add(conversation)
        commit_or_raise(self.db, "create conversation")
        logger.info(
            "Group conversation %s created by %s with %d participants",
            conversation.id,
            creator_id,
            len(users),
        )
        return conversation

    def list_for_user(self, user_id: str) -> list[Conversation]:
        """Return the user's conversations, most recently active first."""
        return self.conversations.list_for_user(user_id)

    def get_for_participant(self, conversation_id: str, user_id: str) -> Conversation:
        """Return a conversation the user belongs to.

        Raises:
            NotFoundError: If the conversation does not exist
            AuthorizationError: If the user is not a participant
        """
        conversation = self._require_conversation(conversation_id)
        if not membership.is_participant(conversation, user_id):
            logger.warning("User %s denied access to conversation %s", user_id, conversation_id)
            raise AuthorizationError()
        return conversation

    def update_metadata(
        self,
        conversation_id: str,
        user_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        avatar: str | None = None,
    ) -> Conversation:
        """Apply name, description or avatar changes to a group."""
        conversation = self.get_for_participant(conversation_id, user_id)
        if not membership.can_modify(conversation, user_id):
            logger.warning("User %s may not modify conversation %s", user_id, conversation_id)
            raise AuthorizationError()

        if name is not None:
            name = name.strip()
            if not name or len(name) > 50:
                raise ValidationError("Group name must be between 1 and 50 characters")
            conversation.name = name
        if description is not None:
            if len(description) > 200:
                raise ValidationError("Description cannot exceed 200 characters")
            conversation.description = description
        if avatar is not None:
            conversation.avatar = avatar
        conversation.updated_at = self.now()
        commit_or_raise(self.db, "update conversation")
        return conversation

    def add_participant(self, conversation_id: str, actor_id: str, user_id: str) -> Conversation:
        """Add ``user_id`` to a group administered by ``actor_id``."""
        conversation = self.get_for_participant(conversation_id, actor_id)
        if not membership.can_add_participant(conversation, actor_id):
            logger.warning("User %s may not add members to %s", actor_id, conversation_id)
            raise AuthorizationError()
        if membership.is_participant(conversation, user_id):
            raise ValidationError("User is already a participant")
        (user,) = self._require_users([user_id])

        conversation.participants.append(user)
        conversation.updated_at = self.now()
        commit_or_raise(self.db, "add participant")
        logger.info("User %s added to conversation %s by %s", user_id, conversation_id, actor_id)
        return conversation

    def remove_participant(self, conversation_id: str, actor_id: str, user_id: str) -> Conversation:
        """Remove ``user_id`` from a group; admin rights go with membership."""
        conversation = self._require_conversation(conversation_id)
        if not membership.can_remove_participant(conversation, actor_id, user_id):
            logger.warning(
                "User %s may not remove %s from conversation %s", actor_id, user_id, conversation_id
            )
            raise AuthorizationError()
        if not membership.is_participant(conversation, user_id):
            raise ValidationError("User is not a participant")
        if user_id == conversation.created_by:
            raise ValidationError("The conversation creator cannot be removed")

        conversation.participants = [u for u in conversation.participants if u.id != user_id]
        conversation.admins = [u for u in conversation.admins if u.id != user_id]
        conversation.updated_at = self.now()
        commit_or_raise(self.db, "remove participant")
        logger.info(
            "User %s removed from conversation %s by %s", user_id, conversation_id, actor_id
        )
        return conversation

    def delete(self, conversation_id: str, user_id: str) -> list[str]:
        """Delete a conversation and its messages.

        Returns:
            The participant ids at the time of deletion
        """
        conversation = self._require_conversation(conversation_id)
        if not membership.can_delete(conversation, user_id):
            logger.warning("User %s may not delete conversation %s", user_id, conversation_id)
            raise AuthorizationError()

        participant_ids = conversation.participant_ids
        self.conversations.delete(conversation)
        commit_or_raise(self.db, "delete conversation")
        logger.info("Conversation %s deleted by %s", conversation_id, user_id)
        return participant_ids
