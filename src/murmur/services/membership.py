# src/murmur/services/membership.py
"""Authorization rules for conversations.

All rules are pure functions of conversation state. They accept anything that
exposes ``type``, ``participant_ids``, ``admin_ids`` and ``created_by`` so
they can be exercised without a database.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol

from murmur.core.errors import ValidationError
from murmur.models.conversation import ConversationType


class ConversationLike(Protocol):
    """Structural view of a conversation used by the rules below."""

    @property
    def type(self) -> ConversationType: ...

    @property
    def participant_ids(self) -> Sequence[str]: ...

    @property
    def admin_ids(self) -> Sequence[str]: ...

    @property
    def created_by(self) -> str: ...


class MessageLike(Protocol):
    @property
    def sender_id(self) -> str: ...


def is_participant(conversation: ConversationLike, user_id: str) -> bool:
    """Return True if the user belongs to the conversation."""
    return user_id in conversation.participant_ids


def is_admin(conversation: ConversationLike, user_id: str) -> bool:
    """Return True if the user administers a group conversation.

    Private conversations have no admin concept.
    """
    if conversation.type != ConversationType.GROUP:
        return False
    return user_id in conversation.admin_ids


def can_modify(conversation: ConversationLike, user_id: str) -> bool:
    """Return True if the user may edit name, description or avatar."""
    return conversation.type == ConversationType.GROUP and is_admin(conversation, user_id)


def can_add_participant(conversation: ConversationLike, user_id: str) -> bool:
    """Return True if the user may add members."""
    return conversation.type == ConversationType.GROUP and is_admin(conversation, user_id)


def can_remove_participant(
    conversation: ConversationLike,
    actor_id: str,
    target_id: str,
) -> bool:
    """Return True if ``actor_id`` may remove ``target_id``.

    Admins may remove anyone; any member may remove themselves.
    """
    if conversation.type != ConversationType.GROUP:
        return False
    if actor_id == target_id and is_participant(conversation, actor_id):
        return True
    return is_admin(conversation, actor_id)


def can_delete(conversation: ConversationLike, user_id: str) -> bool:
    """Return True if the user may delete the whole conversation."""
    return conversation.created_by == user_id or is_admin(conversation, user_id)


def can_delete_message(
    conversation: ConversationLike,
    message: MessageLike,
    user_id: str,
) -> bool:
    """Return True if the user may soft-delete ``message``."""
    return message.sender_id == user_id or is_admin(conversation, user_id)


def normalize_participants(
    conversation_type: ConversationType,
    creator_id: str,
    other_ids: Iterable[str],
) -> tuple[list[str], list[str]]:
    """Apply the creation invariants to a requested member list.

    Args:
        conversation_type: Kind of conversation being created
        creator_id: User creating the conversation
        other_ids: Requested members besides the creator

    Returns:
        Tuple of (participant_ids, admin_ids) with the creator force-added

    Raises:
        ValidationError: If the member count does not fit the conversation type
    """
    others = [uid for uid in dict.fromkeys(other_ids) if uid != creator_id]

    if conversation_type == ConversationType.PRIVATE:
        if len(others) != 1:
            raise ValidationError("Private chats must have exactly one other participant")
        return [creator_id, others[0]], []

    if not others:
        raise ValidationError("Group chats must have at least 2 participants")
    return [creator_id, *others], [creator_id]
