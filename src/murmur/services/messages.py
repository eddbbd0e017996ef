"""Message rules shared by the REST and socket paths.

Every mutation checks authorization before touching state. Callers receive
ORM instances and render them with ``MessageResponse.from_model``.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping
from datetime import datetime

from sqlalchemy.orm import Session

from murmur.core.errors import AuthorizationError, NotFoundError, ValidationError
from murmur.core.settings import settings
from murmur.db.time import as_utc, utcnow
from murmur.models import (
    Conversation,
    Message,
    MessageRead,
    MessageReaction,
    MessageStatus,
    MessageType,
)
from murmur.repositories.conversation_repo import ConversationRepository
from murmur.repositories.message_repo import MessageRepository
from murmur.schemas.common import Pagination
from murmur.services import membership
from murmur.services.storage import commit_or_raise

logger = logging.getLogger(__name__)

__all__ = ["MessageService"]


class MessageService:
    """Authorize and persist message operations for one database session."""

    def __init__(self, db: Session, now: Callable[[], datetime] = utcnow) -> None:
        self.db = db
        self.now = now
        self.messages = MessageRepository(db)
        self.conversations = ConversationRepository(db)

    def _participant_conversation(self, conversation_id: str, user_id: str) -> Conversation:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        if not membership.is_participant(conversation, user_id):
            logger.warning("User %s denied access to conversation %s", user_id, conversation_id)
            raise AuthorizationError()
        return conversation

    def _active_message(self, message_id: str) -> Message:
        message = self.messages.get_active(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        return message

    @staticmethod
    def _check_envelope(
        iv: str | None,
        wrapped_keys: Mapping[str, str] | None,
        *,
        required: bool,
    ) -> bool:
        has_iv = bool(iv)
        has_keys = bool(wrapped_keys)
        if has_iv != has_keys or (required and not has_iv):
            raise ValidationError("Missing encryption data for end-to-end encryption")
        return has_iv

    @staticmethod
    def _check_content(content: str) -> None:
        if not content or not content.strip():
            raise ValidationError("Message content is required")
        if len(content) > settings.message_max_length:
            raise ValidationError(
                f"Message content cannot exceed {settings.message_max_length} characters"
            )

    def send(
        self,
        sender_id: str,
        conversation_id: str,
        content: str,
        *,
        message_type: MessageType = MessageType.TEXT,
        reply_to: str | None = None,
        iv: str | None = None,
        wrapped_keys: Mapping[str, str] | None = None,
        require_encryption: bool = False,
    ) -> Message:
        """Persist a new message and advance the conversation pointer.

        Args:
            sender_id: Authenticated user sending the message
            conversation_id: Target conversation
            content: Plain text, or ciphertext when an envelope is supplied
            message_type: Kind of content carried
            reply_to: Optional message in the same conversation being answered
            iv: Hex IV of the AES-CBC envelope
            wrapped_keys: Per-recipient wrapped content keys
            require_encryption: Reject messages without an envelope

        Raises:
            AuthorizationError: If the sender is not a participant
            ValidationError: If content, envelope or reply target are invalid
        """
        conversation = self._participant_conversation(conversation_id, sender_id)
        self._check_content(content)
        encrypted = self._check_envelope(iv, wrapped_keys, required=require_encryption)

        if reply_to is not None:
            target = self.messages.get_active(reply_to)
            if target is None or target.conversation_id != conversation.id:
                raise ValidationError("Reply target not found in this conversation")

        timestamp = self.now()
        message = Message(
            conversation_id=conversation.id,
            sender_id=sender_id,
            content=content,
            type=message_type,
            encrypted=encrypted,
            iv=iv if encrypted else None,
            wrapped_keys=dict(wrapped_keys) if encrypted and wrapped_keys else {},
            reply_to=reply_to,
            created_at=timestamp,
            updated_at=timestamp,
        )
        self.messages.add(message)
        conversation.last_message_id = message.id
        conversation.updated_at = timestamp
        commit_or_raise(self.db, "send message")
        logger.debug("Message %s stored in conversation %s", message.id, conversation.id)
        return message

    def edit(
        self,
        message_id: str,
        user_id: str,
        content: str,
        *,
        iv: str | None = None,
        wrapped_keys: Mapping[str, str] | None = None,
    ) -> Message:
        """Replace the content of the caller's own recent message.

        The edit window is inclusive: a message exactly
        ``MESSAGE_EDIT_WINDOW_MINUTES`` old can still be edited.
        """
        message = self._active_message(message_id)
        if message.sender_id != user_id:
            logger.warning("User %s may not edit message %s", user_id, message_id)
            raise AuthorizationError()
        self._participant_conversation(message.conversation_id, user_id)
        self._check_content(content)

        age = self.now() - as_utc(message.created_at)
        if age.total_seconds() > settings.message_edit_window_seconds:
            raise ValidationError(
                f"Cannot edit messages older than {settings.message_edit_window_minutes} minutes"
            )

        if iv is not None or wrapped_keys is not None:
            self._check_envelope(iv, wrapped_keys, required=True)
            message.iv = iv
            message.wrapped_keys = dict(wrapped_keys or {})
            message.encrypted = True
        message.content = content
        message.is_edited = True
        message.updated_at = self.now()
        commit_or_raise(self.db, "edit message")
        return message

    def delete(self, message_id: str, user_id: str) -> Message:
        """Soft-delete a message; the row survives with placeholder content."""
        message = self._active_message(message_id)
        conversation = self._participant_conversation(message.conversation_id, user_id)
        if not membership.can_delete_message(conversation, message, user_id):
            logger.warning("User %s may not delete message %s", user_id, message_id)
            raise AuthorizationError()

        message.status = MessageStatus.DELETED
        message.content = settings.deleted_message_placeholder
        message.encrypted = False
        message.iv = None
        message.wrapped_keys = {}
        message.updated_at = self.now()
        commit_or_raise(self.db, "delete message")
        return message

    def mark_as_read(
        self,
        message_id: str,
        user_id: str,
        conversation_id: str | None = None,
    ) -> MessageRead:
        """Record the first time ``user_id`` read a message.

        Repeated calls return the existing receipt unchanged.
        """
        message = self._active_message(message_id)
        if conversation_id is not None and message.conversation_id != conversation_id:
            raise NotFoundError("Message not found")
        self._participant_conversation(message.conversation_id, user_id)

        for receipt in message.read_by:
            if receipt.user_id == user_id:
                return receipt

        receipt = MessageRead(user_id=user_id, read_at=self.now())
        message.read_by.append(receipt)
        commit_or_raise(self.db, "mark message as read")
        return receipt

    def add_reaction(self, message_id: str, user_id: str, emoji: str) -> Message:
        """Add a reaction, or refresh the timestamp of an identical one."""
        emoji = self._clean_emoji(emoji)
        message = self._active_message(message_id)
        self._participant_conversation(message.conversation_id, user_id)

        existing = self._find_reaction(message, user_id, emoji)
        if existing is not None:
            existing.created_at = self.now()
        else:
            message.reactions.append(
                MessageReaction(user_id=user_id, emoji=emoji, created_at=self.now())
            )
        commit_or_raise(self.db, "add reaction")
        return message

    def remove_reaction(self, message_id: str, user_id: str, emoji: str) -> Message:
        """Remove the caller's reaction; removing an absent one is a no-op."""
        emoji = self._clean_emoji(emoji)
        message = self._active_message(message_id)
        self._participant_conversation(message.conversation_id, user_id)

        existing = self._find_reaction(message, user_id, emoji)
        if existing is not None:
            message.reactions.remove(existing)
            commit_or_raise(self.db, "remove reaction")
        return message

    @staticmethod
    def _clean_emoji(emoji: str) -> str:
        emoji = (emoji or "").strip()
        if not emoji or len(emoji) > 10:
            raise ValidationError("Emoji must be between 1 and 10 characters")
        return emoji

    @staticmethod
    def _find_reaction(message: Message, user_id: str, emoji: str) -> MessageReaction | None:
        for reaction in message.reactions:
            if reaction.user_id == user_id and reaction.emoji == emoji:
                return reaction
        return None

    def list_history(
        self,
        conversation_id: str,
        user_id: str,
        *,
        page: int = 1,
        limit: int | None = None,
    ) -> tuple[list[Message], Pagination]:
        """Return one page of active messages, oldest first within the page."""
        limit = settings.messages_page_size if limit is None else limit
        if page < 1:
            raise ValidationError("Page must be a positive integer")
        if not 1 <= limit <= settings.messages_page_size_max:
            raise ValidationError(
                f"Limit must be between 1 and {settings.messages_page_size_max}"
            )
        self._participant_conversation(conversation_id, user_id)

        newest_first = self.messages.list_active(
            conversation_id, offset=(page - 1) * limit, limit=limit
        )
        total = self.messages.count_active(conversation_id)
        pagination = Pagination(
            page=page,
            limit=limit,
            total=total,
            pages=math.ceil(total / limit),
        )
        return list(reversed(newest_first)), pagination
