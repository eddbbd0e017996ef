# src/murmur/api/v1/endpoints/messages.py
"""Message endpoints for the Murmur API."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query, status

from murmur.core.settings import settings
from murmur.schemas.common import success
from murmur.schemas.events import ServerEvent
from murmur.schemas.message import (
    MessageCreate,
    MessageEdit,
    MessageResponse,
    ReactionCreate,
    ReadReceiptCreate,
)
from murmur.services.messages import MessageService

from ..dependencies import CurrentUserDep, HubDep, SessionDep

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/{conversation_id}")
async def get_messages(
    conversation_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.messages_page_size, ge=1, le=settings.messages_page_size_max),
) -> dict[str, Any]:
    """Return one page of a conversation's history, oldest first."""
    messages, pagination = MessageService(db).list_history(
        conversation_id, current_user.id, page=page, limit=limit
    )
    return success(
        {
            "messages": [MessageResponse.from_model(m).to_wire() for m in messages],
            "pagination": pagination.to_wire(),
        }
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def send_message(
    payload: MessageCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
    hub: HubDep,
) -> dict[str, Any]:
    """Send an end-to-end encrypted message to a conversation."""
    message = MessageService(db).send(
        current_user.id,
        payload.conversation_id,
        payload.content,
        message_type=payload.type,
        reply_to=payload.reply_to,
        iv=payload.iv,
        wrapped_keys=payload.wrapped_keys,
        require_encryption=True,
    )
    data = MessageResponse.from_model(message).to_wire()
    await hub.broadcast_to_room(message.conversation_id, ServerEvent.MESSAGE.value, data)
    return success(data)


@router.put("/{message_id}")
async def edit_message(
    message_id: str,
    payload: MessageEdit,
    current_user: CurrentUserDep,
    db: SessionDep,
    hub: HubDep,
) -> dict[str, Any]:
    """Edit one of the caller's recent messages."""
    message = MessageService(db).edit(
        message_id,
        current_user.id,
        payload.content,
        iv=payload.iv,
        wrapped_keys=payload.wrapped_keys,
    )
    data = MessageResponse.from_model(message).to_wire()
    await hub.broadcast_to_room(message.conversation_id, ServerEvent.MESSAGE_UPDATED.value, data)
    return success(data)


@router.delete("/{message_id}")
async def delete_message(
    message_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
    hub: HubDep,
) -> dict[str, Any]:
    """Soft-delete a message (sender or group admin)."""
    message = MessageService(db).delete(message_id, current_user.id)
    await hub.broadcast_to_room(
        message.conversation_id, ServerEvent.MESSAGE_DELETED.value, message.id
    )
    return success(message="Message deleted successfully")


@router.post("/{message_id}/read")
async def mark_as_read(
    message_id: str,
    payload: ReadReceiptCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> dict[str, Any]:
    """Record that the caller has read a message."""
    receipt = MessageService(db).mark_as_read(message_id, current_user.id, payload.conversation_id)
    return success({"messageId": message_id, "userId": receipt.user_id, "at": receipt.read_at.isoformat()})


@router.post("/{message_id}/reactions")
async def add_reaction(
    message_id: str,
    payload: ReactionCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
    hub: HubDep,
) -> dict[str, Any]:
    """React to a message."""
    message = MessageService(db).add_reaction(message_id, current_user.id, payload.emoji)
    data = MessageResponse.from_model(message).to_wire()
    await hub.broadcast_to_room(message.conversation_id, ServerEvent.MESSAGE_UPDATED.value, data)
    return success(data)


@router.delete("/{message_id}/reactions/{emoji}")
async def remove_reaction(
    message_id: str,
    emoji: str,
    current_user: CurrentUserDep,
    db: SessionDep,
    hub: HubDep,
) -> dict[str, Any]:
    """Withdraw a reaction; withdrawing an absent one succeeds without change."""
    message = MessageService(db).remove_reaction(message_id, current_user.id, emoji)
    data = MessageResponse.from_model(message).to_wire()
    await hub.broadcast_to_room(message.conversation_id, ServerEvent.MESSAGE_UPDATED.value, data)
    return success(data)
