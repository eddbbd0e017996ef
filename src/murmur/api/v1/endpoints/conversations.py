# src/murmur/api/v1/endpoints/conversations.py
"""Conversation endpoints for the Murmur API."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, status

from murmur.models import ConversationType
from murmur.schemas.common import success
from murmur.schemas.conversation import (
    ConversationCreate,
    ConversationResponse,
    ConversationUpdate,
    ParticipantAdd,
)
from murmur.schemas.events import ServerEvent
from murmur.services.conversations import ConversationService

from ..dependencies import CurrentUserDep, HubDep, SessionDep

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.get("")
async def list_conversations(current_user: CurrentUserDep, db: SessionDep) -> dict[str, Any]:
    """List the caller's conversations, most recently active first."""
    conversations = ConversationService(db).list_for_user(current_user.id)
    return success([ConversationResponse.from_model(c).to_wire() for c in conversations])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_conversation(
    payload: ConversationCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
    hub: HubDep,
) -> dict[str, Any]:
    """Create a group, or get-or-create a private conversation."""
    conversation, created = ConversationService(db).create(
        current_user.id,
        payload.type,
        payload.participants,
        name=payload.name,
        description=payload.description,
    )
    data = ConversationResponse.from_model(conversation).to_wire()
    if created:
        await hub.send_to_users(
            [uid for uid in conversation.participant_ids if uid != current_user.id],
            ServerEvent.CHAT_CREATED.value,
            data,
        )
    message = None
    if conversation.type == ConversationType.PRIVATE and not created:
        message = "Chat already exists"
    return success(data, message)


@router.get("/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> dict[str, Any]:
    """Return a conversation the caller belongs to."""
    conversation = ConversationService(db).get_for_participant(conversation_id, current_user.id)
    return success(ConversationResponse.from_model(conversation).to_wire())


@router.put("/{conversation_id}")
async def update_conversation(
    conversation_id: str,
    payload: ConversationUpdate,
    current_user: CurrentUserDep,
    db: SessionDep,
    hub: HubDep,
) -> dict[str, Any]:
    """Update group name, description or avatar (admins only)."""
    conversation = ConversationService(db).update_metadata(
        conversation_id,
        current_user.id,
        name=payload.name,
        description=payload.description,
        avatar=payload.avatar,
    )
    data = ConversationResponse.from_model(conversation).to_wire()
    await hub.broadcast_to_room(conversation.id, ServerEvent.CHAT_UPDATED.value, data)
    return success(data)


@router.delete("/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
    hub: HubDep,
) -> dict[str, Any]:
    """Delete a conversation and all of its messages."""
    ConversationService(db).delete(conversation_id, current_user.id)
    await hub.broadcast_to_room(
        conversation_id, ServerEvent.CHAT_DELETED.value, {"conversationId": conversation_id}
    )
    hub.registry.close_room(conversation_id)
    return success(message="Chat deleted successfully")


@router.post("/{conversation_id}/participants")
async def add_participant(
    conversation_id: str,
    payload: ParticipantAdd,
    current_user: CurrentUserDep,
    db: SessionDep,
    hub: HubDep,
) -> dict[str, Any]:
    """Add a member to a group (admins only)."""
    conversation = ConversationService(db).add_participant(
        conversation_id, current_user.id, payload.user_id
    )
    data = ConversationResponse.from_model(conversation).to_wire()
    await hub.broadcast_to_room(conversation.id, ServerEvent.CHAT_UPDATED.value, data)
    await hub.send_to_users([payload.user_id], ServerEvent.CHAT_CREATED.value, data)
    return success(data)


@router.delete("/{conversation_id}/participants/{user_id}")
async def remove_participant(
    conversation_id: str,
    user_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
    hub: HubDep,
) -> dict[str, Any]:
    """Remove a member from a group; members may remove themselves."""
    conversation = ConversationService(db).remove_participant(
        conversation_id, current_user.id, user_id
    )
    data = ConversationResponse.from_model(conversation).to_wire()
    await hub.broadcast_to_room(conversation.id, ServerEvent.CHAT_UPDATED.value, data)
    hub.registry.evict_user(user_id, conversation.id)
    return success(data)
