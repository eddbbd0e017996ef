"""User profile and public key endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter

from murmur.core.errors import NotFoundError, ValidationError
from murmur.core.settings import settings
from murmur.db.time import utcnow
from murmur.repositories.user_repo import UserRepository
from murmur.schemas.common import success
from murmur.schemas.user import PublicKeyUpdate, StatusUpdate, UserKeyResponse, UserResponse
from murmur.services.crypto import CryptoService
from murmur.services.storage import commit_or_raise

from ..dependencies import CurrentUserDep, SessionDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("")
async def list_users(current_user: CurrentUserDep, db: SessionDep) -> dict[str, Any]:
    """List everyone except the caller, ordered by display name."""
    users = UserRepository(db).list_others(current_user.id)
    return success([UserResponse.from_model(u).to_wire() for u in users])


@router.get("/search")
async def search_users(current_user: CurrentUserDep, db: SessionDep, q: str = "") -> dict[str, Any]:
    """Find other users whose display name contains ``q``."""
    term = q.strip()
    if not 1 <= len(term) <= 50:
        raise ValidationError("Search query must be between 1 and 50 characters")
    users = UserRepository(db).search(
        term, exclude=current_user.id, limit=settings.user_search_limit
    )
    return success([UserResponse.from_model(u).to_wire() for u in users])


@router.get("/me")
async def get_me(current_user: CurrentUserDep) -> dict[str, Any]:
    """Return the caller's own profile."""
    return success(UserKeyResponse.from_model(current_user).to_wire())


@router.put("/me/public-key")
async def publish_public_key(
    payload: PublicKeyUpdate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> dict[str, Any]:
    """Store the caller's RSA public key for others to encrypt to."""
    current_user.public_key = CryptoService.validate_public_key(payload.public_key)
    commit_or_raise(db, "store public key")
    logger.info("User %s published a public key", current_user.id)
    return success(UserKeyResponse.from_model(current_user).to_wire())


@router.put("/status")
async def update_status(
    payload: StatusUpdate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> dict[str, Any]:
    """Set the caller's stored online flag and refresh last-seen."""
    current_user.is_online = payload.status == "online"
    current_user.last_seen = utcnow()
    commit_or_raise(db, "update status")
    return success(UserResponse.from_model(current_user).to_wire(), "Status updated successfully")


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> dict[str, Any]:
    """Return a user's profile including their public key."""
    user = UserRepository(db).get(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return success(UserKeyResponse.from_model(user).to_wire())
