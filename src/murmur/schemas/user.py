"""User-related Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import Field

from murmur.models import User

from .common import CamelModel


class UserResponse(CamelModel):
    """Public profile of a user."""

    id: str
    display_name: str
    is_online: bool
    last_seen: datetime | None

    @classmethod
    def from_model(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            display_name=user.display_name,
            is_online=user.is_online,
            last_seen=user.last_seen,
        )


class UserKeyResponse(UserResponse):
    """Profile including the published encryption key, used by key lookups."""

    public_key: str | None

    @classmethod
    def from_model(cls, user: User) -> "UserKeyResponse":
        return cls(
            id=user.id,
            display_name=user.display_name,
            is_online=user.is_online,
            last_seen=user.last_seen,
            public_key=user.public_key,
        )


class PublicKeyUpdate(CamelModel):
    """Schema for publishing the caller's public key."""

    public_key: str = Field(..., min_length=1, description="Base64 SPKI DER RSA public key")


class StatusUpdate(CamelModel):
    status: Literal["online", "offline"]
