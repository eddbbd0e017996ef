"""Data access helpers for users."""
from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from murmur.models.user import User

__all__ = ["UserRepository"]


class UserRepository:
    """Thin wrapper around database access for user entities."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: str) -> User | None:
        """Return a user by identifier."""
        return self.session.get(User, user_id)

    def get_many(self, user_ids: Iterable[str]) -> list[User]:
        """Return the users matching ``user_ids``; unknown ids are skipped."""
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return []
        return list(self.session.scalars(select(User).where(User.id.in_(ids))))

    def list_others(self, user_id: str) -> list[User]:
        """Return every user except ``user_id``, ordered by display name."""
        stmt = select(User).where(User.id != user_id).order_by(User.display_name, User.id)
        return list(self.session.scalars(stmt))

    def search(self, term: str, *, exclude: str, limit: int = 20) -> list[User]:
        """Case-insensitive display-name search, excluding the caller."""
        stmt = (
            select(User)
            .where(User.id != exclude, User.display_name.icontains(term, autoescape=True))
            .order_by(User.display_name, User.id)
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    def set_presence(self, user_id: str, *, online: bool, seen_at: datetime) -> User | None:
        """Update the stored online flag and last-seen timestamp."""
        user = self.get(user_id)
        if user is None:
            return None
        user.is_online = online
        user.last_seen = seen_at
        self.session.flush()
        return user
