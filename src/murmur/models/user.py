# src/murmur/models/user.py
"""SQLAlchemy model for user identities."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from murmur.db.session import Base
from murmur.db.time import utcnow
from murmur.utils.ids import ID_LENGTH, new_id


class User(Base):
    """A registered user as seen by the messaging core.

    Credentials live with the external identity provider; only the public
    half of the user's encryption keypair is stored here, and only once the
    client has initialised encryption.
    """

    __tablename__ = "user_account"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=new_id)
    display_name: Mapped[str] = mapped_column(String(64), nullable=False)
    # Base64 SPKI DER of the user's RSA-OAEP public key.
    public_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_online: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
