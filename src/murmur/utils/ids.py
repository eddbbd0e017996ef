# src/murmur/utils/ids.py
"""Opaque identifier helpers."""

from __future__ import annotations

import uuid

ID_LENGTH = 32
ID_PATTERN = r"^[0-9a-f]{32}$"


def new_id() -> str:
    """Return a new opaque identifier (32 lowercase hex characters)."""
    return uuid.uuid4().hex
