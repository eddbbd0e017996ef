"""API endpoint modules for version 1."""

from .conversations import router as conversations_router
from .messages import router as messages_router
from .realtime import router as realtime_router
from .users import router as users_router

__all__ = [
    "conversations_router",
    "messages_router",
    "realtime_router",
    "users_router",
]
