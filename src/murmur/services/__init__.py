"""Business logic services for the Murmur messaging core."""

from . import membership
from .conversations import ConversationService
from .crypto import CryptoService
from .dispatcher import ConnectionContext, EventDispatcher
from .messages import MessageService
from .presence import PresenceRegistry
from .realtime import ConnectionHub

__all__ = [
    "membership",
    "ConnectionContext",
    "ConnectionHub",
    "ConversationService",
    "CryptoService",
    "EventDispatcher",
    "MessageService",
    "PresenceRegistry",
]
