"""
Pydantic schemas for API request/response models and socket frames.

These schemas define the camelCase wire format shared by REST and WebSocket clients.
"""

from .conversation import (
    ConversationCreate,
    ConversationResponse,
    ConversationUpdate,
    ParticipantAdd,
)
from .events import ServerEvent, parse_client_event, server_frame
from .message import (
    MessageCreate,
    MessageEdit,
    MessageResponse,
    ReactionCreate,
    ReadReceiptCreate,
)
from .user import PublicKeyUpdate, UserKeyResponse, UserResponse

__all__ = [
    "ConversationCreate", "ConversationResponse", "ConversationUpdate", "ParticipantAdd",
    "MessageCreate", "MessageEdit", "MessageResponse", "ReactionCreate", "ReadReceiptCreate",
    "PublicKeyUpdate", "UserKeyResponse", "UserResponse",
    "ServerEvent", "parse_client_event", "server_frame",
]
