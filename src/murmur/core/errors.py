"""Error taxonomy shared by the REST and socket paths.

Every error carries the HTTP status it maps to. The socket path only uses the
message text, which is emitted as an ``error`` event to the initiating
connection.
"""

from __future__ import annotations

from fastapi import status


class MurmurError(RuntimeError):
    """Base exception for all messaging-core failures."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Something went wrong"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class AuthenticationError(MurmurError):
    """Raised when a credential is missing, invalid or expired."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication error"


class AuthorizationError(MurmurError):
    """Raised when an authenticated user lacks rights in a conversation."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class ValidationError(MurmurError):
    """Raised for malformed input that cannot be processed."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class NotFoundError(MurmurError):
    """Raised when a referenced user, conversation or message does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class StorageError(MurmurError):
    """Raised when the persistence layer fails."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Storage failure"
