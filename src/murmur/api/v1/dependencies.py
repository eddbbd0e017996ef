"""Shared API dependencies for authentication and realtime delivery."""

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from murmur.core.errors import AuthenticationError
from murmur.core.security import decode_access_token
from murmur.db.session import get_db
from murmur.models import User
from murmur.repositories.user_repo import UserRepository
from murmur.services.realtime import ConnectionHub

# Missing credentials are reported through the error envelope rather than by HTTPBearer.
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def resolve_user(token: str | None, db: Session) -> User:
    """Return the user a bearer token belongs to.

    Args:
        token: Raw JWT presented by the client
        db: Database session

    Returns:
        User object for the authenticated user

    Raises:
        AuthenticationError: If the token is invalid or the user does not exist
    """
    user_id = decode_access_token(token)
    user = UserRepository(db).get(user_id)
    if user is None:
        raise AuthenticationError()
    return user


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: SessionDep,
) -> User:
    """Get the current authenticated user from the Authorization header."""
    token = credentials.credentials if credentials is not None else None
    return resolve_user(token, db)


# Type alias for current user dependency
CurrentUserDep = Annotated[User, Depends(get_current_user)]


def get_hub(request: Request) -> ConnectionHub:
    """Return the process-wide connection hub."""
    hub: ConnectionHub = request.app.state.hub
    return hub


HubDep = Annotated[ConnectionHub, Depends(get_hub)]
