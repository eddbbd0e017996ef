"""Bearer token helpers built on python-jose."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from murmur.core.errors import AuthenticationError
from murmur.core.settings import settings


def create_access_token(user_id: str, extra_claims: dict[str, str] | None = None) -> str:
    """Create a JWT access token whose subject is the user id."""
    to_encode: dict[str, object] = {"sub": user_id}
    if extra_claims:
        to_encode.update(extra_claims)
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode["exp"] = expire
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt


def decode_access_token(token: str | None) -> str:
    """Validate a bearer token and return its subject.

    Args:
        token: Raw JWT string as presented by the client

    Returns:
        The user id carried in the ``sub`` claim

    Raises:
        AuthenticationError: If the token is missing, malformed or expired
    """
    if not token:
        raise AuthenticationError()
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as err:
        raise AuthenticationError() from err

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise AuthenticationError()
    return subject
