"""JWT access/refresh tokens standing in for the managed auth provider's session."""

import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from course_review.config import settings
from course_review.exceptions import AuthenticationError


def _encode(user_id: str, token_type: str, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": token_type,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """Create a short-lived access token for ``user_id``."""
    return _encode(
        user_id,
        "access",
        expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes),
    )


def create_refresh_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """Create a long-lived refresh token for ``user_id``."""
    return _encode(
        user_id,
        "refresh",
        expires_delta or timedelta(days=settings.jwt_refresh_token_expire_days),
    )


def create_token_pair(user_id: str) -> dict[str, str]:
    """Create both access and refresh tokens for a user.

    Returns:
        Dictionary with ``access_token``, ``refresh_token``, and ``token_type``.
    """
    return {
        "access_token": create_access_token(user_id),
        "refresh_token": create_refresh_token(user_id),
        "token_type": "bearer",
    }


def decode_token(token: str) -> dict:
    """Decode and verify a JWT.

    Raises:
        jose.JWTError: If the token is invalid, expired, or malformed.
    """
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


def user_id_from_token(token: str, expected_type: str = "access") -> uuid.UUID:
    """Return the subject of a verified token of ``expected_type``.

    Raises:
        AuthenticationError: On any decoding failure, wrong token type, or bad subject.
    """
    try:
        payload = decode_token(token)
    except JWTError:
        raise AuthenticationError("Could not validate credentials") from None

    if payload.get("type") != expected_type:
        raise AuthenticationError("Invalid token type")

    try:
        return uuid.UUID(payload.get("sub") or "")
    except ValueError:
        raise AuthenticationError("Could not validate credentials") from None
