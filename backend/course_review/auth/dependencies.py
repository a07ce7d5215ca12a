"""FastAPI authentication dependencies for route protection."""

import uuid
from collections.abc import Awaitable, Callable

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from course_review.auth.jwt import user_id_from_token
from course_review.database import get_db
from course_review.exceptions import AuthenticationError, PermissionDeniedError
from course_review.models.user import User

# A missing header is reported as 401 by us rather than by the security scheme
_bearer_scheme = HTTPBearer(auto_error=False)


async def _load_active_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise AuthenticationError("Could not validate credentials")
    if not user.is_active:
        raise AuthenticationError("User account is not active", {"status": user.status})
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Return the authenticated, active user for the Bearer token.

    Raises:
        AuthenticationError: Missing/invalid token, unknown user, or a suspended
            or deleted account.
    """
    if credentials is None:
        raise AuthenticationError("Authentication required")
    user_id = user_id_from_token(credentials.credentials)
    return await _load_active_user(db, user_id)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Authenticate when a token is present; anonymous callers get ``None``.

    A token that is present but invalid is still rejected with 401.
    """
    if credentials is None:
        return None
    user_id = user_id_from_token(credentials.credentials)
    return await _load_active_user(db, user_id)


def require_admin(min_role: str = "admin") -> Callable[..., Awaitable[User]]:
    """Build a dependency that admits admins at or above ``min_role``."""

    async def _require_admin(user: User = Depends(get_current_user)) -> User:
        if not user.has_admin_role(min_role):
            raise PermissionDeniedError("Administrator privileges required", {"required_role": min_role})
        return user

    return _require_admin
