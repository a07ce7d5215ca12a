"""Shared API dependencies — single import point for all routers.

Re-exports database session, authentication, and quota dependencies so that
router modules can import everything they need from one place::

    from course_review.api.deps import get_db, get_current_user
"""

from course_review.auth.dependencies import (
    get_current_user,
    get_optional_user,
    require_admin,
)
from course_review.billing.dependencies import check_search_quota
from course_review.database import get_db

# Role gates used by the admin router
require_moderator = require_admin("moderator")
require_full_admin = require_admin("admin")

__all__ = [
    "get_db",
    "get_current_user",
    "get_optional_user",
    "require_admin",
    "require_moderator",
    "require_full_admin",
    "check_search_quota",
]
