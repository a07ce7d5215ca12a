"""Plan gating dependencies — enforce free-tier quotas on gated routes."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from course_review.auth.dependencies import get_optional_user
from course_review.billing.usage import SEARCHES_PER_DAY, consume
from course_review.database import get_db
from course_review.models.user import User


async def check_search_quota(
    db: AsyncSession = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> User | None:
    """Charge one search to signed-in free-tier users (402 when exhausted).

    Anonymous searches are not metered. Returns the optional caller so the
    route does not need a second auth dependency.
    """
    if user is not None:
        await consume(db, user, SEARCHES_PER_DAY)
    return user
