"""Free-tier usage counters.

Each feature has its own reset boundary: review quotas reset at the start of
the next calendar month, search quotas at the start of the next calendar day
(both UTC). A counter row is keyed by the reset date of the period it counts,
so a new period starts from zero without any cleanup job.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from course_review.config import settings
from course_review.database import utcnow
from course_review.exceptions import ConflictError, UsageLimitExceededError, ValidationError
from course_review.models.usage import UsageCounter
from course_review.models.user import User

logger = logging.getLogger(__name__)

REVIEWS_PER_MONTH = "reviews_per_month"
SEARCHES_PER_DAY = "searches_per_day"
FEATURES = (REVIEWS_PER_MONTH, SEARCHES_PER_DAY)

UNLIMITED = -1


@dataclass
class UsageStatus:
    feature: str
    limit: int
    used: int
    remaining: int
    reset_date: datetime
    is_premium: bool


@dataclass
class UsageCheck:
    feature: str
    allowed: bool
    limit: int
    used: int
    remaining: int
    is_premium: bool


def next_reset(feature: str, now: datetime) -> datetime:
    """Start of the next period for ``feature`` (naive UTC)."""
    if feature == REVIEWS_PER_MONTH:
        if now.month == 12:
            return datetime(now.year + 1, 1, 1)
        return datetime(now.year, now.month + 1, 1)
    if feature == SEARCHES_PER_DAY:
        return datetime(now.year, now.month, now.day) + timedelta(days=1)
    raise ValidationError(f"Unknown usage feature: {feature}", {"features": list(FEATURES)})


def feature_limit(feature: str) -> int:
    if feature == REVIEWS_PER_MONTH:
        return settings.free_reviews_per_month
    if feature == SEARCHES_PER_DAY:
        return settings.free_searches_per_day
    raise ValidationError(f"Unknown usage feature: {feature}", {"features": list(FEATURES)})


async def _get_counter(
    db: AsyncSession, user: User, feature: str, reset_date: datetime
) -> UsageCounter | None:
    result = await db.execute(
        select(UsageCounter).where(
            UsageCounter.user_id == user.id,
            UsageCounter.feature == feature,
            UsageCounter.reset_date == reset_date,
        )
    )
    return result.scalar_one_or_none()


async def get_usage(
    db: AsyncSession, user: User, feature: str, now: datetime | None = None
) -> UsageStatus:
    """Report current usage of ``feature``; premium users see ``-1`` limits."""
    now = now or utcnow()
    reset_date = next_reset(feature, now)
    counter = await _get_counter(db, user, feature, reset_date)
    used = counter.used_count if counter else 0

    if user.is_premium_active(now):
        return UsageStatus(feature, UNLIMITED, used, UNLIMITED, reset_date, True)

    limit = feature_limit(feature)
    return UsageStatus(feature, limit, used, max(limit - used, 0), reset_date, False)


async def check_and_increment(
    db: AsyncSession,
    user: User,
    feature: str,
    increment: int = 1,
    now: datetime | None = None,
) -> UsageCheck:
    """Consume ``increment`` units if the result stays within the limit.

    Never mutates when the answer is ``allowed=False``. Premium users are
    always allowed and are not counted.
    """
    now = now or utcnow()
    reset_date = next_reset(feature, now)

    if user.is_premium_active(now):
        return UsageCheck(feature, True, UNLIMITED, 0, UNLIMITED, True)

    limit = feature_limit(feature)
    counter = await _get_counter(db, user, feature, reset_date)
    used = counter.used_count if counter else 0

    if used >= limit or used + increment > limit:
        logger.info("Usage limit reached for user %s: %s %d/%d", user.id, feature, used, limit)
        return UsageCheck(feature, False, limit, used, max(limit - used, 0), False)

    if increment > 0:
        if counter is None:
            counter = UsageCounter(user_id=user.id, feature=feature, reset_date=reset_date, used_count=0)
            db.add(counter)
        counter.used_count += increment
        try:
            await db.flush()
        except IntegrityError:
            # Another request created the period row first
            raise ConflictError(
                "Concurrent usage update, please retry", {"feature": feature}
            ) from None
        used = counter.used_count

    return UsageCheck(feature, True, limit, used, limit - used, False)


async def consume(
    db: AsyncSession, user: User, feature: str, now: datetime | None = None
) -> UsageCheck:
    """Consume one unit or raise ``UsageLimitExceededError`` (402)."""
    check = await check_and_increment(db, user, feature, 1, now)
    if not check.allowed:
        raise UsageLimitExceededError(
            f"Free plan limit reached for {feature}. Upgrade to premium for unlimited use.",
            {"feature": feature, "limit": check.limit, "used": check.used},
        )
    return check
