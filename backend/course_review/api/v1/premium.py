"""Premium usage limits — read and consume free-tier quotas."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from course_review.api.deps import get_current_user, get_db
from course_review.billing.usage import check_and_increment, get_usage
from course_review.models.user import User
from course_review.schemas.billing import (
    UsageFeature,
    UsageIncrementRequest,
    UsageIncrementResponse,
    UsageLimitResponse,
)

router = APIRouter(prefix="/api/v1/premium", tags=["premium"])


@router.get("/usage-limits", response_model=UsageLimitResponse)
async def get_usage_limits(
    feature: UsageFeature = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UsageLimitResponse:
    """Usage of ``feature`` in the current period. Premium limits are -1."""
    usage = await get_usage(db, current_user, feature)
    return UsageLimitResponse(
        feature=usage.feature,
        limit=usage.limit,
        used=usage.used,
        remaining=usage.remaining,
        reset_date=usage.reset_date,
        is_premium=usage.is_premium,
    )


@router.post("/usage-limits", response_model=UsageIncrementResponse)
async def increment_usage(
    body: UsageIncrementRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UsageIncrementResponse:
    """Check and consume ``increment`` units; nothing is consumed when not allowed."""
    check = await check_and_increment(db, current_user, body.feature, body.increment)
    return UsageIncrementResponse(
        feature=check.feature,
        allowed=check.allowed,
        limit=check.limit,
        used=check.used,
        remaining=check.remaining,
        is_premium=check.is_premium,
    )
