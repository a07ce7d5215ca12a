"""Admin API routes — dashboard, analytics, user/payment management, moderation, audit log.

The dashboard is open to moderators; every other route requires a full admin.
"""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from course_review.api.deps import get_db, require_full_admin, require_moderator
from course_review.models.user import User
from course_review.schemas.admin import (
    ActionResult,
    AdminActionLogResponse,
    AdminLogListResponse,
    AdminPaymentListResponse,
    AdminUserListResponse,
    AnalyticsResponse,
    DashboardResponse,
    PaymentActionRequest,
    ReviewModerationRequest,
    TimeRange,
    UserActionRequest,
)
from course_review.schemas.common import PageMeta
from course_review.services import admin_service, analytics_service

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.get("/dashboard", response_model=DashboardResponse)
async def dashboard(
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_moderator),
) -> DashboardResponse:
    return await analytics_service.get_dashboard(db)


@router.get("/analytics", response_model=AnalyticsResponse)
async def analytics(
    time_range: TimeRange = Query("30d"),
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_full_admin),
) -> AnalyticsResponse:
    """Growth, trends, and distributions over the selected window."""
    return await analytics_service.get_analytics(db, time_range)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/users", response_model=AdminUserListResponse)
async def list_users(
    search: str | None = Query(None, max_length=255),
    status: str | None = Query(None),
    is_premium: bool | None = Query(None),
    created_from: datetime | None = Query(None),
    created_to: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_full_admin),
) -> AdminUserListResponse:
    rows, total = await admin_service.list_users(
        db,
        search=search,
        status=status,
        is_premium=is_premium,
        created_from=created_from,
        created_to=created_to,
        page=page,
        limit=limit,
    )
    return AdminUserListResponse(items=rows, **PageMeta.build(total, page, limit).model_dump())


@router.post("/users/{user_id}/actions", response_model=ActionResult)
async def user_action(
    user_id: uuid.UUID,
    body: UserActionRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_full_admin),
) -> ActionResult:
    result = await admin_service.perform_user_action(db, admin, user_id, body.action)
    return ActionResult(action=body.action.value, target_id=str(user_id), result=result)


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


@router.get("/payments", response_model=AdminPaymentListResponse)
async def list_payments(
    status: str | None = Query(None),
    created_from: datetime | None = Query(None),
    created_to: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_full_admin),
) -> AdminPaymentListResponse:
    rows, total, revenue = await admin_service.list_payments(
        db, status=status, created_from=created_from, created_to=created_to, page=page, limit=limit
    )
    return AdminPaymentListResponse(
        items=rows,
        total_revenue=revenue,
        **PageMeta.build(total, page, limit).model_dump(),
    )


@router.post("/payments/{subscription_id}/actions", response_model=ActionResult)
async def payment_action(
    subscription_id: str,
    body: PaymentActionRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_full_admin),
) -> ActionResult:
    """``subscription_id`` is the local UUID or the Stripe subscription ID."""
    result = await admin_service.perform_payment_action(db, admin, subscription_id, body.action)
    return ActionResult(action=body.action.value, target_id=subscription_id, result=result)


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------


@router.post("/reviews/{review_id}/moderate", response_model=ActionResult)
async def moderate_review(
    review_id: uuid.UUID,
    body: ReviewModerationRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_full_admin),
) -> ActionResult:
    result = await admin_service.moderate_review(db, admin, review_id, body.action, body.reason)
    return ActionResult(action=body.action.value, target_id=str(review_id), result=result)


@router.get("/logs", response_model=AdminLogListResponse)
async def list_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_full_admin),
) -> AdminLogListResponse:
    logs, total = await admin_service.list_logs(db, page=page, limit=limit)
    return AdminLogListResponse(
        items=[AdminActionLogResponse.model_validate(log) for log in logs],
        **PageMeta.build(total, page, limit).model_dump(),
    )
