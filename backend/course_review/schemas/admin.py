"""Pydantic v2 schemas for the admin dashboard, analytics, and management endpoints."""

import enum
import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from course_review.schemas.common import PageMeta

TimeRange = Literal["7d", "30d", "90d", "1y"]


class UserAction(str, enum.Enum):
    SUSPEND = "suspend"
    ACTIVATE = "activate"
    DELETE = "delete"
    UPGRADE_TO_PREMIUM = "upgrade_to_premium"
    DOWNGRADE_TO_FREE = "downgrade_to_free"


class PaymentAction(str, enum.Enum):
    CANCEL_SUBSCRIPTION = "cancel_subscription"
    RETRY_INVOICE = "retry_invoice"
    SEND_INVOICE = "send_invoice"
    REFUND_LAST_PAYMENT = "refund_last_payment"


class ReviewAction(str, enum.Enum):
    HIDE = "hide"
    RESTORE = "restore"
    FLAG = "flag"


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


class UserStats(BaseModel):
    total: int = 0
    new_this_month: int = 0
    premium_users: int = 0
    active_last_30_days: int = 0


class MostReviewedCourse(BaseModel):
    id: uuid.UUID
    name: str
    instructor: str
    review_count: int
    average_rating: float


class CourseStats(BaseModel):
    total: int = 0
    new_this_month: int = 0
    most_reviewed: list[MostReviewedCourse] = []


class MonthlyReviewStat(BaseModel):
    month: str  # YYYY-MM
    count: int
    average_rating: float


class ReviewStats(BaseModel):
    total: int = 0
    new_this_month: int = 0
    average_rating: float = 0.0
    by_month: list[MonthlyReviewStat] = []


class MonthlyRevenueStat(BaseModel):
    month: str
    revenue: int
    subscriptions: int


class RevenueStats(BaseModel):
    total_this_month: int = 0
    total_all_time: int = 0
    subscription_count: int = 0
    churn_rate: float = 0.0
    by_month: list[MonthlyRevenueStat] = []


class AdminActionLogResponse(BaseModel):
    id: uuid.UUID
    admin_id: uuid.UUID | None = None
    admin_email: str
    action: str
    target_type: str
    target_id: str | None = None
    details: dict[str, Any] | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DashboardStats(BaseModel):
    users: UserStats
    courses: CourseStats
    reviews: ReviewStats
    revenue: RevenueStats


class DashboardResponse(BaseModel):
    stats: DashboardStats
    recent_actions: list[AdminActionLogResponse]


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


class GrowthMetrics(BaseModel):
    user_growth: float = 0.0
    revenue_growth: float = 0.0
    review_growth: float = 0.0


class AnalyticsOverview(BaseModel):
    total_users: int = 0
    total_revenue: int = 0
    total_reviews: int = 0
    avg_rating: float = 0.0
    growth_metrics: GrowthMetrics = GrowthMetrics()


class TrendPoint(BaseModel):
    period: str  # YYYY-MM-DD for daily buckets, YYYY-MM for monthly
    value: float


class StatusCount(BaseModel):
    status: str
    count: int


class PremiumConversion(BaseModel):
    total_free_users: int = 0
    total_premium_users: int = 0
    conversion_rate: float = 0.0


class UserAnalytics(BaseModel):
    registration_trend: list[TrendPoint] = []
    activity_trend: list[TrendPoint] = []
    user_status_breakdown: list[StatusCount] = []
    premium_conversion: PremiumConversion = PremiumConversion()


class PlanDistribution(BaseModel):
    plan: str
    count: int
    revenue: int


class RevenueAnalytics(BaseModel):
    revenue_trend: list[TrendPoint] = []
    plan_distribution: list[PlanDistribution] = []
    churn_rate: float = 0.0
    mrr: float = 0.0
    arpu: float = 0.0


class RatingCount(BaseModel):
    rating: int
    count: int


class TopCourse(BaseModel):
    course_id: uuid.UUID
    course_name: str
    review_count: int
    avg_rating: float


class ReviewEngagement(BaseModel):
    total_reviews: int = 0
    helpful_votes: int = 0
    engagement_rate: float = 0.0


class ContentAnalytics(BaseModel):
    review_trend: list[TrendPoint] = []
    rating_distribution: list[RatingCount] = []
    top_courses: list[TopCourse] = []
    review_engagement: ReviewEngagement = ReviewEngagement()


class AnalyticsResponse(BaseModel):
    time_range: TimeRange
    overview: AnalyticsOverview
    user_analytics: UserAnalytics
    revenue_analytics: RevenueAnalytics
    content_analytics: ContentAnalytics


# ---------------------------------------------------------------------------
# Management
# ---------------------------------------------------------------------------


class AdminUserRow(BaseModel):
    id: uuid.UUID
    email: str
    display_name: str
    status: str
    is_premium: bool
    is_admin: bool
    created_at: datetime
    last_sign_in_at: datetime | None = None
    subscription_status: str | None = None
    review_count: int
    total_spent: int


class AdminUserListResponse(PageMeta):
    items: list[AdminUserRow]


class AdminPaymentRow(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    user_email: str | None = None
    stripe_subscription_id: str
    status: str
    plan_name: str
    amount: int
    currency: str
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool
    created_at: datetime


class AdminPaymentListResponse(PageMeta):
    items: list[AdminPaymentRow]
    total_revenue: int


class UserActionRequest(BaseModel):
    action: UserAction


class PaymentActionRequest(BaseModel):
    action: PaymentAction


class ReviewModerationRequest(BaseModel):
    action: ReviewAction
    reason: str | None = None


class ActionResult(BaseModel):
    success: bool = True
    action: str
    target_id: str
    result: dict[str, Any]


class AdminLogListResponse(PageMeta):
    items: list[AdminActionLogResponse]
