"""Admin dashboard and analytics aggregation.

Every metric is computed by its own query and wrapped by ``_metric``: a failing
metric is logged and reported with its zero/empty default, so one broken query
degrades the dashboard instead of failing it.

Trends walk the requested window one day (or one month for ``1y``) at a time
and issue one bounded-range query per bucket, so no dialect-specific date
truncation is needed.
"""

import logging
from collections import Counter
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from course_review.billing.plans import PLANS, get_plan_by_price_id, monthly_amount
from course_review.database import utcnow
from course_review.models.admin_log import AdminActionLog
from course_review.models.billing_history import BillingHistory
from course_review.models.course import Course
from course_review.models.review import Review, ReviewVote
from course_review.models.subscription import ACTIVE_STATUSES, Subscription
from course_review.models.user import User
from course_review.schemas.admin import (
    AdminActionLogResponse,
    AnalyticsOverview,
    AnalyticsResponse,
    ContentAnalytics,
    CourseStats,
    DashboardResponse,
    DashboardStats,
    GrowthMetrics,
    MonthlyReviewStat,
    MonthlyRevenueStat,
    MostReviewedCourse,
    PlanDistribution,
    PremiumConversion,
    RatingCount,
    ReviewEngagement,
    ReviewStats,
    RevenueAnalytics,
    RevenueStats,
    StatusCount,
    TopCourse,
    TrendPoint,
    UserAnalytics,
    UserStats,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TIME_RANGES: dict[str, timedelta] = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": timedelta(days=365),
}

PAID = "paid"
DASHBOARD_MONTHS = 6
RECENT_ACTIONS = 10
MOST_REVIEWED = 5
TOP_COURSES = 10


def growth_percentage(current: float, previous: float) -> float:
    """``(current - previous) / previous * 100``; 0 when there is no baseline."""
    if not previous:
        return 0.0
    return round((current - previous) / previous * 100, 2)


def _percent(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


async def _metric(
    db: AsyncSession, name: str, compute: Callable[[], Awaitable[T]], default: Callable[[], T]
) -> T:
    try:
        return await compute()
    except SQLAlchemyError:
        logger.exception("Metric %s failed, reporting default", name)
        # A failed statement poisons the transaction on PostgreSQL
        await db.rollback()
    except Exception:
        logger.exception("Metric %s failed, reporting default", name)
    return default()


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


def _month_start(now: datetime) -> datetime:
    return datetime(now.year, now.month, 1)


def _shift_month(month_start: datetime, months: int) -> datetime:
    index = month_start.year * 12 + (month_start.month - 1) + months
    return datetime(index // 12, index % 12 + 1, 1)


def _month_key(dt: datetime) -> str:
    return dt.strftime("%Y-%m")


def _recent_months(now: datetime, count: int) -> list[datetime]:
    """Starts of the last ``count`` calendar months, oldest first, current month last."""
    current = _month_start(now)
    return [_shift_month(current, -offset) for offset in range(count - 1, -1, -1)]


def _buckets(time_range: str, start: datetime, now: datetime) -> list[tuple[str, datetime, datetime]]:
    """``(period, lower, upper)`` half-open ranges covering ``start`` through ``now``.

    Daily buckets, monthly for ``1y``; the first bucket is clipped to ``start``.
    """
    buckets = []
    if time_range == "1y":
        month, last = _month_start(start), _month_start(now)
        while month <= last:
            following = _shift_month(month, 1)
            buckets.append((_month_key(month), max(month, start), following))
            month = following
        return buckets
    day = datetime(start.year, start.month, start.day)
    while day.date() <= now.date():
        following = day + timedelta(days=1)
        buckets.append((day.date().isoformat(), max(day, start), following))
        day = following
    return buckets


async def _count_trend(
    db: AsyncSession, time_range: str, start: datetime, now: datetime, model, column, *filters
) -> list[TrendPoint]:
    points = []
    for period, lower, upper in _buckets(time_range, start, now):
        value = await _count(db, model, column >= lower, column < upper, *filters)
        points.append(TrendPoint(period=period, value=value))
    return points


async def _revenue_trend(db: AsyncSession, time_range: str, start: datetime, now: datetime) -> list[TrendPoint]:
    points = []
    for period, lower, upper in _buckets(time_range, start, now):
        value = await _revenue(db, BillingHistory.created_at >= lower, BillingHistory.created_at < upper)
        points.append(TrendPoint(period=period, value=value))
    return points


# ---------------------------------------------------------------------------
# Shared queries
# ---------------------------------------------------------------------------


async def _count(db: AsyncSession, model, *filters) -> int:
    result = await db.execute(select(func.count()).select_from(model).where(*filters))
    return result.scalar_one()


async def _revenue(db: AsyncSession, *filters) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(BillingHistory.amount), 0)).where(BillingHistory.status == PAID, *filters)
    )
    return int(result.scalar_one())


async def _average_rating(db: AsyncSession) -> float:
    result = await db.execute(select(func.avg(Review.overall_rating)).where(Review.is_hidden.is_(False)))
    value = result.scalar_one()
    return round(float(value), 2) if value is not None else 0.0


async def _churn_rate(db: AsyncSession, since: datetime) -> float:
    """Subscriptions canceled since ``since`` over those active plus those canceled."""
    canceled = await _count(db, Subscription, Subscription.status == "canceled", Subscription.canceled_at >= since)
    active = await _count(db, Subscription, Subscription.status.in_(ACTIVE_STATUSES))
    return _percent(canceled, active + canceled)


async def _active_subscriptions(db: AsyncSession) -> list[Subscription]:
    result = await db.execute(select(Subscription).where(Subscription.status.in_(ACTIVE_STATUSES)))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


async def _user_stats(db: AsyncSession, now: datetime) -> UserStats:
    return UserStats(
        total=await _count(db, User),
        new_this_month=await _count(db, User, User.created_at >= _month_start(now)),
        premium_users=await _count(db, User, User.is_premium.is_(True)),
        active_last_30_days=await _count(db, User, User.last_sign_in_at >= now - timedelta(days=30)),
    )


async def _course_stats(db: AsyncSession, now: datetime) -> CourseStats:
    result = await db.execute(
        select(Course)
        .where(Course.total_reviews > 0)
        .order_by(Course.total_reviews.desc(), Course.name)
        .limit(MOST_REVIEWED)
    )
    most_reviewed = [
        MostReviewedCourse(
            id=c.id,
            name=c.name,
            instructor=c.instructor,
            review_count=c.total_reviews,
            average_rating=c.average_rating or 0.0,
        )
        for c in result.scalars().all()
    ]
    return CourseStats(
        total=await _count(db, Course),
        new_this_month=await _count(db, Course, Course.created_at >= _month_start(now)),
        most_reviewed=most_reviewed,
    )


async def _review_stats(db: AsyncSession, now: datetime) -> ReviewStats:
    by_month = []
    for month in _recent_months(now, DASHBOARD_MONTHS):
        result = await db.execute(
            select(func.count(), func.avg(Review.overall_rating)).where(
                Review.created_at >= month,
                Review.created_at < _shift_month(month, 1),
                Review.is_hidden.is_(False),
            )
        )
        count, average = result.one()
        by_month.append(
            MonthlyReviewStat(
                month=_month_key(month),
                count=count,
                average_rating=round(float(average), 2) if average is not None else 0.0,
            )
        )

    return ReviewStats(
        total=await _count(db, Review),
        new_this_month=await _count(db, Review, Review.created_at >= _month_start(now)),
        average_rating=await _average_rating(db),
        by_month=by_month,
    )


async def _revenue_stats(db: AsyncSession, now: datetime) -> RevenueStats:
    by_month = []
    for month in _recent_months(now, DASHBOARD_MONTHS):
        following = _shift_month(month, 1)
        by_month.append(
            MonthlyRevenueStat(
                month=_month_key(month),
                revenue=await _revenue(db, BillingHistory.created_at >= month, BillingHistory.created_at < following),
                subscriptions=await _count(
                    db, Subscription, Subscription.created_at >= month, Subscription.created_at < following
                ),
            )
        )

    return RevenueStats(
        total_this_month=await _revenue(db, BillingHistory.created_at >= _month_start(now)),
        total_all_time=await _revenue(db),
        subscription_count=await _count(db, Subscription, Subscription.status.in_(ACTIVE_STATUSES)),
        churn_rate=await _churn_rate(db, now - timedelta(days=30)),
        by_month=by_month,
    )


async def recent_admin_actions(db: AsyncSession, limit: int = RECENT_ACTIONS) -> list[AdminActionLogResponse]:
    result = await db.execute(select(AdminActionLog).order_by(AdminActionLog.created_at.desc()).limit(limit))
    return [AdminActionLogResponse.model_validate(log) for log in result.scalars().all()]


async def get_dashboard(db: AsyncSession, now: datetime | None = None) -> DashboardResponse:
    """Headline user, course, review, and revenue stats plus the latest admin actions."""
    now = now or utcnow()
    stats = DashboardStats(
        users=await _metric(db, "users", lambda: _user_stats(db, now), UserStats),
        courses=await _metric(db, "courses", lambda: _course_stats(db, now), CourseStats),
        reviews=await _metric(db, "reviews", lambda: _review_stats(db, now), ReviewStats),
        revenue=await _metric(db, "revenue", lambda: _revenue_stats(db, now), RevenueStats),
    )
    recent = await _metric(db, "recent_actions", lambda: recent_admin_actions(db), list)
    return DashboardResponse(stats=stats, recent_actions=recent)


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


async def _overview(db: AsyncSession, start: datetime, previous_start: datetime, now: datetime) -> AnalyticsOverview:
    users_now = await _count(db, User, User.created_at >= start, User.created_at < now)
    users_before = await _count(db, User, User.created_at >= previous_start, User.created_at < start)
    revenue_now = await _revenue(db, BillingHistory.created_at >= start, BillingHistory.created_at < now)
    revenue_before = await _revenue(db, BillingHistory.created_at >= previous_start, BillingHistory.created_at < start)
    reviews_now = await _count(db, Review, Review.created_at >= start, Review.created_at < now)
    reviews_before = await _count(db, Review, Review.created_at >= previous_start, Review.created_at < start)

    return AnalyticsOverview(
        total_users=await _count(db, User),
        total_revenue=await _revenue(db),
        total_reviews=await _count(db, Review),
        avg_rating=await _average_rating(db),
        growth_metrics=GrowthMetrics(
            user_growth=growth_percentage(users_now, users_before),
            revenue_growth=growth_percentage(revenue_now, revenue_before),
            review_growth=growth_percentage(reviews_now, reviews_before),
        ),
    )


async def _user_analytics(db: AsyncSession, time_range: str, start: datetime, now: datetime) -> UserAnalytics:
    status_rows = await db.execute(select(User.status, func.count()).group_by(User.status).order_by(User.status))
    breakdown = [StatusCount(status=status, count=count) for status, count in status_rows.all()]

    premium = await _count(db, User, User.is_premium.is_(True))
    free = await _count(db, User, User.is_premium.is_(False))

    return UserAnalytics(
        registration_trend=await _count_trend(db, time_range, start, now, User, User.created_at),
        activity_trend=await _count_trend(db, time_range, start, now, User, User.last_sign_in_at),
        user_status_breakdown=breakdown,
        premium_conversion=PremiumConversion(
            total_free_users=free,
            total_premium_users=premium,
            conversion_rate=_percent(premium, premium + free),
        ),
    )


async def _revenue_analytics(db: AsyncSession, time_range: str, start: datetime, now: datetime) -> RevenueAnalytics:
    active = await _active_subscriptions(db)
    per_plan: Counter[str] = Counter()
    mrr = 0.0
    for subscription in active:
        plan = get_plan_by_price_id(subscription.price_id)
        if plan is None:
            per_plan["unknown"] += 1
            continue
        per_plan[plan.name] += 1
        mrr += monthly_amount(plan)

    distribution = [
        PlanDistribution(
            plan=name,
            count=count,
            revenue=count * PLANS[name].amount if name in PLANS else 0,
        )
        for name, count in sorted(per_plan.items())
    ]

    paying_users = len({s.user_id for s in active})
    return RevenueAnalytics(
        revenue_trend=await _revenue_trend(db, time_range, start, now),
        plan_distribution=distribution,
        churn_rate=await _churn_rate(db, start),
        mrr=round(mrr, 2),
        arpu=round(mrr / paying_users, 2) if paying_users else 0.0,
    )


async def _content_analytics(db: AsyncSession, time_range: str, start: datetime, now: datetime) -> ContentAnalytics:
    rating_rows = await db.execute(
        select(Review.overall_rating, func.count())
        .where(Review.is_hidden.is_(False))
        .group_by(Review.overall_rating)
    )
    ratings = dict(rating_rows.all())

    top_rows = await db.execute(
        select(Course)
        .where(Course.total_reviews > 0)
        .order_by(Course.total_reviews.desc(), Course.name)
        .limit(TOP_COURSES)
    )
    top_courses = [
        TopCourse(course_id=c.id, course_name=c.name, review_count=c.total_reviews, avg_rating=c.average_rating or 0.0)
        for c in top_rows.scalars().all()
    ]

    total_reviews = await _count(db, Review)
    helpful_votes = await _count(db, ReviewVote, ReviewVote.is_helpful.is_(True))
    voted = await db.execute(select(func.count(func.distinct(ReviewVote.review_id))))

    return ContentAnalytics(
        review_trend=await _count_trend(db, time_range, start, now, Review, Review.created_at),
        rating_distribution=[RatingCount(rating=r, count=ratings.get(r, 0)) for r in range(1, 6)],
        top_courses=top_courses,
        review_engagement=ReviewEngagement(
            total_reviews=total_reviews,
            helpful_votes=helpful_votes,
            engagement_rate=_percent(voted.scalar_one(), total_reviews),
        ),
    )


async def get_analytics(db: AsyncSession, time_range: str = "30d", now: datetime | None = None) -> AnalyticsResponse:
    """Trends and growth over ``time_range``; daily buckets, monthly for ``1y``."""
    now = now or utcnow()
    window = TIME_RANGES[time_range]
    start = now - window
    previous_start = start - window

    return AnalyticsResponse(
        time_range=time_range,
        overview=await _metric(db, "overview", lambda: _overview(db, start, previous_start, now), AnalyticsOverview),
        user_analytics=await _metric(
            db, "user_analytics", lambda: _user_analytics(db, time_range, start, now), UserAnalytics
        ),
        revenue_analytics=await _metric(
            db, "revenue_analytics", lambda: _revenue_analytics(db, time_range, start, now), RevenueAnalytics
        ),
        content_analytics=await _metric(
            db, "content_analytics", lambda: _content_analytics(db, time_range, start, now), ContentAnalytics
        ),
    )
