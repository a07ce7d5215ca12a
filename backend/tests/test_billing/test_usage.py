"""Tests for free-tier usage counters and their reset boundaries."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import create_user
from course_review.billing.usage import (
    REVIEWS_PER_MONTH,
    SEARCHES_PER_DAY,
    UNLIMITED,
    check_and_increment,
    consume,
    get_usage,
    next_reset,
)
from course_review.config import settings
from course_review.exceptions import UsageLimitExceededError, ValidationError
from course_review.models.usage import UsageCounter
from course_review.models.user import User

NOW = datetime(2026, 12, 31, 23, 30, 0)


class TestNextReset:
    def test_monthly_rolls_over_year(self):
        assert next_reset(REVIEWS_PER_MONTH, NOW) == datetime(2027, 1, 1)

    def test_monthly_mid_year(self):
        assert next_reset(REVIEWS_PER_MONTH, datetime(2026, 4, 15, 8)) == datetime(2026, 5, 1)

    def test_daily_is_next_midnight(self):
        assert next_reset(SEARCHES_PER_DAY, NOW) == datetime(2027, 1, 1)
        assert next_reset(SEARCHES_PER_DAY, datetime(2026, 4, 15, 0, 0)) == datetime(2026, 4, 16)

    def test_unknown_feature(self):
        with pytest.raises(ValidationError):
            next_reset("exports_per_week", NOW)


class TestCheckAndIncrement:
    @pytest.mark.asyncio
    async def test_counts_up_to_limit(self, db_session: AsyncSession, test_user: User) -> None:
        for expected_used in range(1, 6):
            check = await check_and_increment(db_session, test_user, REVIEWS_PER_MONTH, now=NOW)
            assert check.allowed is True
            assert check.used == expected_used
        assert check.remaining == 0

        denied = await check_and_increment(db_session, test_user, REVIEWS_PER_MONTH, now=NOW)
        assert denied.allowed is False
        assert denied.used == 5

    @pytest.mark.asyncio
    async def test_denied_check_does_not_mutate(self, db_session: AsyncSession, test_user: User) -> None:
        await check_and_increment(db_session, test_user, REVIEWS_PER_MONTH, increment=4, now=NOW)

        denied = await check_and_increment(db_session, test_user, REVIEWS_PER_MONTH, increment=2, now=NOW)
        assert denied.allowed is False

        result = await db_session.execute(select(UsageCounter).where(UsageCounter.user_id == test_user.id))
        assert result.scalar_one().used_count == 4

    @pytest.mark.asyncio
    async def test_zero_increment_only_checks(self, db_session: AsyncSession, test_user: User) -> None:
        check = await check_and_increment(db_session, test_user, SEARCHES_PER_DAY, increment=0, now=NOW)
        assert check.allowed is True
        assert check.used == 0

        result = await db_session.execute(select(UsageCounter).where(UsageCounter.user_id == test_user.id))
        assert result.scalar_one_or_none() is None

    @pytest.mark.asyncio
    async def test_new_period_starts_from_zero(self, db_session: AsyncSession, test_user: User) -> None:
        for _ in range(5):
            await consume(db_session, test_user, REVIEWS_PER_MONTH, now=NOW)

        check = await check_and_increment(db_session, test_user, REVIEWS_PER_MONTH, now=NOW + timedelta(hours=1))
        assert check.allowed is True
        assert check.used == 1

    @pytest.mark.asyncio
    async def test_premium_is_unlimited(self, db_session: AsyncSession, premium_user: User) -> None:
        check = await check_and_increment(db_session, premium_user, SEARCHES_PER_DAY, increment=500, now=NOW)
        assert check.allowed is True
        assert check.limit == UNLIMITED
        assert check.remaining == UNLIMITED

    @pytest.mark.asyncio
    async def test_expired_premium_is_limited(self, db_session: AsyncSession) -> None:
        lapsed = await create_user(db_session, is_premium=True, premium_expires_at=NOW - timedelta(days=1))
        check = await check_and_increment(db_session, lapsed, SEARCHES_PER_DAY, now=NOW)
        assert check.is_premium is False
        assert check.limit == settings.free_searches_per_day


class TestConsumeAndReport:
    @pytest.mark.asyncio
    async def test_consume_raises_when_exhausted(self, db_session: AsyncSession, test_user: User) -> None:
        for _ in range(settings.free_searches_per_day):
            await consume(db_session, test_user, SEARCHES_PER_DAY, now=NOW)

        with pytest.raises(UsageLimitExceededError) as exc_info:
            await consume(db_session, test_user, SEARCHES_PER_DAY, now=NOW)
        assert exc_info.value.status_code == 402
        assert exc_info.value.details["limit"] == settings.free_searches_per_day

    @pytest.mark.asyncio
    async def test_get_usage(self, db_session: AsyncSession, test_user: User) -> None:
        await consume(db_session, test_user, REVIEWS_PER_MONTH, now=NOW)

        status = await get_usage(db_session, test_user, REVIEWS_PER_MONTH, now=NOW)

        assert (status.limit, status.used, status.remaining) == (5, 1, 4)
        assert status.reset_date == datetime(2027, 1, 1)
        assert status.is_premium is False

    @pytest.mark.asyncio
    async def test_get_usage_premium(self, db_session: AsyncSession, premium_user: User) -> None:
        status = await get_usage(db_session, premium_user, SEARCHES_PER_DAY, now=NOW)
        assert status.limit == UNLIMITED
        assert status.is_premium is True
