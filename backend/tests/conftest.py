"""Shared test configuration and fixtures.

Uses a transactional rollback strategy per test for full isolation:
- Each test gets a fresh schema and a transaction that rolls back after the test.
- Runs against in-memory SQLite unless TEST_DATABASE_URL points at PostgreSQL.
"""

import os

# Settings are read at import time; pin the values the suite relies on first
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("STRIPE_PREMIUM_MONTHLY_PRICE_ID", "price_premium_monthly")
os.environ.setdefault("STRIPE_PREMIUM_YEARLY_PRICE_ID", "price_premium_yearly")

import uuid  # noqa: E402
from collections.abc import AsyncGenerator  # noqa: E402

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from course_review import models  # noqa: E402,F401
from course_review.auth.jwt import create_token_pair  # noqa: E402
from course_review.auth.passwords import hash_password  # noqa: E402
from course_review.config import settings  # noqa: E402
from course_review.database import Base, get_db  # noqa: E402
from course_review.main import app  # noqa: E402
from course_review.models.course import Course  # noqa: E402
from course_review.models.university import University  # noqa: E402
from course_review.models.user import User  # noqa: E402

# ---------------------------------------------------------------------------
# Test database engine
# ---------------------------------------------------------------------------

_test_db_url = settings.test_database_url or "sqlite+aiosqlite:///:memory:"


def _make_engine():
    if _test_db_url.startswith("sqlite"):
        # One shared connection so every session sees the same in-memory database
        return create_async_engine(
            _test_db_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(_test_db_url, pool_pre_ping=True)


@pytest_asyncio.fixture
async def test_engine():
    """Create an engine with the full schema; drop everything afterwards."""
    engine = _make_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


# ---------------------------------------------------------------------------
# Per-test: transactional rollback for isolation
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session wrapped in a transaction that always rolls back."""
    async with test_engine.connect() as connection:
        transaction = await connection.begin()
        session = AsyncSession(bind=connection, expire_on_commit=False)

        try:
            yield session
        finally:
            await session.close()
            await transaction.rollback()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to use the test DB session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


async def create_user(db_session: AsyncSession, **overrides) -> User:
    """Insert a user directly in the DB."""
    unique = uuid.uuid4().hex[:8]
    values = {
        "email": f"student-{unique}@test.com",
        "hashed_password": hash_password("testpass123"),
        "display_name": "Test Student",
        "admission_year": 2022,
        "department": "Economics",
    }
    values.update(overrides)
    user = User(**values)
    db_session.add(user)
    await db_session.flush()
    return user


async def create_course(db_session: AsyncSession, university: University, **overrides) -> Course:
    """Insert a course directly in the DB."""
    unique = uuid.uuid4().hex[:6].upper()
    values = {
        "course_code": f"C{unique}",
        "name": f"Course {unique}",
        "instructor": "Prof. Sato",
        "department": "Economics",
        "semester": "spring",
        "year": 2026,
        "credits": 2,
    }
    values.update(overrides)
    course = Course(university_id=university.id, **values)
    db_session.add(course)
    await db_session.flush()
    return course


def headers_for(user: User) -> dict[str, str]:
    tokens = create_token_pair(str(user.id))
    return {"Authorization": f"Bearer {tokens['access_token']}"}


# ---------------------------------------------------------------------------
# Convenience fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def university(db_session: AsyncSession) -> University:
    uni = University(name=f"Test University {uuid.uuid4().hex[:6]}", short_name="TU")
    db_session.add(uni)
    await db_session.flush()
    return uni


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """A free-tier student."""
    return await create_user(db_session)


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict[str, str]:
    """Return Authorization headers for the test user."""
    return headers_for(test_user)


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, display_name="Other Student", admission_year=2023, department="Law")


@pytest_asyncio.fixture
async def other_headers(other_user: User) -> dict[str, str]:
    return headers_for(other_user)


@pytest_asyncio.fixture
async def premium_user(db_session: AsyncSession) -> User:
    """Premium with no expiry."""
    return await create_user(db_session, display_name="Premium Student", is_premium=True)


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, display_name="Admin", is_admin=True, admin_role="admin")


@pytest_asyncio.fixture
async def admin_headers(admin_user: User) -> dict[str, str]:
    return headers_for(admin_user)


@pytest_asyncio.fixture
async def moderator_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, display_name="Moderator", is_admin=True, admin_role="moderator")


@pytest_asyncio.fixture
async def moderator_headers(moderator_user: User) -> dict[str, str]:
    return headers_for(moderator_user)


@pytest_asyncio.fixture
async def course(db_session: AsyncSession, university: University) -> Course:
    return await create_course(
        db_session,
        university,
        course_code="ECON101",
        name="Principles of Microeconomics",
        instructor="Prof. Tanaka",
    )
