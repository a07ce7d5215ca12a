"""Tests for the course catalog service: search, duplicates, aggregates."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import create_course, create_user
from course_review.exceptions import ConflictError, NotFoundError, ValidationError
from course_review.models.course import Course
from course_review.models.review import Review
from course_review.models.university import University
from course_review.schemas.course import CourseSearchParams, CourseUpdate, CourseUserCreate
from course_review.services import course_service

pytestmark = pytest.mark.asyncio


async def _add_review(db_session: AsyncSession, course: Course, rating: int, **overrides) -> Review:
    author = await create_user(db_session)
    values = {
        "course_id": course.id,
        "user_id": author.id,
        "overall_rating": rating,
        "difficulty": 3,
        "workload": 3,
        "content": "A perfectly ordinary course review.",
    }
    values.update(overrides)
    review = Review(**values)
    db_session.add(review)
    await db_session.flush()
    return review


class TestRecomputeAggregates:
    async def test_average_of_ratings(self, db_session: AsyncSession, course: Course) -> None:
        for rating in (3, 4, 5):
            await _add_review(db_session, course, rating)

        updated = await course_service.recompute_aggregates(db_session, course.id)

        assert updated.total_reviews == 3
        assert updated.average_rating == 4.0
        assert updated.average_difficulty == 3.0

    async def test_no_reviews_gives_none(self, db_session: AsyncSession, course: Course) -> None:
        updated = await course_service.recompute_aggregates(db_session, course.id)
        assert updated.total_reviews == 0
        assert updated.average_rating is None
        assert updated.average_workload is None

    async def test_hidden_reviews_do_not_count(self, db_session: AsyncSession, course: Course) -> None:
        await _add_review(db_session, course, 5)
        await _add_review(db_session, course, 1, is_hidden=True)

        updated = await course_service.recompute_aggregates(db_session, course.id)

        assert updated.total_reviews == 1
        assert updated.average_rating == 5.0


class TestSearchCourses:
    async def _seed(self, db_session: AsyncSession, university: University) -> list[Course]:
        courses = []
        for name, rating in (("Alpha", 3.2), ("Beta", 4.0), ("Gamma", 4.8)):
            courses.append(
                await create_course(db_session, university, name=name, average_rating=rating, total_reviews=1)
            )
        return courses

    async def test_min_rating_filter_and_sort(self, db_session: AsyncSession, university: University) -> None:
        await self._seed(db_session, university)

        items, total = await course_service.search_courses(
            db_session, CourseSearchParams(min_rating=4, sort="-average_rating")
        )

        assert total == 2
        assert [c.name for c in items] == ["Gamma", "Beta"]

    async def test_default_sort_by_name(self, db_session: AsyncSession, university: University) -> None:
        await self._seed(db_session, university)
        items, _ = await course_service.search_courses(db_session, CourseSearchParams())
        assert [c.name for c in items] == ["Alpha", "Beta", "Gamma"]

    async def test_text_search_is_case_insensitive(self, db_session: AsyncSession, university: University) -> None:
        await create_course(db_session, university, name="Linear Algebra", instructor="Prof. Ito")
        await create_course(db_session, university, name="Statistics", instructor="Prof. Mori")

        items, total = await course_service.search_courses(db_session, CourseSearchParams(search="ALGEBRA"))

        assert total == 1
        assert items[0].name == "Linear Algebra"

    async def test_pagination(self, db_session: AsyncSession, university: University) -> None:
        await self._seed(db_session, university)
        items, total = await course_service.search_courses(db_session, CourseSearchParams(page=2, limit=2))
        assert total == 3
        assert [c.name for c in items] == ["Gamma"]

    async def test_unmatched_filter_is_empty(self, db_session: AsyncSession, university: University) -> None:
        await self._seed(db_session, university)
        items, total = await course_service.search_courses(db_session, CourseSearchParams(department="Physics"))
        assert items == []
        assert total == 0

    async def test_unknown_sort_key(self, db_session: AsyncSession) -> None:
        with pytest.raises(ValidationError):
            await course_service.search_courses(db_session, CourseSearchParams(sort="-hashed_password"))


class TestUserCreateCourse:
    def _payload(self, **overrides) -> CourseUserCreate:
        values = {
            "course_code": "HIST200",
            "name": "Modern Japanese History",
            "instructor": "Prof. Kato",
            "year": 2026,
            "semester": "fall",
        }
        values.update(overrides)
        return CourseUserCreate(**values)

    async def test_creates_with_defaults(self, db_session: AsyncSession, university: University) -> None:
        author = await create_user(db_session)
        course = await course_service.user_create_course(
            db_session, self._payload(year=None, semester=None), author.id
        )
        assert course.semester == "spring"
        assert course.year is not None
        assert course.university_id == university.id
        assert course.created_by == author.id

    async def test_exact_duplicate_conflict(self, db_session: AsyncSession, university: University) -> None:
        existing = await create_course(
            db_session, university, course_code="HIST200", year=2026, semester="fall", name="History"
        )
        author = await create_user(db_session)

        with pytest.raises(ConflictError) as exc_info:
            await course_service.user_create_course(db_session, self._payload(), author.id)

        assert exc_info.value.details["existing_course"]["name"] == existing.name

    async def test_similar_course_requires_confirmation(
        self, db_session: AsyncSession, university: University
    ) -> None:
        await create_course(
            db_session, university, course_code="HIST100", name="modern japanese history", instructor="PROF. KATO"
        )
        author = await create_user(db_session)

        with pytest.raises(ConflictError) as exc_info:
            await course_service.user_create_course(db_session, self._payload(), author.id)
        assert exc_info.value.details["confirm_required"] is True
        assert len(exc_info.value.details["similar_courses"]) == 1

        course = await course_service.user_create_course(
            db_session, self._payload(confirm_override=True), author.id
        )
        assert course.course_code == "HIST200"

    async def test_similar_course_at_other_university_ignored(
        self, db_session: AsyncSession, university: University
    ) -> None:
        other = University(name="Waseda University", short_name="Waseda")
        db_session.add(other)
        await db_session.flush()
        await create_course(
            db_session, other, course_code="HIST100", name="Modern Japanese History", instructor="Prof. Kato"
        )
        author = await create_user(db_session)

        course = await course_service.user_create_course(
            db_session, self._payload(university_id=university.id), author.id
        )

        assert course.university_id == university.id

    async def test_no_university_configured(self, db_session: AsyncSession) -> None:
        author = await create_user(db_session)
        with pytest.raises(NotFoundError):
            await course_service.user_create_course(db_session, self._payload(), author.id)


class TestDuplicateCheck:
    async def test_requires_code_or_name(self, db_session: AsyncSession) -> None:
        with pytest.raises(ValidationError):
            await course_service.check_duplicates(db_session, instructor="Prof. Kato")

    async def test_matches_by_code(self, db_session: AsyncSession, university: University) -> None:
        await create_course(db_session, university, course_code="MATH1")
        await create_course(db_session, university, course_code="MATH2")
        found = await course_service.check_duplicates(db_session, course_code="MATH1")
        assert [c.course_code for c in found] == ["MATH1"]


class TestUpdateDeleteCourse:
    async def test_update_merges_fields(self, db_session: AsyncSession, course: Course) -> None:
        before = course.updated_at
        updated = await course_service.update_course(db_session, course.id, CourseUpdate(credits=4))
        assert updated.credits == 4
        assert updated.name == "Principles of Microeconomics"
        assert updated.updated_at >= before

    async def test_delete_with_reviews_conflicts(self, db_session: AsyncSession, course: Course) -> None:
        await _add_review(db_session, course, 4)
        with pytest.raises(ConflictError) as exc_info:
            await course_service.delete_course(db_session, course.id)
        assert exc_info.value.details["review_count"] == 1

    async def test_delete_without_reviews(self, db_session: AsyncSession, course: Course) -> None:
        await course_service.delete_course(db_session, course.id)
        with pytest.raises(NotFoundError):
            await course_service.get_course(db_session, course.id)
