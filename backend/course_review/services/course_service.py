"""Course catalog service — search, CRUD, duplicate detection, review aggregates."""

import logging
import uuid

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from course_review.database import utcnow
from course_review.exceptions import ConflictError, NotFoundError, ValidationError
from course_review.models.course import Course
from course_review.models.review import Review
from course_review.models.university import University
from course_review.schemas.course import CourseCreate, CourseSearchParams, CourseUpdate, CourseUserCreate

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {
    "name": Course.name,
    "instructor": Course.instructor,
    "credits": Course.credits,
    "average_rating": Course.average_rating,
    "average_difficulty": Course.average_difficulty,
    "total_reviews": Course.total_reviews,
    "created_at": Course.created_at,
}

MAX_SIMILAR_COURSES = 3
MAX_DUPLICATE_MATCHES = 10
DEFAULT_SEMESTER = "spring"


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains(column, value: str):
    return column.ilike(f"%{_escape_like(value)}%", escape="\\")


def parse_sort(sort: str, fields: dict, tiebreaker) -> list:
    """Translate ``key`` / ``-key`` into ORDER BY clauses, with ``id`` as tiebreaker."""
    descending = sort.startswith("-")
    key = sort[1:] if descending else sort
    column = fields.get(key)
    if column is None:
        raise ValidationError(f"Invalid sort key: {sort}", {"allowed": sorted(fields)})
    primary = column.desc() if descending else column.asc()
    return [primary, tiebreaker]


async def search_courses(
    db: AsyncSession, params: CourseSearchParams
) -> tuple[list[Course], int]:
    """Return one page of courses matching every supplied filter, plus the total."""
    order_by = parse_sort(params.sort, SORTABLE_FIELDS, Course.id)

    filters = []
    if params.search:
        filters.append(
            or_(
                _contains(Course.name, params.search),
                _contains(Course.instructor, params.search),
                _contains(Course.course_code, params.search),
            )
        )
    if params.department is not None:
        filters.append(Course.department == params.department)
    if params.faculty is not None:
        filters.append(Course.faculty == params.faculty)
    if params.category is not None:
        filters.append(Course.category == params.category)
    if params.semester is not None:
        filters.append(Course.semester == params.semester)
    if params.year is not None:
        filters.append(Course.year == params.year)
    if params.credits is not None:
        filters.append(Course.credits == params.credits)
    if params.instructor:
        filters.append(_contains(Course.instructor, params.instructor))
    if params.min_rating is not None:
        filters.append(Course.average_rating >= params.min_rating)
    if params.max_difficulty is not None:
        filters.append(Course.average_difficulty <= params.max_difficulty)

    total_result = await db.execute(select(func.count()).select_from(Course).where(*filters))
    total = total_result.scalar_one()

    result = await db.execute(
        select(Course)
        .where(*filters)
        .order_by(*order_by)
        .offset((params.page - 1) * params.limit)
        .limit(params.limit)
    )
    return list(result.scalars().all()), total


async def get_course(db: AsyncSession, course_id: uuid.UUID) -> Course:
    course = await db.get(Course, course_id)
    if course is None:
        raise NotFoundError("Course not found", {"course_id": str(course_id)})
    return course


async def get_default_university(db: AsyncSession) -> University:
    """The primary university that self-service registrations attach to."""
    result = await db.execute(select(University).order_by(University.created_at, University.name).limit(1))
    university = result.scalar_one_or_none()
    if university is None:
        raise NotFoundError("No university configured")
    return university


async def _resolve_university_id(db: AsyncSession, university_id: uuid.UUID | None) -> uuid.UUID:
    if university_id is None:
        return (await get_default_university(db)).id
    if await db.get(University, university_id) is None:
        raise NotFoundError("University not found", {"university_id": str(university_id)})
    return university_id


def _course_values(data: CourseCreate) -> dict:
    values = data.model_dump(exclude={"university_id", "confirm_override", "syllabus_url"})
    values["syllabus_url"] = str(data.syllabus_url) if data.syllabus_url else None
    return values


async def _insert_course(db: AsyncSession, course: Course) -> Course:
    db.add(course)
    try:
        await db.flush()
    except IntegrityError:
        raise ConflictError(
            "A course with this code already exists for this year and semester",
            {"course_code": course.course_code, "year": course.year, "semester": course.semester},
        ) from None
    return course


async def create_course(
    db: AsyncSession, data: CourseCreate, created_by: uuid.UUID | None = None
) -> Course:
    """Administrator path: validate and insert without duplicate checks."""
    university_id = await _resolve_university_id(db, data.university_id)
    course = Course(university_id=university_id, created_by=created_by, **_course_values(data))
    await _insert_course(db, course)
    logger.info("Created course %s (%s)", course.id, course.course_code)
    return course


async def find_exact_duplicate(
    db: AsyncSession,
    university_id: uuid.UUID,
    course_code: str,
    year: int | None,
    semester: str | None,
) -> Course | None:
    result = await db.execute(
        select(Course).where(
            Course.university_id == university_id,
            Course.course_code == course_code,
            Course.year == year,
            Course.semester == semester,
        )
    )
    return result.scalars().first()


async def find_similar_courses(
    db: AsyncSession,
    university_id: uuid.UUID,
    name: str,
    instructor: str,
    limit: int = MAX_SIMILAR_COURSES,
) -> list[Course]:
    """Courses at the same university sharing (name, instructor), case-insensitively."""
    result = await db.execute(
        select(Course)
        .where(
            Course.university_id == university_id,
            func.lower(Course.name) == name.strip().lower(),
            func.lower(Course.instructor) == instructor.strip().lower(),
        )
        .order_by(Course.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def user_create_course(
    db: AsyncSession, data: CourseUserCreate, user_id: uuid.UUID
) -> Course:
    """Self-service path with exact-duplicate rejection and near-duplicate confirmation."""
    university_id = await _resolve_university_id(db, data.university_id)
    year = data.year if data.year is not None else utcnow().year
    semester = data.semester or DEFAULT_SEMESTER

    existing = await find_exact_duplicate(db, university_id, data.course_code, year, semester)
    if existing is not None:
        raise ConflictError(
            "This course is already registered",
            {"existing_course": {"id": str(existing.id), "name": existing.name, "instructor": existing.instructor}},
        )

    if not data.confirm_override:
        similar = await find_similar_courses(db, university_id, data.name, data.instructor)
        if similar:
            raise ConflictError(
                "Similar courses already exist. Resubmit with confirm_override to register anyway.",
                {
                    "similar_courses": [
                        {
                            "id": str(c.id),
                            "course_code": c.course_code,
                            "name": c.name,
                            "instructor": c.instructor,
                            "year": c.year,
                            "semester": c.semester,
                        }
                        for c in similar
                    ],
                    "confirm_required": True,
                },
            )

    values = _course_values(data)
    values.update(year=year, semester=semester)
    course = Course(university_id=university_id, created_by=user_id, **values)
    await _insert_course(db, course)
    logger.info("User %s registered course %s (%s)", user_id, course.id, course.course_code)
    return course


async def check_duplicates(
    db: AsyncSession,
    course_code: str | None = None,
    name: str | None = None,
    instructor: str | None = None,
    year: int | None = None,
    semester: str | None = None,
) -> list[Course]:
    """Pre-submit lookup of possibly matching courses (at most ten)."""
    if not course_code and not name:
        raise ValidationError("Either course_code or name is required")

    filters = []
    if course_code:
        filters.append(Course.course_code == course_code)
    if name:
        filters.append(_contains(Course.name, name))
    if instructor:
        filters.append(_contains(Course.instructor, instructor))
    if year is not None:
        filters.append(Course.year == year)
    if semester:
        filters.append(Course.semester == semester)

    result = await db.execute(
        select(Course).where(*filters).order_by(Course.created_at.desc()).limit(MAX_DUPLICATE_MATCHES)
    )
    return list(result.scalars().all())


async def update_course(db: AsyncSession, course_id: uuid.UUID, data: CourseUpdate) -> Course:
    """Merge explicitly set fields and refresh ``updated_at``."""
    course = await get_course(db, course_id)
    update_data = data.model_dump(exclude_unset=True)
    if "syllabus_url" in update_data:
        update_data["syllabus_url"] = str(data.syllabus_url) if data.syllabus_url else None
    for field, value in update_data.items():
        setattr(course, field, value)
    course.updated_at = utcnow()
    try:
        await db.flush()
    except IntegrityError:
        raise ConflictError("A course with this code already exists for this year and semester") from None
    logger.info("Updated course %s: %s", course.id, sorted(update_data))
    return course


async def delete_course(db: AsyncSession, course_id: uuid.UUID) -> None:
    """Delete a course that no review references."""
    course = await get_course(db, course_id)
    count_result = await db.execute(
        select(func.count()).select_from(Review).where(Review.course_id == course_id)
    )
    review_count = count_result.scalar_one()
    if review_count > 0:
        raise ConflictError(
            "Cannot delete a course that has reviews",
            {"review_count": review_count},
        )
    await db.delete(course)
    await db.flush()
    logger.info("Deleted course %s", course_id)


async def recompute_aggregates(db: AsyncSession, course_id: uuid.UUID) -> Course:
    """Recompute review count and averages from the course's visible reviews.

    Averages are None when the course has no reviews. Hidden reviews do not count.
    """
    course = await get_course(db, course_id)
    result = await db.execute(
        select(
            func.count(Review.id),
            func.avg(Review.overall_rating),
            func.avg(Review.difficulty),
            func.avg(Review.workload),
        ).where(Review.course_id == course_id, Review.is_hidden.is_(False))
    )
    count, avg_rating, avg_difficulty, avg_workload = result.one()

    course.total_reviews = count
    course.average_rating = round(float(avg_rating), 2) if count else None
    course.average_difficulty = round(float(avg_difficulty), 2) if count else None
    course.average_workload = round(float(avg_workload), 2) if count else None
    await db.flush()
    return course
