"""Course catalog API routes — public search, self-service registration, admin CRUD."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from course_review.api.deps import check_search_quota, get_current_user, get_db, require_full_admin
from course_review.models.user import User
from course_review.schemas.common import MessageResponse, PageMeta
from course_review.schemas.course import (
    CourseCreate,
    CourseListResponse,
    CourseResponse,
    CourseSearchParams,
    CourseSummary,
    CourseUpdate,
    CourseUserCreate,
    DuplicateCheckResponse,
    Semester,
)
from course_review.services import course_service
from course_review.services.admin_service import log_action

router = APIRouter(prefix="/api/v1/courses", tags=["courses"])


@router.get("", response_model=CourseListResponse, summary="Search courses")
async def search_courses(
    params: Annotated[CourseSearchParams, Query()],
    db: AsyncSession = Depends(get_db),
    _caller: User | None = Depends(check_search_quota),  # Free-tier quota
) -> CourseListResponse:
    """Filter, sort, and paginate the catalog. Anonymous access is allowed."""
    courses, total = await course_service.search_courses(db, params)
    return CourseListResponse(
        items=[CourseResponse.model_validate(c) for c in courses],
        **PageMeta.build(total, params.page, params.limit).model_dump(),
    )


# Declared before /{course_id} so the literal path wins


@router.get("/user-create", response_model=DuplicateCheckResponse, summary="Check for duplicate courses")
async def check_duplicates(
    course_code: str | None = Query(None, max_length=50),
    name: str | None = Query(None, max_length=255),
    instructor: str | None = Query(None, max_length=255),
    year: int | None = Query(None, ge=2020, le=2030),
    semester: Semester | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_user),
) -> DuplicateCheckResponse:
    """Look up possibly matching courses before registering a new one."""
    courses = await course_service.check_duplicates(
        db, course_code=course_code, name=name, instructor=instructor, year=year, semester=semester
    )
    return DuplicateCheckResponse(
        found=bool(courses),
        courses=[CourseSummary.model_validate(c) for c in courses],
        count=len(courses),
    )


@router.post(
    "/user-create",
    response_model=CourseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a course (students)",
)
async def user_create_course(
    body: CourseUserCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CourseResponse:
    """Self-service registration with duplicate protection.

    Exact duplicates are rejected; near-duplicates require ``confirm_override``.
    """
    course = await course_service.user_create_course(db, body, current_user.id)
    return CourseResponse.model_validate(course)


@router.get("/{course_id}", response_model=CourseResponse, summary="Get a course")
async def get_course(course_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> CourseResponse:
    course = await course_service.get_course(db, course_id)
    return CourseResponse.model_validate(course)


@router.post("", response_model=CourseResponse, status_code=status.HTTP_201_CREATED, summary="Create a course")
async def create_course(
    body: CourseCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_full_admin),
) -> CourseResponse:
    """Administrator path: no duplicate confirmation."""
    course = await course_service.create_course(db, body, created_by=admin.id)
    await log_action(db, admin, "course.create", "course", str(course.id), {"course_code": course.course_code})
    return CourseResponse.model_validate(course)


@router.patch("/{course_id}", response_model=CourseResponse, summary="Update a course")
async def update_course(
    course_id: uuid.UUID,
    body: CourseUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_full_admin),
) -> CourseResponse:
    course = await course_service.update_course(db, course_id, body)
    await log_action(
        db, admin, "course.update", "course", str(course.id), {"fields": sorted(body.model_dump(exclude_unset=True))}
    )
    return CourseResponse.model_validate(course)


@router.delete("/{course_id}", response_model=MessageResponse, summary="Delete a course")
async def delete_course(
    course_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_full_admin),
) -> MessageResponse:
    """Delete a course that has no reviews (409 otherwise)."""
    await course_service.delete_course(db, course_id)
    await log_action(db, admin, "course.delete", "course", str(course_id))
    return MessageResponse(message="Course deleted")
