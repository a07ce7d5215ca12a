"""Pydantic v2 request/response schemas for course endpoints."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator

from course_review.schemas.common import PageMeta

Semester = Literal["spring", "fall", "full_year", "intensive"]
Category = Literal["required", "elective", "free"]

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class _SyllabusUrlMixin(BaseModel):
    syllabus_url: HttpUrl | None = None

    @field_validator("syllabus_url", mode="before")
    @classmethod
    def _empty_url_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class CourseCreate(_SyllabusUrlMixin):
    """Schema for creating a course. ``university_id`` defaults to the primary university."""

    university_id: uuid.UUID | None = None
    course_code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    instructor: str = Field(..., min_length=1, max_length=255)
    department: str | None = Field(None, max_length=100)
    faculty: str | None = Field(None, max_length=100)
    category: Category | None = None
    semester: Semester | None = None
    year: int | None = Field(None, ge=2020, le=2030)
    credits: int = Field(2, ge=1, le=10)
    description: str | None = Field(None, max_length=1000)


class CourseUserCreate(CourseCreate):
    """Self-service course registration; resubmit with ``confirm_override`` to skip the similarity warning."""

    confirm_override: bool = False


class CourseUpdate(_SyllabusUrlMixin):
    """Schema for partially updating a course. All fields optional."""

    course_code: str | None = Field(None, min_length=1, max_length=50)
    name: str | None = Field(None, min_length=1, max_length=255)
    instructor: str | None = Field(None, min_length=1, max_length=255)
    department: str | None = Field(None, max_length=100)
    faculty: str | None = Field(None, max_length=100)
    category: Category | None = None
    semester: Semester | None = None
    year: int | None = Field(None, ge=2020, le=2030)
    credits: int | None = Field(None, ge=1, le=10)
    description: str | None = Field(None, max_length=1000)

    @field_validator("course_code", "name", "instructor", "credits")
    @classmethod
    def reject_explicit_null(cls, value, info):
        # Omit a field to leave it unchanged; these columns cannot be cleared
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class CourseSearchParams(BaseModel):
    """Conjunctive course filters plus sort and pagination."""

    search: str | None = None
    department: str | None = None
    faculty: str | None = None
    category: Category | None = None
    semester: Semester | None = None
    year: int | None = None
    credits: int | None = None
    instructor: str | None = None
    min_rating: float | None = Field(None, ge=1, le=5)
    max_difficulty: float | None = Field(None, ge=1, le=5)
    sort: str = "name"
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class CourseResponse(BaseModel):
    """Course with its review aggregates."""

    id: uuid.UUID
    university_id: uuid.UUID
    course_code: str
    name: str
    instructor: str
    department: str | None = None
    faculty: str | None = None
    category: str | None = None
    semester: str | None = None
    year: int | None = None
    credits: int
    description: str | None = None
    syllabus_url: str | None = None
    total_reviews: int
    average_rating: float | None = None
    average_difficulty: float | None = None
    average_workload: float | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CourseListResponse(PageMeta):
    """Paginated list of courses."""

    items: list[CourseResponse]


class CourseSummary(BaseModel):
    """Compact course reference used in duplicate warnings."""

    id: uuid.UUID
    course_code: str
    name: str
    instructor: str
    year: int | None = None
    semester: str | None = None

    model_config = ConfigDict(from_attributes=True)


class DuplicateCheckResponse(BaseModel):
    found: bool
    courses: list[CourseSummary]
    count: int
