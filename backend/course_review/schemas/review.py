"""Pydantic v2 request/response schemas for review and vote endpoints."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from course_review.config import settings
from course_review.schemas.common import PageMeta

AssignmentFrequency = Literal["none", "light", "moderate", "heavy", "very_heavy"]
GradingCriteria = Literal["lenient", "fair", "strict"]

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


def _check_content_length(value: str | None) -> str | None:
    if value is not None and len(value.strip()) < settings.review_min_length:
        raise ValueError(f"content must be at least {settings.review_min_length} characters")
    return value


class ReviewCreate(BaseModel):
    """Schema for posting a review."""

    course_id: uuid.UUID
    overall_rating: int = Field(..., ge=1, le=5)
    difficulty: int = Field(..., ge=1, le=5)
    workload: int = Field(..., ge=1, le=5)
    title: str | None = Field(None, max_length=200)
    content: str = Field(..., max_length=2000)
    pros: str | None = Field(None, max_length=1000)
    cons: str | None = Field(None, max_length=1000)
    advice: str | None = Field(None, max_length=1000)
    attendance_required: bool | None = None
    test_difficulty: int | None = Field(None, ge=1, le=5)
    assignment_frequency: AssignmentFrequency | None = None
    grading_criteria: GradingCriteria | None = None

    @field_validator("content")
    @classmethod
    def validate_content_length(cls, value):
        return _check_content_length(value)


class ReviewUpdate(BaseModel):
    """Schema for partially updating a review. All fields optional."""

    overall_rating: int | None = Field(None, ge=1, le=5)
    difficulty: int | None = Field(None, ge=1, le=5)
    workload: int | None = Field(None, ge=1, le=5)
    title: str | None = Field(None, max_length=200)
    content: str | None = Field(None, max_length=2000)
    pros: str | None = Field(None, max_length=1000)
    cons: str | None = Field(None, max_length=1000)
    advice: str | None = Field(None, max_length=1000)
    attendance_required: bool | None = None
    test_difficulty: int | None = Field(None, ge=1, le=5)
    assignment_frequency: AssignmentFrequency | None = None
    grading_criteria: GradingCriteria | None = None

    @field_validator("overall_rating", "difficulty", "workload", "content")
    @classmethod
    def reject_explicit_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value

    @field_validator("content")
    @classmethod
    def validate_content_length(cls, value):
        return _check_content_length(value)


class ReviewSearchParams(BaseModel):
    """Conjunctive review filters plus sort and pagination."""

    course_id: uuid.UUID | None = None
    user_id: uuid.UUID | None = None
    min_rating: int | None = Field(None, ge=1, le=5)
    max_rating: int | None = Field(None, ge=1, le=5)
    min_difficulty: int | None = Field(None, ge=1, le=5)
    max_difficulty: int | None = Field(None, ge=1, le=5)
    assignment_frequency: AssignmentFrequency | None = None
    grading_criteria: GradingCriteria | None = None
    attendance_required: bool | None = None
    sort: str = "-created_at"
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)


class VoteRequest(BaseModel):
    is_helpful: bool


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ReviewResponse(BaseModel):
    """A review as shown publicly; the author is identified only by the snapshot."""

    id: uuid.UUID
    course_id: uuid.UUID
    overall_rating: int
    difficulty: int
    workload: int
    title: str | None = None
    content: str
    pros: str | None = None
    cons: str | None = None
    advice: str | None = None
    attendance_required: bool | None = None
    test_difficulty: int | None = None
    assignment_frequency: str | None = None
    grading_criteria: str | None = None
    author_display: str
    helpful_count: int
    unhelpful_count: int
    is_hidden: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReviewListResponse(PageMeta):
    """Paginated list of reviews."""

    items: list[ReviewResponse]


class VoteStatsResponse(BaseModel):
    helpful_count: int
    unhelpful_count: int
    total_votes: int
    user_vote: bool | None = None  # None = caller has not voted


class VoteResponse(VoteStatsResponse):
    action: Literal["created", "updated", "removed"]
