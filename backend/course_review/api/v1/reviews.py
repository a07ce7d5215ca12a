"""Review API routes — CRUD, search, and helpfulness votes."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from course_review.api.deps import get_current_user, get_db, get_optional_user
from course_review.models.user import User
from course_review.schemas.common import MessageResponse, PageMeta
from course_review.schemas.review import (
    ReviewCreate,
    ReviewListResponse,
    ReviewResponse,
    ReviewSearchParams,
    ReviewUpdate,
    VoteRequest,
    VoteResponse,
    VoteStatsResponse,
)
from course_review.services import review_service
from course_review.services.admin_service import log_action

router = APIRouter(prefix="/api/v1/reviews", tags=["reviews"])


@router.get("", response_model=ReviewListResponse, summary="Search reviews")
async def search_reviews(
    params: Annotated[ReviewSearchParams, Query()],
    db: AsyncSession = Depends(get_db),
    viewer: User | None = Depends(get_optional_user),
) -> ReviewListResponse:
    reviews, total = await review_service.search_reviews(db, params, viewer)
    return ReviewListResponse(
        items=[ReviewResponse.model_validate(r) for r in reviews],
        **PageMeta.build(total, params.page, params.limit).model_dump(),
    )


@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED, summary="Post a review")
async def create_review(
    body: ReviewCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ReviewResponse:
    """One review per course per user; free-tier users spend a monthly review credit."""
    review = await review_service.create_review(db, current_user, body)
    return ReviewResponse.model_validate(review)


@router.get("/{review_id}", response_model=ReviewResponse, summary="Get a review")
async def get_review(
    review_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    viewer: User | None = Depends(get_optional_user),
) -> ReviewResponse:
    review = await review_service.get_review(db, review_id, viewer)
    return ReviewResponse.model_validate(review)


@router.patch("/{review_id}", response_model=ReviewResponse, summary="Edit a review")
async def update_review(
    review_id: uuid.UUID,
    body: ReviewUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ReviewResponse:
    """Authors may edit within the edit window after posting; admins at any time."""
    review = await review_service.update_review(db, current_user, review_id, body)
    if review.user_id != current_user.id:
        fields = sorted(body.model_dump(exclude_unset=True))
        await log_action(db, current_user, "review.update", "review", str(review.id), {"fields": fields})
    return ReviewResponse.model_validate(review)


@router.delete("/{review_id}", response_model=MessageResponse, summary="Delete a review")
async def delete_review(
    review_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    review = await review_service.delete_review(db, current_user, review_id)
    if review.user_id != current_user.id:
        await log_action(
            db, current_user, "review.delete", "review", str(review_id), {"course_id": str(review.course_id)}
        )
    return MessageResponse(message="Review deleted")


@router.post("/{review_id}/helpful", response_model=VoteResponse, summary="Vote on a review")
async def vote_review(
    review_id: uuid.UUID,
    body: VoteRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> VoteResponse:
    """Repeating the same vote withdraws it; the opposite vote switches it."""
    result = await review_service.vote_review(db, current_user, review_id, body.is_helpful)
    return VoteResponse(
        action=result.action,
        helpful_count=result.stats.helpful_count,
        unhelpful_count=result.stats.unhelpful_count,
        total_votes=result.stats.total_votes,
        user_vote=result.stats.user_vote,
    )


@router.get("/{review_id}/helpful", response_model=VoteStatsResponse, summary="Vote counts for a review")
async def vote_stats(
    review_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    viewer: User | None = Depends(get_optional_user),
) -> VoteStatsResponse:
    stats = await review_service.get_vote_stats(db, review_id, viewer)
    return VoteStatsResponse(
        helpful_count=stats.helpful_count,
        unhelpful_count=stats.unhelpful_count,
        total_votes=stats.total_votes,
        user_vote=stats.user_vote,
    )
