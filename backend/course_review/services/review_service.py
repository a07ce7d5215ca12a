"""Review service — one review per user per course, edit window, helpfulness votes."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from course_review.billing.usage import REVIEWS_PER_MONTH, consume
from course_review.config import settings
from course_review.database import utcnow
from course_review.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from course_review.models.review import Review, ReviewVote
from course_review.models.user import User
from course_review.schemas.review import ReviewCreate, ReviewSearchParams, ReviewUpdate
from course_review.services.course_service import get_course, parse_sort, recompute_aggregates

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {
    "created_at": Review.created_at,
    "updated_at": Review.updated_at,
    "overall_rating": Review.overall_rating,
    "difficulty": Review.difficulty,
    "workload": Review.workload,
    "helpful_count": Review.helpful_count,
}


@dataclass
class VoteStats:
    helpful_count: int
    unhelpful_count: int
    user_vote: bool | None

    @property
    def total_votes(self) -> int:
        return self.helpful_count + self.unhelpful_count


@dataclass
class VoteResult:
    action: str  # created, updated, removed
    stats: VoteStats


def _is_admin(user: User | None) -> bool:
    return user is not None and user.has_admin_role("admin")


async def get_review(db: AsyncSession, review_id: uuid.UUID, viewer: User | None = None) -> Review:
    """Fetch a review; hidden reviews are invisible to everyone but admins."""
    review = await db.get(Review, review_id)
    if review is None or (review.is_hidden and not _is_admin(viewer)):
        raise NotFoundError("Review not found", {"review_id": str(review_id)})
    return review


async def create_review(
    db: AsyncSession, user: User, data: ReviewCreate, now: datetime | None = None
) -> Review:
    """Post a review, snapshotting the author's cohort and department."""
    now = now or utcnow()
    await get_course(db, data.course_id)

    existing = await db.execute(
        select(Review.id).where(Review.course_id == data.course_id, Review.user_id == user.id)
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("You have already reviewed this course", {"course_id": str(data.course_id)})

    await consume(db, user, REVIEWS_PER_MONTH, now)

    review = Review(
        user_id=user.id,
        anonymous_admission_year=user.admission_year,
        anonymous_department=user.department,
        created_at=now,
        updated_at=now,
        **data.model_dump(),
    )
    db.add(review)
    try:
        await db.flush()
    except IntegrityError:
        # Concurrent submission won the unique (course, user) race
        raise ConflictError("You have already reviewed this course", {"course_id": str(data.course_id)}) from None

    await recompute_aggregates(db, data.course_id)
    logger.info("User %s reviewed course %s (review %s)", user.id, data.course_id, review.id)
    return review


def _check_edit_window(review: Review, now: datetime) -> None:
    # Inclusive: an edit at exactly the boundary is still allowed
    window = timedelta(hours=settings.review_edit_window_hours)
    if now - review.created_at > window:
        raise ValidationError(
            f"Reviews can only be edited within {settings.review_edit_window_hours} hours of posting",
            {"created_at": review.created_at.isoformat()},
        )


async def update_review(
    db: AsyncSession,
    user: User,
    review_id: uuid.UUID,
    data: ReviewUpdate,
    now: datetime | None = None,
) -> Review:
    """Edit a review: authors within the edit window, admins at any time."""
    now = now or utcnow()
    review = await db.get(Review, review_id)
    if review is None:
        raise NotFoundError("Review not found", {"review_id": str(review_id)})

    is_admin = _is_admin(user)
    if review.user_id != user.id and not is_admin:
        raise PermissionDeniedError("You can only edit your own reviews")
    if not is_admin:
        _check_edit_window(review, now)

    update_data = data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(review, field, value)
    review.updated_at = now
    await db.flush()

    if update_data.keys() & {"overall_rating", "difficulty", "workload"}:
        await recompute_aggregates(db, review.course_id)
    logger.info("User %s updated review %s: %s", user.id, review.id, sorted(update_data))
    return review


async def delete_review(db: AsyncSession, user: User, review_id: uuid.UUID) -> Review:
    """Delete a review as its author or an admin (no time limit). Returns the removed row."""
    review = await db.get(Review, review_id)
    if review is None:
        raise NotFoundError("Review not found", {"review_id": str(review_id)})
    if review.user_id != user.id and not _is_admin(user):
        raise PermissionDeniedError("You can only delete your own reviews")

    course_id = review.course_id
    await db.execute(ReviewVote.__table__.delete().where(ReviewVote.review_id == review.id))
    await db.delete(review)
    await db.flush()
    await recompute_aggregates(db, course_id)
    logger.info("User %s deleted review %s", user.id, review_id)
    return review


async def search_reviews(
    db: AsyncSession, params: ReviewSearchParams, viewer: User | None = None
) -> tuple[list[Review], int]:
    """Return one page of visible reviews matching every supplied filter, plus the total."""
    order_by = parse_sort(params.sort, SORTABLE_FIELDS, Review.id)

    filters = []
    if not _is_admin(viewer):
        filters.append(Review.is_hidden.is_(False))
    if params.course_id is not None:
        filters.append(Review.course_id == params.course_id)
    if params.user_id is not None:
        filters.append(Review.user_id == params.user_id)
    if params.min_rating is not None:
        filters.append(Review.overall_rating >= params.min_rating)
    if params.max_rating is not None:
        filters.append(Review.overall_rating <= params.max_rating)
    if params.min_difficulty is not None:
        filters.append(Review.difficulty >= params.min_difficulty)
    if params.max_difficulty is not None:
        filters.append(Review.difficulty <= params.max_difficulty)
    if params.assignment_frequency is not None:
        filters.append(Review.assignment_frequency == params.assignment_frequency)
    if params.grading_criteria is not None:
        filters.append(Review.grading_criteria == params.grading_criteria)
    if params.attendance_required is not None:
        filters.append(Review.attendance_required.is_(params.attendance_required))

    total_result = await db.execute(select(func.count()).select_from(Review).where(*filters))
    total = total_result.scalar_one()

    result = await db.execute(
        select(Review)
        .where(*filters)
        .order_by(*order_by)
        .offset((params.page - 1) * params.limit)
        .limit(params.limit)
    )
    return list(result.scalars().all()), total


# ---------------------------------------------------------------------------
# Helpfulness votes
# ---------------------------------------------------------------------------


async def _get_vote(db: AsyncSession, review_id: uuid.UUID, user_id: uuid.UUID) -> ReviewVote | None:
    result = await db.execute(
        select(ReviewVote).where(ReviewVote.review_id == review_id, ReviewVote.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def _refresh_vote_counts(db: AsyncSession, review: Review) -> None:
    result = await db.execute(
        select(ReviewVote.is_helpful, func.count())
        .where(ReviewVote.review_id == review.id)
        .group_by(ReviewVote.is_helpful)
    )
    counts = {bool(is_helpful): count for is_helpful, count in result.all()}
    review.helpful_count = counts.get(True, 0)
    review.unhelpful_count = counts.get(False, 0)
    await db.flush()


async def get_vote_stats(db: AsyncSession, review_id: uuid.UUID, viewer: User | None = None) -> VoteStats:
    review = await get_review(db, review_id, viewer)
    user_vote = None
    if viewer is not None:
        vote = await _get_vote(db, review.id, viewer.id)
        user_vote = vote.is_helpful if vote else None
    return VoteStats(review.helpful_count, review.unhelpful_count, user_vote)


async def vote_review(db: AsyncSession, user: User, review_id: uuid.UUID, is_helpful: bool) -> VoteResult:
    """Cast, switch, or withdraw a helpfulness vote.

    Same value as the existing vote removes it; the opposite value switches it.
    """
    review = await get_review(db, review_id, user)
    if review.user_id == user.id:
        raise ValidationError("You cannot vote on your own review")

    vote = await _get_vote(db, review.id, user.id)
    if vote is None:
        db.add(ReviewVote(review_id=review.id, user_id=user.id, is_helpful=is_helpful))
        action = "created"
        user_vote: bool | None = is_helpful
    elif vote.is_helpful == is_helpful:
        await db.delete(vote)
        action = "removed"
        user_vote = None
    else:
        vote.is_helpful = is_helpful
        action = "updated"
        user_vote = is_helpful

    try:
        await db.flush()
    except IntegrityError:
        raise ConflictError("Vote already recorded, please retry") from None

    await _refresh_vote_counts(db, review)
    logger.info("User %s vote on review %s: %s (helpful=%s)", user.id, review.id, action, is_helpful)
    return VoteResult(action, VoteStats(review.helpful_count, review.unhelpful_count, user_vote))


async def set_review_hidden(db: AsyncSession, review_id: uuid.UUID, hidden: bool) -> Review:
    """Moderation: hide or restore a review and refresh the course aggregates."""
    review = await db.get(Review, review_id)
    if review is None:
        raise NotFoundError("Review not found", {"review_id": str(review_id)})
    review.is_hidden = hidden
    await db.flush()
    await recompute_aggregates(db, review.course_id)
    return review


async def flag_review(db: AsyncSession, review_id: uuid.UUID) -> Review:
    """Moderation: record one more flag against a review without hiding it."""
    review = await db.get(Review, review_id)
    if review is None:
        raise NotFoundError("Review not found", {"review_id": str(review_id)})
    review.flag_count += 1
    await db.flush()
    logger.info("Review %s flagged (%d flags)", review.id, review.flag_count)
    return review
