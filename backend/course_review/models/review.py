"""Review and ReviewVote models."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from course_review.database import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow


class Review(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One student's structured evaluation of one course."""

    __tablename__ = "reviews"

    course_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("courses.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Mandatory ratings (1-5)
    overall_rating: Mapped[int] = mapped_column(Integer, nullable=False)
    difficulty: Mapped[int] = mapped_column(Integer, nullable=False)
    workload: Mapped[int] = mapped_column(Integer, nullable=False)

    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Optional structured fields
    pros: Mapped[str | None] = mapped_column(Text, nullable=True)
    cons: Mapped[str | None] = mapped_column(Text, nullable=True)
    advice: Mapped[str | None] = mapped_column(Text, nullable=True)
    attendance_required: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    test_difficulty: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assignment_frequency: Mapped[str | None] = mapped_column(String(20), nullable=True)
    grading_criteria: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Author snapshot at authoring time
    anonymous_admission_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    anonymous_department: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Vote counts (recomputed from review_votes)
    helpful_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    unhelpful_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)

    # Moderation
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", nullable=False)
    flag_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)

    __table_args__ = (UniqueConstraint("course_id", "user_id", name="uq_reviews_course_user"),)

    @property
    def author_display(self) -> str:
        """Anonymized attribution built from the authoring-time snapshot."""
        parts = []
        if self.anonymous_admission_year:
            parts.append(f"Class of {self.anonymous_admission_year}")
        if self.anonymous_department:
            parts.append(self.anonymous_department)
        return " · ".join(parts) if parts else "Anonymous student"

    def __repr__(self) -> str:
        return f"<Review(id={self.id}, course_id={self.course_id}, rating={self.overall_rating})>"


class ReviewVote(UUIDPrimaryKeyMixin, Base):
    """A helpful / unhelpful vote cast by a user on someone else's review."""

    __tablename__ = "review_votes"

    review_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("reviews.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_helpful: Mapped[bool] = mapped_column(Boolean, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now())

    __table_args__ = (UniqueConstraint("review_id", "user_id", name="uq_review_votes_review_user"),)

    def __repr__(self) -> str:
        return f"<ReviewVote(review_id={self.review_id}, user_id={self.user_id}, helpful={self.is_helpful})>"
