"""UsageCounter model — free-tier consumption per feature and reset period."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from course_review.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class UsageCounter(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Counts uses of one feature until ``reset_date``; a new period gets a new row."""

    __tablename__ = "usage_counters"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    feature: Mapped[str] = mapped_column(String(50), nullable=False)  # reviews_per_month, searches_per_day
    reset_date: Mapped[datetime] = mapped_column(nullable=False)
    used_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "feature", "reset_date", name="uq_usage_counters_period"),)

    def __repr__(self) -> str:
        return f"<UsageCounter(user_id={self.user_id}, feature={self.feature}, used={self.used_count})>"
