"""Course model — a catalogued class offering with review aggregates."""

import uuid

from sqlalchemy import Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from course_review.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Course(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A course offering, unique per university / code / year / semester."""

    __tablename__ = "courses"

    university_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("universities.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    course_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    instructor: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    faculty: Mapped[str | None] = mapped_column(String(100), nullable=True)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)  # required, elective, free
    semester: Mapped[str | None] = mapped_column(String(50), nullable=True)  # spring, fall, full_year, intensive
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    credits: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    syllabus_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # Aggregates derived from reviews (None while there are no reviews)
    total_reviews: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    average_rating: Mapped[float | None] = mapped_column(Float, nullable=True, index=True)
    average_difficulty: Mapped[float | None] = mapped_column(Float, nullable=True)
    average_workload: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint("university_id", "course_code", "year", "semester", name="uq_courses_offering"),
    )

    def __repr__(self) -> str:
        return f"<Course(id={self.id}, code={self.course_code!r}, name={self.name!r})>"
