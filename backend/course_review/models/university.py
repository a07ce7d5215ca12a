"""University model — the institution a course catalog belongs to."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from course_review.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class University(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "universities"

    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    short_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<University(id={self.id}, name={self.name!r})>"
