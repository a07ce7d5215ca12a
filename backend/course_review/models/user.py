"""User model — authentication and student profile."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from course_review.database import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow

# Higher number = more privilege
ADMIN_ROLE_LEVELS: dict[str, int] = {
    "moderator": 1,
    "admin": 2,
    "super_admin": 3,
}


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A student (or administrator) account."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(String(512), nullable=True)

    # Academic metadata
    university_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("universities.id", ondelete="SET NULL"), nullable=True
    )
    student_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    admission_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    faculty: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Premium
    is_premium: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", nullable=False)
    premium_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)

    # Administration
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", nullable=False)
    admin_role: Mapped[str | None] = mapped_column(String(50), nullable=True)  # moderator, admin, super_admin
    status: Mapped[str] = mapped_column(
        String(50), default="active", server_default="active", nullable=False, index=True
    )  # active, suspended, deleted
    last_sign_in_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def is_premium_active(self, now: datetime | None = None) -> bool:
        """Premium only while the flag is set and the expiry (if any) is in the future."""
        if not self.is_premium:
            return False
        if self.premium_expires_at is None:
            return True
        return self.premium_expires_at > (now or utcnow())

    def has_admin_role(self, required_role: str = "admin") -> bool:
        """Check the admin flag and the role hierarchy."""
        if not self.is_admin:
            return False
        # Admin flag without an explicit role counts as a full admin
        level = ADMIN_ROLE_LEVELS.get(self.admin_role or "admin", 0)
        return level >= ADMIN_ROLE_LEVELS[required_role]

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} status={self.status!r}>"
