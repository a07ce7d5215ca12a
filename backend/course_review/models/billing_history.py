"""BillingHistory model — one row per Stripe invoice event."""

import uuid

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from course_review.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class BillingHistory(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "billing_history"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stripe_invoice_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    # Smallest currency unit (JPY has no minor unit)
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, default="jpy")
    status: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # draft, open, paid, uncollectible, void
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    invoice_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    def __repr__(self) -> str:
        return f"<BillingHistory(invoice={self.stripe_invoice_id}, amount={self.amount}, status={self.status})>"
