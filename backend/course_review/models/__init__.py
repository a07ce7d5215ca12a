"""SQLAlchemy models for the course review service.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from course_review.models.admin_log import AdminActionLog
from course_review.models.billing_history import BillingHistory
from course_review.models.course import Course
from course_review.models.review import Review, ReviewVote
from course_review.models.subscription import Subscription
from course_review.models.university import University
from course_review.models.usage import UsageCounter
from course_review.models.user import User

__all__ = [
    "AdminActionLog",
    "BillingHistory",
    "Course",
    "Review",
    "ReviewVote",
    "Subscription",
    "University",
    "UsageCounter",
    "User",
]
