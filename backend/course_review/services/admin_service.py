"""Admin management service — users, payments, review moderation, and the audit log.

Actions are closed enums dispatched through tables; every mutation appends an
``AdminActionLog`` row in the same transaction as the change it records.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import stripe
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from course_review.billing import stripe_client
from course_review.billing.plans import get_plan_by_price_id
from course_review.database import utcnow
from course_review.exceptions import ExternalServiceError, NotFoundError, ValidationError
from course_review.models.admin_log import AdminActionLog
from course_review.models.billing_history import BillingHistory
from course_review.models.review import Review
from course_review.models.subscription import ACTIVE_STATUSES, Subscription
from course_review.models.user import User
from course_review.schemas.admin import (
    AdminPaymentRow,
    AdminUserRow,
    PaymentAction,
    ReviewAction,
    UserAction,
)
from course_review.services.review_service import flag_review, set_review_hidden
from course_review.services.subscription_service import (
    get_subscription_by_stripe_id,
    upsert_subscription_from_stripe,
)

logger = logging.getLogger(__name__)

PAID = "paid"


async def log_action(
    db: AsyncSession,
    admin: User,
    action: str,
    target_type: str,
    target_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> AdminActionLog:
    """Append an audit entry for an administrative mutation."""
    entry = AdminActionLog(
        admin_id=admin.id,
        admin_email=admin.email,
        action=action,
        target_type=target_type,
        target_id=target_id,
        details=details,
    )
    db.add(entry)
    await db.flush()
    logger.info("Admin %s performed %s on %s %s", admin.email, action, target_type, target_id)
    return entry


async def list_logs(db: AsyncSession, page: int = 1, limit: int = 50) -> tuple[list[AdminActionLog], int]:
    total = (await db.execute(select(func.count()).select_from(AdminActionLog))).scalar_one()
    result = await db.execute(
        select(AdminActionLog)
        .order_by(AdminActionLog.created_at.desc(), AdminActionLog.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def list_users(
    db: AsyncSession,
    search: str | None = None,
    status: str | None = None,
    is_premium: bool | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[AdminUserRow], int]:
    """One page of users with review count, total spent, and latest subscription status."""
    filters = []
    if search:
        filters.append(User.email.ilike(f"%{search}%"))
    if status is not None:
        filters.append(User.status == status)
    if is_premium is not None:
        filters.append(User.is_premium.is_(is_premium))
    if created_from is not None:
        filters.append(User.created_at >= created_from)
    if created_to is not None:
        filters.append(User.created_at <= created_to)

    total = (await db.execute(select(func.count()).select_from(User).where(*filters))).scalar_one()
    result = await db.execute(
        select(User)
        .where(*filters)
        .order_by(User.created_at.desc(), User.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    users = list(result.scalars().all())
    user_ids = [u.id for u in users]
    if not user_ids:
        return [], total

    review_counts = dict(
        (
            await db.execute(
                select(Review.user_id, func.count()).where(Review.user_id.in_(user_ids)).group_by(Review.user_id)
            )
        ).all()
    )
    spent = dict(
        (
            await db.execute(
                select(BillingHistory.user_id, func.sum(BillingHistory.amount))
                .where(BillingHistory.user_id.in_(user_ids), BillingHistory.status == PAID)
                .group_by(BillingHistory.user_id)
            )
        ).all()
    )
    # Newest subscription per user wins
    sub_rows = await db.execute(
        select(Subscription.user_id, Subscription.status)
        .where(Subscription.user_id.in_(user_ids))
        .order_by(Subscription.created_at)
    )
    sub_status = {user_id: status for user_id, status in sub_rows.all()}

    rows = [
        AdminUserRow(
            id=u.id,
            email=u.email,
            display_name=u.display_name,
            status=u.status,
            is_premium=u.is_premium,
            is_admin=u.is_admin,
            created_at=u.created_at,
            last_sign_in_at=u.last_sign_in_at,
            subscription_status=sub_status.get(u.id),
            review_count=review_counts.get(u.id, 0),
            total_spent=int(spent.get(u.id) or 0),
        )
        for u in users
    ]
    return rows, total


async def _active_subscriptions(db: AsyncSession, user_id: uuid.UUID) -> list[Subscription]:
    result = await db.execute(
        select(Subscription).where(Subscription.user_id == user_id, Subscription.status.in_(ACTIVE_STATUSES))
    )
    return list(result.scalars().all())


def _revoke_premium(user: User) -> None:
    user.is_premium = False
    user.premium_expires_at = None


async def _suspend(db: AsyncSession, admin: User, user: User) -> dict:
    user.status = "suspended"
    return {"status": user.status}


async def _activate(db: AsyncSession, admin: User, user: User) -> dict:
    user.status = "active"
    return {"status": user.status}


async def _delete(db: AsyncSession, admin: User, user: User) -> dict:
    """Soft-delete the account and stop any billing it still has."""
    canceled, failed = [], []
    for subscription in await _active_subscriptions(db, user.id):
        try:
            stripe_sub = await stripe_client.cancel_subscription(subscription.stripe_subscription_id)
        except stripe.StripeError:
            logger.exception(
                "Could not cancel subscription %s for deleted user %s", subscription.stripe_subscription_id, user.id
            )
            failed.append(subscription.stripe_subscription_id)
            continue
        await upsert_subscription_from_stripe(db, stripe_sub, user=user)
        canceled.append(subscription.stripe_subscription_id)

    user.status = "deleted"
    _revoke_premium(user)
    return {"status": user.status, "canceled_subscriptions": canceled, "failed_cancellations": failed}


async def _upgrade_to_premium(db: AsyncSession, admin: User, user: User) -> dict:
    # Complimentary premium with no expiry
    user.is_premium = True
    user.premium_expires_at = None
    return {"is_premium": True}


async def _downgrade_to_free(db: AsyncSession, admin: User, user: User) -> dict:
    canceled = []
    for subscription in await _active_subscriptions(db, user.id):
        try:
            stripe_sub = await stripe_client.cancel_subscription(subscription.stripe_subscription_id)
        except stripe.StripeError as e:
            logger.error("Stripe cancel failed for subscription %s: %s", subscription.stripe_subscription_id, e)
            raise ExternalServiceError("Payment processor error", {"stripe_error": str(e)}) from e
        await upsert_subscription_from_stripe(db, stripe_sub, user=user)
        canceled.append(subscription.stripe_subscription_id)

    _revoke_premium(user)
    return {"is_premium": False, "canceled_subscriptions": canceled}


UserActionHandler = Callable[[AsyncSession, User, User], Awaitable[dict]]

USER_ACTIONS: dict[UserAction, UserActionHandler] = {
    UserAction.SUSPEND: _suspend,
    UserAction.ACTIVATE: _activate,
    UserAction.DELETE: _delete,
    UserAction.UPGRADE_TO_PREMIUM: _upgrade_to_premium,
    UserAction.DOWNGRADE_TO_FREE: _downgrade_to_free,
}


async def perform_user_action(db: AsyncSession, admin: User, user_id: uuid.UUID, action: UserAction) -> dict:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", {"user_id": str(user_id)})
    if user.id == admin.id and action in (UserAction.SUSPEND, UserAction.DELETE):
        raise ValidationError("Administrators cannot suspend or delete their own account")

    handler = USER_ACTIONS.get(action)
    if handler is None:
        raise ValidationError(f"Unknown user action: {action}")

    result = await handler(db, admin, user)
    user.updated_at = utcnow()
    await db.flush()
    await log_action(db, admin, f"user.{action.value}", "user", str(user.id), {"email": user.email, **result})
    return result


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


async def list_payments(
    db: AsyncSession,
    status: str | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[AdminPaymentRow], int, int]:
    """One page of subscriptions with plan details, the total, and revenue in the same window."""
    filters = []
    revenue_filters = [BillingHistory.status == PAID]
    if status is not None:
        filters.append(Subscription.status == status)
    if created_from is not None:
        filters.append(Subscription.created_at >= created_from)
        revenue_filters.append(BillingHistory.created_at >= created_from)
    if created_to is not None:
        filters.append(Subscription.created_at <= created_to)
        revenue_filters.append(BillingHistory.created_at <= created_to)

    total = (await db.execute(select(func.count()).select_from(Subscription).where(*filters))).scalar_one()
    result = await db.execute(
        select(Subscription, User.email)
        .join(User, User.id == Subscription.user_id, isouter=True)
        .where(*filters)
        .order_by(Subscription.created_at.desc(), Subscription.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )

    rows = []
    for subscription, email in result.all():
        plan = get_plan_by_price_id(subscription.price_id)
        rows.append(
            AdminPaymentRow(
                id=subscription.id,
                user_id=subscription.user_id,
                user_email=email,
                stripe_subscription_id=subscription.stripe_subscription_id,
                status=subscription.status,
                plan_name=plan.display_name if plan else "Unknown",
                amount=plan.amount if plan else 0,
                currency=plan.currency if plan else "jpy",
                current_period_start=subscription.current_period_start,
                current_period_end=subscription.current_period_end,
                cancel_at_period_end=subscription.cancel_at_period_end,
                created_at=subscription.created_at,
            )
        )

    revenue = await db.execute(select(func.coalesce(func.sum(BillingHistory.amount), 0)).where(*revenue_filters))
    return rows, total, int(revenue.scalar_one())


async def _cancel_subscription(db: AsyncSession, subscription: Subscription) -> dict:
    stripe_sub = await stripe_client.cancel_subscription(subscription.stripe_subscription_id)
    await upsert_subscription_from_stripe(db, stripe_sub)
    return {"status": stripe_sub.status}


async def _open_invoice(subscription: Subscription):
    invoice = await stripe_client.get_latest_invoice(subscription.stripe_subscription_id, status="open")
    if invoice is None:
        raise ValidationError("Subscription has no open invoice")
    return invoice


async def _retry_invoice(db: AsyncSession, subscription: Subscription) -> dict:
    invoice = await stripe_client.pay_invoice((await _open_invoice(subscription)).id)
    return {"invoice_id": invoice.id, "status": invoice.status}


async def _send_invoice(db: AsyncSession, subscription: Subscription) -> dict:
    invoice = await stripe_client.send_invoice((await _open_invoice(subscription)).id)
    return {"invoice_id": invoice.id, "status": invoice.status}


async def _refund_last_payment(db: AsyncSession, subscription: Subscription) -> dict:
    refund = await stripe_client.refund_last_charge(subscription.stripe_customer_id)
    if refund is None:
        raise ValidationError("Customer has no charge to refund")
    return {"refund_id": refund.id, "amount": refund.amount, "status": refund.status}


PaymentActionHandler = Callable[[AsyncSession, Subscription], Awaitable[dict]]

PAYMENT_ACTIONS: dict[PaymentAction, PaymentActionHandler] = {
    PaymentAction.CANCEL_SUBSCRIPTION: _cancel_subscription,
    PaymentAction.RETRY_INVOICE: _retry_invoice,
    PaymentAction.SEND_INVOICE: _send_invoice,
    PaymentAction.REFUND_LAST_PAYMENT: _refund_last_payment,
}


async def _get_subscription(db: AsyncSession, subscription_id: str) -> Subscription:
    """Accept either the local UUID or the Stripe subscription ID."""
    try:
        local_id = uuid.UUID(subscription_id)
    except ValueError:
        subscription = await get_subscription_by_stripe_id(db, subscription_id)
    else:
        subscription = await db.get(Subscription, local_id)
    if subscription is None:
        raise NotFoundError("Subscription not found", {"subscription_id": subscription_id})
    return subscription


async def perform_payment_action(
    db: AsyncSession, admin: User, subscription_id: str, action: PaymentAction
) -> dict:
    subscription = await _get_subscription(db, subscription_id)
    handler = PAYMENT_ACTIONS.get(action)
    if handler is None:
        raise ValidationError(f"Unknown payment action: {action}")

    try:
        result = await handler(db, subscription)
    except stripe.StripeError as e:
        logger.error("Stripe %s failed for subscription %s: %s", action.value, subscription.stripe_subscription_id, e)
        raise ExternalServiceError("Payment processor error", {"stripe_error": str(e)}) from e

    await log_action(
        db,
        admin,
        f"payment.{action.value}",
        "subscription",
        subscription.stripe_subscription_id,
        result,
    )
    return result


# ---------------------------------------------------------------------------
# Content moderation
# ---------------------------------------------------------------------------


async def moderate_review(
    db: AsyncSession, admin: User, review_id: uuid.UUID, action: ReviewAction, reason: str | None = None
) -> dict:
    if action is ReviewAction.FLAG:
        review: Review = await flag_review(db, review_id)
    else:
        review = await set_review_hidden(db, review_id, hidden=action is ReviewAction.HIDE)
    result = {"is_hidden": review.is_hidden, "flag_count": review.flag_count, "course_id": str(review.course_id)}
    await log_action(db, admin, f"review.{action.value}", "review", str(review.id), {**result, "reason": reason})
    return result
