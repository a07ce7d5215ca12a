"""Subscription service — Stripe-mirrored subscriptions, premium flag, and billing history."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

import stripe
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from course_review.billing import stripe_client
from course_review.exceptions import (
    ConflictError,
    CourseReviewError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from course_review.models.billing_history import BillingHistory
from course_review.models.subscription import ACTIVE_STATUSES, ENDED_STATUSES, Subscription
from course_review.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class CreatedSubscription:
    subscription_id: str
    status: str
    client_secret: str | None
    requires_action: bool


# ---------------------------------------------------------------------------
# Stripe object helpers
# ---------------------------------------------------------------------------


def ts_to_naive(ts: int | None) -> datetime | None:
    """Convert Stripe Unix timestamp to naive UTC datetime."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)


def _get_first_item(stripe_sub):
    """Get the first subscription item, using bracket notation to avoid
    collision with Python dict .items() on Stripe objects.
    """
    sub_items = stripe_sub["items"]
    if sub_items and sub_items.data:
        return sub_items.data[0]
    return None


def _get_price_id(stripe_sub) -> str | None:
    item = _get_first_item(stripe_sub)
    return item.price.id if item else None


def _get_period(stripe_sub) -> tuple[datetime | None, datetime | None]:
    """Current period bounds; since API 2025-08-27 they live on the subscription item."""
    item = _get_first_item(stripe_sub)
    start = getattr(item, "current_period_start", None) if item else None
    end = getattr(item, "current_period_end", None) if item else None
    # Older API versions keep them on the subscription itself
    start = start or getattr(stripe_sub, "current_period_start", None)
    end = end or getattr(stripe_sub, "current_period_end", None)
    return ts_to_naive(start), ts_to_naive(end)


def _metadata_user_id(stripe_obj) -> uuid.UUID | None:
    metadata = getattr(stripe_obj, "metadata", None) or {}
    raw = metadata.get("user_id") if hasattr(metadata, "get") else None
    if not raw:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        return None


def _client_secret(stripe_sub) -> str | None:
    """Client secret for confirming the first payment, if Stripe returned one."""
    invoice = getattr(stripe_sub, "latest_invoice", None)
    if invoice is None or isinstance(invoice, str):
        return None
    confirmation = getattr(invoice, "confirmation_secret", None)
    if confirmation is not None and getattr(confirmation, "client_secret", None):
        return confirmation.client_secret
    payment_intent = getattr(invoice, "payment_intent", None)
    if payment_intent is not None and not isinstance(payment_intent, str):
        return getattr(payment_intent, "client_secret", None)
    return None


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_subscription_by_stripe_id(
    db: AsyncSession, stripe_subscription_id: str
) -> Subscription | None:
    result = await db.execute(
        select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
    )
    return result.scalar_one_or_none()


async def get_active_subscription(db: AsyncSession, user_id: uuid.UUID) -> Subscription | None:
    """The user's newest active or trialing subscription."""
    result = await db.execute(
        select(Subscription)
        .where(Subscription.user_id == user_id, Subscription.status.in_(ACTIVE_STATUSES))
        .order_by(Subscription.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_latest_subscription(db: AsyncSession, user_id: uuid.UUID) -> Subscription | None:
    result = await db.execute(
        select(Subscription)
        .where(Subscription.user_id == user_id)
        .order_by(Subscription.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_user_by_stripe_customer(db: AsyncSession, customer_id: str) -> User | None:
    result = await db.execute(select(User).where(User.stripe_customer_id == customer_id))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Premium flag
# ---------------------------------------------------------------------------


def sync_user_premium(user: User, subscription: Subscription) -> None:
    """Derive the user's premium flag from a mirrored subscription.

    Active/trialing grants premium until the period (or trial) end; ended
    statuses revoke it. Transitional statuses leave the flag alone.
    """
    if subscription.status in ACTIVE_STATUSES:
        user.is_premium = True
        user.premium_expires_at = subscription.current_period_end or subscription.trial_end
    elif subscription.status in ENDED_STATUSES:
        user.is_premium = False
        user.premium_expires_at = None


# ---------------------------------------------------------------------------
# Mirroring
# ---------------------------------------------------------------------------


def _apply_stripe_fields(subscription: Subscription, stripe_sub) -> None:
    period_start, period_end = _get_period(stripe_sub)
    subscription.status = stripe_sub.status
    subscription.price_id = _get_price_id(stripe_sub) or subscription.price_id
    subscription.current_period_start = period_start
    subscription.current_period_end = period_end
    subscription.trial_start = ts_to_naive(getattr(stripe_sub, "trial_start", None))
    subscription.trial_end = ts_to_naive(getattr(stripe_sub, "trial_end", None))
    subscription.cancel_at_period_end = bool(getattr(stripe_sub, "cancel_at_period_end", False))
    subscription.canceled_at = ts_to_naive(getattr(stripe_sub, "canceled_at", None))


async def _resolve_owner(db: AsyncSession, stripe_sub) -> User | None:
    user_id = _metadata_user_id(stripe_sub)
    if user_id is not None:
        user = await db.get(User, user_id)
        if user is not None:
            return user
    customer_id = getattr(stripe_sub, "customer", None)
    if isinstance(customer_id, str):
        return await get_user_by_stripe_customer(db, customer_id)
    return None


async def upsert_subscription_from_stripe(
    db: AsyncSession, stripe_sub, user: User | None = None
) -> Subscription | None:
    """Create or update the local mirror keyed by Stripe subscription ID.

    Replays of the same Stripe state leave a single, unchanged row. Returns
    None when the owning user cannot be resolved.
    """
    subscription = await get_subscription_by_stripe_id(db, stripe_sub.id)

    if subscription is None:
        owner = user or await _resolve_owner(db, stripe_sub)
        if owner is None:
            logger.warning(
                "No local user for Stripe subscription %s (customer %s)",
                stripe_sub.id,
                getattr(stripe_sub, "customer", None),
            )
            return None
        subscription = Subscription(
            user_id=owner.id,
            stripe_subscription_id=stripe_sub.id,
            stripe_customer_id=stripe_sub.customer,
        )
        db.add(subscription)
    else:
        owner = user or await db.get(User, subscription.user_id)

    _apply_stripe_fields(subscription, stripe_sub)
    if owner is not None:
        sync_user_premium(owner, subscription)
    await db.flush()

    logger.info(
        "Mirrored Stripe subscription %s: status=%s, user=%s",
        stripe_sub.id,
        subscription.status,
        subscription.user_id,
    )
    return subscription


async def mark_subscription_canceled(
    db: AsyncSession, stripe_subscription_id: str, canceled_at: datetime
) -> Subscription | None:
    """Record a deletion event; the user loses premium immediately."""
    subscription = await get_subscription_by_stripe_id(db, stripe_subscription_id)
    if subscription is None:
        logger.warning("No local subscription for Stripe subscription %s (delete)", stripe_subscription_id)
        return None

    subscription.status = "canceled"
    subscription.canceled_at = subscription.canceled_at or canceled_at
    subscription.cancel_at_period_end = False
    owner = await db.get(User, subscription.user_id)
    if owner is not None:
        sync_user_premium(owner, subscription)
    await db.flush()
    logger.info("Subscription %s marked canceled", stripe_subscription_id)
    return subscription


async def record_invoice(db: AsyncSession, invoice, status: str, amount: int) -> BillingHistory | None:
    """Upsert a billing history entry keyed by Stripe invoice ID."""
    user = None
    subscription_id = invoice_subscription_id(invoice)
    if subscription_id:
        subscription = await get_subscription_by_stripe_id(db, subscription_id)
        if subscription is not None:
            user = await db.get(User, subscription.user_id)
    customer_id = getattr(invoice, "customer", None)
    if user is None and isinstance(customer_id, str):
        user = await get_user_by_stripe_customer(db, customer_id)
    if user is None:
        logger.warning("No local user for invoice %s", invoice.id)
        return None

    result = await db.execute(select(BillingHistory).where(BillingHistory.stripe_invoice_id == invoice.id))
    entry = result.scalar_one_or_none()
    if entry is None:
        entry = BillingHistory(user_id=user.id, stripe_invoice_id=invoice.id)
        db.add(entry)

    entry.stripe_subscription_id = subscription_id
    entry.amount = amount or 0
    entry.currency = getattr(invoice, "currency", None) or "jpy"
    entry.status = status
    entry.description = getattr(invoice, "description", None)
    entry.invoice_url = getattr(invoice, "hosted_invoice_url", None) or getattr(invoice, "invoice_pdf", None)
    await db.flush()
    logger.info("Recorded invoice %s for user %s: %s %s", invoice.id, user.id, amount, status)
    return entry


def invoice_subscription_id(invoice) -> str | None:
    """Subscription ID of an invoice across Stripe API versions."""
    subscription_id = getattr(invoice, "subscription", None)
    if isinstance(subscription_id, str):
        return subscription_id
    parent = getattr(invoice, "parent", None)
    details = getattr(parent, "subscription_details", None) if parent is not None else None
    nested = getattr(details, "subscription", None) if details is not None else None
    return nested if isinstance(nested, str) else None


async def link_customer(db: AsyncSession, customer) -> User | None:
    """Attach a Stripe customer ID to the user named in its metadata (or by email)."""
    user = None
    user_id = _metadata_user_id(customer)
    if user_id is not None:
        user = await db.get(User, user_id)
    email = getattr(customer, "email", None)
    if user is None and email:
        result = await db.execute(select(User).where(User.email == email.lower()))
        user = result.scalar_one_or_none()
    if user is None:
        logger.warning("No local user for Stripe customer %s", customer.id)
        return None

    if user.stripe_customer_id != customer.id:
        user.stripe_customer_id = customer.id
        await db.flush()
        logger.info("Linked Stripe customer %s to user %s", customer.id, user.id)
    return user


# ---------------------------------------------------------------------------
# User-initiated operations
# ---------------------------------------------------------------------------


async def ensure_stripe_customer(db: AsyncSession, user: User) -> str:
    """Ensure the user has a Stripe customer ID. Create one if missing."""
    if user.stripe_customer_id:
        return user.stripe_customer_id

    try:
        customer = await stripe_client.create_customer(
            email=user.email,
            name=user.display_name,
            user_id=str(user.id),
        )
    except stripe.StripeError as e:
        logger.error("Stripe customer creation failed for user %s: %s", user.id, e)
        raise ExternalServiceError("Payment processor error", {"stripe_error": str(e)}) from e

    user.stripe_customer_id = customer.id
    await db.flush()
    return customer.id


async def create_subscription(
    db: AsyncSession,
    user: User,
    price_id: str,
    trial_days: int = 0,
    payment_method_id: str | None = None,
) -> CreatedSubscription:
    """Start a subscription through Stripe and mirror it locally.

    If the local write fails after Stripe accepted the subscription, the
    Stripe subscription is canceled again (best effort) and the caller gets a 500.
    """
    existing = await get_active_subscription(db, user.id)
    if existing is not None:
        raise ValidationError(
            "An active subscription already exists",
            {"subscription_id": existing.stripe_subscription_id, "status": existing.status},
        )

    customer_id = await ensure_stripe_customer(db, user)

    try:
        stripe_sub = await stripe_client.create_subscription(
            customer_id=customer_id,
            price_id=price_id,
            user_id=str(user.id),
            trial_days=trial_days,
            payment_method_id=payment_method_id,
        )
    except stripe.StripeError as e:
        logger.error("Stripe subscription creation failed for user %s: %s", user.id, e)
        raise ExternalServiceError("Payment processor error", {"stripe_error": str(e)}) from e

    try:
        await upsert_subscription_from_stripe(db, stripe_sub, user=user)
    except SQLAlchemyError as e:
        logger.exception("Failed to persist subscription %s; canceling it in Stripe", stripe_sub.id)
        try:
            await stripe_client.cancel_subscription(stripe_sub.id)
        except stripe.StripeError:
            logger.exception("Compensating cancel failed for subscription %s", stripe_sub.id)
        raise CourseReviewError("Failed to save subscription", {"subscription_id": stripe_sub.id}) from e

    return CreatedSubscription(
        subscription_id=stripe_sub.id,
        status=stripe_sub.status,
        client_secret=_client_secret(stripe_sub),
        requires_action=stripe_sub.status == "incomplete",
    )


async def cancel_subscription(
    db: AsyncSession, user: User, stripe_subscription_id: str, immediately: bool = False
) -> Subscription:
    """Cancel the caller's subscription, at period end unless ``immediately``."""
    subscription = await get_subscription_by_stripe_id(db, stripe_subscription_id)
    if subscription is None or subscription.user_id != user.id:
        raise NotFoundError("Subscription not found")
    if subscription.status == "canceled":
        raise ConflictError("Subscription is already canceled")

    try:
        if immediately:
            stripe_sub = await stripe_client.cancel_subscription(stripe_subscription_id)
        else:
            stripe_sub = await stripe_client.cancel_subscription_at_period_end(stripe_subscription_id)
    except stripe.StripeError as e:
        logger.error("Stripe cancel failed for subscription %s: %s", stripe_subscription_id, e)
        raise ExternalServiceError("Payment processor error", {"stripe_error": str(e)}) from e

    _apply_stripe_fields(subscription, stripe_sub)
    sync_user_premium(user, subscription)
    await db.flush()
    logger.info(
        "User %s canceled subscription %s (immediately=%s), status=%s",
        user.id,
        stripe_subscription_id,
        immediately,
        subscription.status,
    )
    return subscription


async def list_billing_history(db: AsyncSession, user: User, limit: int = 20) -> list[BillingHistory]:
    result = await db.execute(
        select(BillingHistory)
        .where(BillingHistory.user_id == user.id)
        .order_by(BillingHistory.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
