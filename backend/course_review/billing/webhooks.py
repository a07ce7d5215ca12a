"""Stripe webhook event handlers and the event-type registry.

Every handler is an upsert keyed by a Stripe ID (subscription, invoice, or
customer), so Stripe's at-least-once delivery never duplicates rows.
"""

import logging
from collections.abc import Awaitable, Callable

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from course_review.billing.stripe_client import get_subscription
from course_review.database import utcnow
from course_review.services.subscription_service import (
    get_subscription_by_stripe_id,
    invoice_subscription_id,
    link_customer,
    mark_subscription_canceled,
    record_invoice,
    ts_to_naive,
    upsert_subscription_from_stripe,
)

logger = logging.getLogger(__name__)

WebhookHandler = Callable[[AsyncSession, stripe.Event], Awaitable[None]]


async def handle_subscription_upsert(db: AsyncSession, event: stripe.Event) -> None:
    """Handle customer.subscription.created / updated — mirror the subscription."""
    stripe_sub = event.data.object
    await upsert_subscription_from_stripe(db, stripe_sub)


async def handle_subscription_deleted(db: AsyncSession, event: stripe.Event) -> None:
    """Handle customer.subscription.deleted — mark canceled and revoke premium."""
    stripe_sub = event.data.object
    canceled_at = ts_to_naive(getattr(stripe_sub, "canceled_at", None)) or utcnow()
    await mark_subscription_canceled(db, stripe_sub.id, canceled_at)


async def handle_invoice_payment_succeeded(db: AsyncSession, event: stripe.Event) -> None:
    """Handle invoice.payment_succeeded — record payment and refresh the subscription."""
    invoice = event.data.object
    await record_invoice(db, invoice, status="paid", amount=getattr(invoice, "amount_paid", 0))

    subscription_id = invoice_subscription_id(invoice)
    if not subscription_id:
        logger.info("Invoice %s has no subscription (one-time), skipping refresh", invoice.id)
        return
    if await get_subscription_by_stripe_id(db, subscription_id) is None:
        logger.warning("No local subscription %s for paid invoice %s", subscription_id, invoice.id)
        return

    # Renewal moves the period forward; fetch it rather than trust event ordering
    stripe_sub = await get_subscription(subscription_id)
    await upsert_subscription_from_stripe(db, stripe_sub)


async def handle_invoice_payment_failed(db: AsyncSession, event: stripe.Event) -> None:
    """Handle invoice.payment_failed — record the failed charge and mark past_due."""
    invoice = event.data.object
    await record_invoice(db, invoice, status="uncollectible", amount=getattr(invoice, "amount_due", 0))

    subscription_id = invoice_subscription_id(invoice)
    if not subscription_id:
        return
    subscription = await get_subscription_by_stripe_id(db, subscription_id)
    if subscription is None:
        logger.warning("No local subscription %s for failed invoice %s", subscription_id, invoice.id)
        return
    if subscription.status != "canceled":
        subscription.status = "past_due"
        await db.flush()
    logger.info("Payment failed: subscription %s marked as past_due", subscription_id)


async def handle_checkout_session_completed(db: AsyncSession, event: stripe.Event) -> None:
    """Handle checkout.session.completed — mirror the purchased subscription."""
    session = event.data.object
    subscription_id = getattr(session, "subscription", None)
    if not subscription_id:
        logger.info("Checkout session %s has no subscription, skipping", session.id)
        return

    stripe_sub = await get_subscription(subscription_id)
    await upsert_subscription_from_stripe(db, stripe_sub)


async def handle_customer_upsert(db: AsyncSession, event: stripe.Event) -> None:
    """Handle customer.created / updated — store the customer ID on the user."""
    await link_customer(db, event.data.object)


EVENT_HANDLERS: dict[str, WebhookHandler] = {
    "customer.subscription.created": handle_subscription_upsert,
    "customer.subscription.updated": handle_subscription_upsert,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.payment_succeeded": handle_invoice_payment_succeeded,
    "invoice.payment_failed": handle_invoice_payment_failed,
    "checkout.session.completed": handle_checkout_session_completed,
    "customer.created": handle_customer_upsert,
    "customer.updated": handle_customer_upsert,
}
