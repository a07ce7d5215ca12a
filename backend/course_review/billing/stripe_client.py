"""Async Stripe API wrapper for the course review service."""

import logging

import stripe
from stripe import StripeClient

from course_review.config import settings

logger = logging.getLogger(__name__)


def get_stripe_client() -> StripeClient:
    """Create a StripeClient instance with async HTTP support."""
    return StripeClient(
        settings.stripe_secret_key,
        http_client=stripe.HTTPXClient(),
    )


async def create_customer(email: str, name: str, user_id: str) -> stripe.Customer:
    """Create a Stripe customer linked to a local user."""
    client = get_stripe_client()
    logger.info("Creating Stripe customer for user %s", user_id)
    customer = await client.v1.customers.create_async(
        params={
            "email": email,
            "name": name,
            "metadata": {"user_id": user_id},
        }
    )
    logger.info("Created Stripe customer %s for user %s", customer.id, user_id)
    return customer


async def create_subscription(
    customer_id: str,
    price_id: str,
    user_id: str,
    trial_days: int = 0,
    payment_method_id: str | None = None,
) -> stripe.Subscription:
    """Create an incomplete subscription whose first invoice the client confirms."""
    client = get_stripe_client()
    params: dict = {
        "customer": customer_id,
        "items": [{"price": price_id}],
        "payment_behavior": "default_incomplete",
        "payment_settings": {"save_default_payment_method": "on_subscription"},
        "expand": ["latest_invoice.confirmation_secret"],
        "metadata": {"user_id": user_id},
    }
    if trial_days > 0:
        params["trial_period_days"] = trial_days
    if payment_method_id:
        params["default_payment_method"] = payment_method_id

    logger.info("Creating subscription for customer %s, price %s", customer_id, price_id)
    return await client.v1.subscriptions.create_async(params=params)


async def cancel_subscription(subscription_id: str) -> stripe.Subscription:
    """Cancel a subscription immediately."""
    client = get_stripe_client()
    logger.info("Canceling Stripe subscription %s immediately", subscription_id)
    return await client.v1.subscriptions.cancel_async(subscription_id)


async def cancel_subscription_at_period_end(subscription_id: str) -> stripe.Subscription:
    """Flag a subscription to end when the current period ends."""
    client = get_stripe_client()
    logger.info("Scheduling Stripe subscription %s to cancel at period end", subscription_id)
    return await client.v1.subscriptions.update_async(
        subscription_id,
        params={"cancel_at_period_end": True},
    )


async def get_subscription(subscription_id: str) -> stripe.Subscription:
    """Retrieve a Stripe subscription by ID."""
    client = get_stripe_client()
    return await client.v1.subscriptions.retrieve_async(subscription_id)


async def create_checkout_session(
    customer_id: str,
    price_id: str,
    success_url: str,
    cancel_url: str,
    user_id: str,
) -> stripe.checkout.Session:
    """Create a Stripe Checkout Session for a premium subscription."""
    client = get_stripe_client()
    logger.info(
        "Creating checkout session for customer %s, price %s",
        customer_id,
        price_id,
    )
    return await client.v1.checkout.sessions.create_async(
        params={
            "mode": "subscription",
            "customer": customer_id,
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "subscription_data": {"metadata": {"user_id": user_id}},
        }
    )


async def create_portal_session(
    customer_id: str, return_url: str
) -> stripe.billing_portal.Session:
    """Create a Stripe Customer Portal session for subscription management."""
    client = get_stripe_client()
    logger.info("Creating portal session for customer %s", customer_id)
    return await client.v1.billing_portal.sessions.create_async(
        params={
            "customer": customer_id,
            "return_url": return_url,
        }
    )


async def get_latest_invoice(
    subscription_id: str, status: str | None = None
) -> stripe.Invoice | None:
    """Return the newest invoice of a subscription, optionally filtered by status."""
    client = get_stripe_client()
    params: dict = {"subscription": subscription_id, "limit": 1}
    if status:
        params["status"] = status
    invoices = await client.v1.invoices.list_async(params=params)
    return invoices.data[0] if invoices.data else None


async def pay_invoice(invoice_id: str) -> stripe.Invoice:
    """Retry payment of an open invoice."""
    client = get_stripe_client()
    logger.info("Retrying payment for invoice %s", invoice_id)
    return await client.v1.invoices.pay_async(invoice_id)


async def send_invoice(invoice_id: str) -> stripe.Invoice:
    """Email an invoice to the customer."""
    client = get_stripe_client()
    logger.info("Sending invoice %s", invoice_id)
    return await client.v1.invoices.send_invoice_async(invoice_id)


async def refund_last_charge(customer_id: str) -> stripe.Refund | None:
    """Refund the customer's most recent charge. Returns None when there is none."""
    client = get_stripe_client()
    charges = await client.v1.charges.list_async(params={"customer": customer_id, "limit": 1})
    if not charges.data:
        return None
    charge = charges.data[0]
    logger.info("Refunding charge %s for customer %s", charge.id, customer_id)
    return await client.v1.refunds.create_async(
        params={"charge": charge.id, "reason": "requested_by_customer"}
    )


def construct_webhook_event(payload: bytes, sig_header: str) -> stripe.Event:
    """Verify the signature and construct a Stripe webhook event (synchronous)."""
    return stripe.Webhook.construct_event(payload, sig_header, settings.stripe_webhook_secret)
