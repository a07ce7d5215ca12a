"""Tests for Stripe webhook handler functions with faked Stripe events."""

import uuid
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import create_user
from course_review.billing.webhooks import (
    EVENT_HANDLERS,
    handle_checkout_session_completed,
    handle_customer_upsert,
    handle_invoice_payment_failed,
    handle_invoice_payment_succeeded,
    handle_subscription_deleted,
    handle_subscription_upsert,
)
from course_review.models.billing_history import BillingHistory
from course_review.models.subscription import Subscription
from course_review.models.user import User
from course_review.services.subscription_service import invoice_subscription_id, ts_to_naive

pytestmark = pytest.mark.asyncio

PERIOD_START = 1775000000
PERIOD_END = 1777600000


class _StripeObj(SimpleNamespace):
    """SimpleNamespace with bracket access, like Stripe API objects.

    ``subscription["items"]`` must use brackets to avoid colliding with dict.items().
    """

    def __getitem__(self, key: str):
        return getattr(self, key)


def _make_event(event_type: str, data_object: _StripeObj) -> _StripeObj:
    return _StripeObj(
        type=event_type,
        id=f"evt_test_{uuid.uuid4().hex[:8]}",
        data=_StripeObj(object=data_object),
    )


def _make_stripe_sub(
    user: User | None = None,
    status: str = "active",
    sub_id: str = "sub_test_123",
    customer: str = "cus_test_123",
    price_id: str = "price_premium_monthly",
    cancel_at_period_end: bool = False,
) -> _StripeObj:
    # Since API 2025-08-27 the period bounds live on the subscription item
    return _StripeObj(
        id=sub_id,
        customer=customer,
        status=status,
        cancel_at_period_end=cancel_at_period_end,
        canceled_at=None,
        trial_start=None,
        trial_end=None,
        metadata={"user_id": str(user.id)} if user else {},
        items=_StripeObj(
            data=[
                _StripeObj(
                    price=_StripeObj(id=price_id),
                    current_period_start=PERIOD_START,
                    current_period_end=PERIOD_END,
                )
            ]
        ),
    )


def _make_invoice(invoice_id: str, sub_id: str | None, customer: str = "cus_test_123", **fields) -> _StripeObj:
    values = {
        "id": invoice_id,
        "customer": customer,
        "subscription": sub_id,
        "amount_paid": 980,
        "amount_due": 980,
        "currency": "jpy",
        "description": None,
        "hosted_invoice_url": "https://invoice.stripe.com/i/test",
    }
    values.update(fields)
    return _StripeObj(**values)


async def _mirror(db_session: AsyncSession, user: User, **overrides) -> Subscription:
    event = _make_event("customer.subscription.created", _make_stripe_sub(user, **overrides))
    await handle_subscription_upsert(db_session, event)
    result = await db_session.execute(
        select(Subscription).where(Subscription.stripe_subscription_id == event.data.object.id)
    )
    return result.scalar_one()


class TestHelpers:
    def test_ts_to_naive(self):
        result = ts_to_naive(PERIOD_START)
        assert isinstance(result, datetime)
        assert result.tzinfo is None
        assert ts_to_naive(None) is None

    def test_invoice_subscription_id_legacy_field(self):
        assert invoice_subscription_id(_make_invoice("in_1", "sub_legacy")) == "sub_legacy"

    def test_invoice_subscription_id_from_parent(self):
        invoice = _make_invoice(
            "in_2",
            None,
            parent=_StripeObj(subscription_details=_StripeObj(subscription="sub_nested")),
        )
        assert invoice_subscription_id(invoice) == "sub_nested"

    def test_registry_covers_handled_events(self):
        assert EVENT_HANDLERS["customer.subscription.updated"] is handle_subscription_upsert
        assert "invoice.payment_failed" in EVENT_HANDLERS
        assert "charge.refunded" not in EVENT_HANDLERS


class TestSubscriptionEvents:
    async def test_created_mirrors_and_grants_premium(self, db_session: AsyncSession, test_user: User) -> None:
        subscription = await _mirror(db_session, test_user)

        assert subscription.user_id == test_user.id
        assert subscription.status == "active"
        assert subscription.price_id == "price_premium_monthly"
        assert subscription.current_period_end == ts_to_naive(PERIOD_END)
        assert test_user.is_premium is True
        assert test_user.premium_expires_at == ts_to_naive(PERIOD_END)

    async def test_replay_keeps_single_row(self, db_session: AsyncSession, test_user: User) -> None:
        await _mirror(db_session, test_user)
        await _mirror(db_session, test_user)

        count = await db_session.execute(select(func.count()).select_from(Subscription))
        assert count.scalar_one() == 1

    async def test_update_to_cancel_at_period_end(self, db_session: AsyncSession, test_user: User) -> None:
        subscription = await _mirror(db_session, test_user)
        event = _make_event(
            "customer.subscription.updated", _make_stripe_sub(test_user, cancel_at_period_end=True)
        )
        await handle_subscription_upsert(db_session, event)

        assert subscription.cancel_at_period_end is True
        # Still premium until the period ends
        assert test_user.is_premium is True

    async def test_owner_resolved_by_customer(self, db_session: AsyncSession) -> None:
        user = await create_user(db_session, stripe_customer_id="cus_by_customer")
        subscription = await _mirror(db_session, user, customer="cus_by_customer")
        assert subscription.user_id == user.id

    async def test_unknown_owner_is_skipped(self, db_session: AsyncSession) -> None:
        event = _make_event("customer.subscription.created", _make_stripe_sub(None, customer="cus_nobody"))
        await handle_subscription_upsert(db_session, event)

        count = await db_session.execute(select(func.count()).select_from(Subscription))
        assert count.scalar_one() == 0

    async def test_deleted_revokes_premium(self, db_session: AsyncSession, test_user: User) -> None:
        subscription = await _mirror(db_session, test_user)

        await handle_subscription_deleted(
            db_session, _make_event("customer.subscription.deleted", _make_stripe_sub(test_user, status="canceled"))
        )

        assert subscription.status == "canceled"
        assert subscription.canceled_at is not None
        assert test_user.is_premium is False
        assert test_user.premium_expires_at is None

    async def test_past_due_keeps_premium_flag(self, db_session: AsyncSession, test_user: User) -> None:
        await _mirror(db_session, test_user)
        await handle_subscription_upsert(
            db_session, _make_event("customer.subscription.updated", _make_stripe_sub(test_user, status="past_due"))
        )
        assert test_user.is_premium is True


class TestInvoiceEvents:
    async def test_payment_succeeded_records_and_refreshes(self, db_session: AsyncSession, test_user: User) -> None:
        await _mirror(db_session, test_user)
        renewed = _make_stripe_sub(test_user)
        invoice = _make_invoice("in_paid_1", "sub_test_123")

        with patch("course_review.billing.webhooks.get_subscription", new=AsyncMock(return_value=renewed)) as fetch:
            await handle_invoice_payment_succeeded(db_session, _make_event("invoice.payment_succeeded", invoice))
            await handle_invoice_payment_succeeded(db_session, _make_event("invoice.payment_succeeded", invoice))

        fetch.assert_awaited_with("sub_test_123")
        result = await db_session.execute(select(BillingHistory))
        entries = result.scalars().all()
        assert len(entries) == 1
        assert entries[0].status == "paid"
        assert entries[0].amount == 980
        assert entries[0].user_id == test_user.id

    async def test_one_time_invoice_skips_refresh(self, db_session: AsyncSession) -> None:
        await create_user(db_session, stripe_customer_id="cus_one_time")
        invoice = _make_invoice("in_one_time", None, customer="cus_one_time")

        with patch("course_review.billing.webhooks.get_subscription", new=AsyncMock()) as fetch:
            await handle_invoice_payment_succeeded(db_session, _make_event("invoice.payment_succeeded", invoice))

        fetch.assert_not_awaited()
        result = await db_session.execute(select(BillingHistory.stripe_invoice_id))
        assert result.scalars().all() == ["in_one_time"]

    async def test_payment_failed_marks_past_due(self, db_session: AsyncSession, test_user: User) -> None:
        subscription = await _mirror(db_session, test_user)
        invoice = _make_invoice("in_failed_1", "sub_test_123", amount_paid=0)

        await handle_invoice_payment_failed(db_session, _make_event("invoice.payment_failed", invoice))

        assert subscription.status == "past_due"
        result = await db_session.execute(select(BillingHistory))
        entry = result.scalar_one()
        assert entry.status == "uncollectible"
        assert entry.amount == 980


class TestCheckoutAndCustomerEvents:
    async def test_checkout_completed_mirrors_subscription(self, db_session: AsyncSession, test_user: User) -> None:
        session = _StripeObj(id="cs_test_1", subscription="sub_checkout", customer="cus_test_123")
        stripe_sub = _make_stripe_sub(test_user, sub_id="sub_checkout")

        with patch("course_review.billing.webhooks.get_subscription", new=AsyncMock(return_value=stripe_sub)):
            await handle_checkout_session_completed(db_session, _make_event("checkout.session.completed", session))

        result = await db_session.execute(select(Subscription))
        assert result.scalar_one().stripe_subscription_id == "sub_checkout"
        assert test_user.is_premium is True

    async def test_checkout_without_subscription_is_ignored(self, db_session: AsyncSession) -> None:
        session = _StripeObj(id="cs_test_2", subscription=None)
        with patch("course_review.billing.webhooks.get_subscription", new=AsyncMock()) as fetch:
            await handle_checkout_session_completed(db_session, _make_event("checkout.session.completed", session))
        fetch.assert_not_awaited()

    async def test_customer_linked_by_metadata(self, db_session: AsyncSession, test_user: User) -> None:
        customer = _StripeObj(id="cus_linked", email=None, metadata={"user_id": str(test_user.id)})
        await handle_customer_upsert(db_session, _make_event("customer.created", customer))
        assert test_user.stripe_customer_id == "cus_linked"

    async def test_customer_linked_by_email(self, db_session: AsyncSession, test_user: User) -> None:
        customer = _StripeObj(id="cus_by_email", email=test_user.email.upper(), metadata={})
        await handle_customer_upsert(db_session, _make_event("customer.updated", customer))
        assert test_user.stripe_customer_id == "cus_by_email"
