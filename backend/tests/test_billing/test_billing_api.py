"""Tests for billing API endpoints with mocked Stripe calls."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import stripe
from httpx import AsyncClient
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import create_user, headers_for
from course_review.models.billing_history import BillingHistory
from course_review.models.subscription import Subscription
from course_review.models.user import User


class _StripeObj(SimpleNamespace):
    def __getitem__(self, key: str):
        return getattr(self, key)


def _stripe_sub(sub_id: str = "sub_api_1", status: str = "incomplete", **fields) -> _StripeObj:
    values = {
        "id": sub_id,
        "customer": "cus_api_1",
        "status": status,
        "cancel_at_period_end": False,
        "canceled_at": None,
        "trial_start": None,
        "trial_end": None,
        "metadata": {},
        "latest_invoice": _StripeObj(confirmation_secret=_StripeObj(client_secret="pi_secret_123")),
        "items": _StripeObj(
            data=[
                _StripeObj(
                    price=_StripeObj(id="price_premium_monthly"),
                    current_period_start=1775000000,
                    current_period_end=1777600000,
                )
            ]
        ),
    }
    values.update(fields)
    return _StripeObj(**values)


async def _subscribed_user(db_session: AsyncSession, status: str = "active") -> tuple[User, Subscription]:
    user = await create_user(db_session, stripe_customer_id="cus_api_1", is_premium=status == "active")
    subscription = Subscription(
        user_id=user.id,
        stripe_subscription_id="sub_api_1",
        stripe_customer_id="cus_api_1",
        price_id="price_premium_monthly",
        status=status,
    )
    db_session.add(subscription)
    await db_session.flush()
    return user, subscription


class TestListPlans:
    @pytest.mark.asyncio
    async def test_plans_are_public(self, client: AsyncClient):
        """Plans endpoint needs no auth and lists the free tier plus both premium prices."""
        response = await client.get("/api/v1/billing/plans")
        assert response.status_code == 200
        plans = {p["name"]: p for p in response.json()["plans"]}
        assert set(plans) == {"free", "premium_monthly", "premium_yearly"}
        assert plans["free"]["amount"] == 0
        assert plans["premium_monthly"]["price_id"] == "price_premium_monthly"
        assert plans["premium_yearly"]["interval"] == "year"


class TestCreateSubscription:
    @pytest.mark.asyncio
    async def test_creates_customer_and_subscription(
        self, client: AsyncClient, auth_headers: dict, test_user: User
    ):
        """A first subscription creates the Stripe customer and mirrors the result."""
        customer = AsyncMock(return_value=SimpleNamespace(id="cus_api_1"))
        create = AsyncMock(return_value=_stripe_sub())

        with (
            patch("course_review.billing.stripe_client.create_customer", new=customer),
            patch("course_review.billing.stripe_client.create_subscription", new=create),
        ):
            response = await client.post(
                "/api/v1/billing/create-subscription",
                json={"price_id": "price_premium_monthly"},
                headers=auth_headers,
            )

        assert response.status_code == 201
        data = response.json()
        assert data["subscription_id"] == "sub_api_1"
        assert data["client_secret"] == "pi_secret_123"
        assert data["requires_action"] is True
        assert test_user.stripe_customer_id == "cus_api_1"
        assert create.await_args.kwargs["price_id"] == "price_premium_monthly"
        # Incomplete does not grant premium yet
        assert test_user.is_premium is False

    @pytest.mark.asyncio
    async def test_unknown_price_rejected(self, client: AsyncClient, auth_headers: dict):
        response = await client.post(
            "/api/v1/billing/create-subscription", json={"price_id": "price_bogus"}, headers=auth_headers
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_existing_active_subscription_rejected(self, client: AsyncClient, db_session: AsyncSession):
        user, _ = await _subscribed_user(db_session)
        with patch("course_review.billing.stripe_client.create_subscription", new=AsyncMock()) as create:
            response = await client.post(
                "/api/v1/billing/create-subscription",
                json={"price_id": "price_premium_yearly"},
                headers=headers_for(user),
            )
        assert response.status_code == 400
        create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stripe_failure_is_502(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session, stripe_customer_id="cus_api_1")
        failing = AsyncMock(side_effect=stripe.APIConnectionError("network down"))
        with patch("course_review.billing.stripe_client.create_subscription", new=failing):
            response = await client.post(
                "/api/v1/billing/create-subscription",
                json={"price_id": "price_premium_monthly"},
                headers=headers_for(user),
            )
        assert response.status_code == 502
        assert response.json()["error"] == "ExternalServiceError"

    @pytest.mark.asyncio
    async def test_local_save_failure_cancels_in_stripe(self, client: AsyncClient, db_session: AsyncSession):
        """A failed local write rolls the Stripe subscription back and returns an opaque 500."""
        user = await create_user(db_session, stripe_customer_id="cus_api_1")
        cancel = AsyncMock(return_value=_stripe_sub(status="canceled"))

        with (
            patch("course_review.billing.stripe_client.create_subscription", new=AsyncMock(return_value=_stripe_sub())),
            patch("course_review.billing.stripe_client.cancel_subscription", new=cancel),
            patch(
                "course_review.services.subscription_service.upsert_subscription_from_stripe",
                new=AsyncMock(side_effect=SQLAlchemyError("disk full")),
            ),
        ):
            response = await client.post(
                "/api/v1/billing/create-subscription",
                json={"price_id": "price_premium_monthly"},
                headers=headers_for(user),
            )

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "InternalServerError"
        assert body["message"] == "Internal server error"
        assert body["details"]["reference"]
        assert "disk full" not in response.text
        cancel.assert_awaited_once_with("sub_api_1")

    @pytest.mark.asyncio
    async def test_failed_compensating_cancel_still_500(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session, stripe_customer_id="cus_api_1")
        cancel = AsyncMock(side_effect=stripe.APIConnectionError("network down"))

        with (
            patch("course_review.billing.stripe_client.create_subscription", new=AsyncMock(return_value=_stripe_sub())),
            patch("course_review.billing.stripe_client.cancel_subscription", new=cancel),
            patch(
                "course_review.services.subscription_service.upsert_subscription_from_stripe",
                new=AsyncMock(side_effect=SQLAlchemyError("disk full")),
            ),
        ):
            response = await client.post(
                "/api/v1/billing/create-subscription",
                json={"price_id": "price_premium_monthly"},
                headers=headers_for(user),
            )

        assert response.status_code == 500
        assert response.json()["error"] == "InternalServerError"
        cancel.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_requires_auth(self, client: AsyncClient):
        response = await client.post("/api/v1/billing/create-subscription", json={"price_id": "price_premium_monthly"})
        assert response.status_code == 401


class TestCancelSubscription:
    @pytest.mark.asyncio
    async def test_cancel_at_period_end(self, client: AsyncClient, db_session: AsyncSession):
        user, subscription = await _subscribed_user(db_session)
        updated = _stripe_sub(status="active", cancel_at_period_end=True)

        with patch(
            "course_review.billing.stripe_client.cancel_subscription_at_period_end", new=AsyncMock(return_value=updated)
        ):
            response = await client.post(
                "/api/v1/billing/cancel-subscription",
                json={"subscription_id": "sub_api_1"},
                headers=headers_for(user),
            )

        assert response.status_code == 200
        assert response.json()["cancel_at_period_end"] is True
        assert subscription.status == "active"
        assert user.is_premium is True

    @pytest.mark.asyncio
    async def test_cancel_immediately_revokes_premium(self, client: AsyncClient, db_session: AsyncSession):
        user, subscription = await _subscribed_user(db_session)
        canceled = _stripe_sub(status="canceled", canceled_at=1776000000)

        with patch("course_review.billing.stripe_client.cancel_subscription", new=AsyncMock(return_value=canceled)):
            response = await client.post(
                "/api/v1/billing/cancel-subscription",
                json={"subscription_id": "sub_api_1", "immediately": True},
                headers=headers_for(user),
            )

        assert response.status_code == 200
        assert subscription.status == "canceled"
        assert user.is_premium is False

    @pytest.mark.asyncio
    async def test_other_users_subscription_is_404(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers: dict
    ):
        await _subscribed_user(db_session)
        response = await client.post(
            "/api/v1/billing/cancel-subscription", json={"subscription_id": "sub_api_1"}, headers=auth_headers
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_already_canceled_is_409(self, client: AsyncClient, db_session: AsyncSession):
        user, _ = await _subscribed_user(db_session, status="canceled")
        response = await client.post(
            "/api/v1/billing/cancel-subscription",
            json={"subscription_id": "sub_api_1"},
            headers=headers_for(user),
        )
        assert response.status_code == 409


class TestSubscriptionStatus:
    @pytest.mark.asyncio
    async def test_free_user(self, client: AsyncClient, auth_headers: dict):
        response = await client.get("/api/v1/billing/subscription", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"is_premium": False, "premium_expires_at": None, "subscription": None}

    @pytest.mark.asyncio
    async def test_subscribed_user(self, client: AsyncClient, db_session: AsyncSession):
        user, _ = await _subscribed_user(db_session)
        response = await client.get("/api/v1/billing/subscription", headers=headers_for(user))
        data = response.json()
        assert data["is_premium"] is True
        assert data["subscription"]["stripe_subscription_id"] == "sub_api_1"


class TestCheckoutAndPortal:
    @pytest.mark.asyncio
    async def test_checkout_session(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session, stripe_customer_id="cus_api_1")
        session = SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.com/c/pay/cs_test_1")

        with patch(
            "course_review.api.v1.billing.create_checkout_session", new=AsyncMock(return_value=session)
        ) as create:
            response = await client.post(
                "/api/v1/billing/checkout-session",
                json={"price_id": "price_premium_yearly"},
                headers=headers_for(user),
            )

        assert response.status_code == 200
        assert response.json() == {"checkout_url": session.url, "session_id": "cs_test_1"}
        assert create.await_args.kwargs["customer_id"] == "cus_api_1"

    @pytest.mark.asyncio
    async def test_portal_without_customer(self, client: AsyncClient, auth_headers: dict):
        response = await client.post("/api/v1/billing/customer-portal", json={}, headers=auth_headers)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_portal_session(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session, stripe_customer_id="cus_api_1")
        session = SimpleNamespace(url="https://billing.stripe.com/p/session/test")
        with patch("course_review.api.v1.billing.create_portal_session", new=AsyncMock(return_value=session)):
            response = await client.post("/api/v1/billing/customer-portal", json={}, headers=headers_for(user))
        assert response.status_code == 200
        assert response.json()["portal_url"] == session.url


class TestBillingHistory:
    @pytest.mark.asyncio
    async def test_lists_own_invoices(self, client: AsyncClient, db_session: AsyncSession, other_user: User):
        user = await create_user(db_session)
        for owner, invoice_id in ((user, "in_mine"), (other_user, "in_theirs")):
            db_session.add(
                BillingHistory(user_id=owner.id, stripe_invoice_id=invoice_id, amount=980, status="paid")
            )
        await db_session.flush()

        response = await client.get("/api/v1/billing/history", headers=headers_for(user))

        assert response.status_code == 200
        assert [item["stripe_invoice_id"] for item in response.json()["items"]] == ["in_mine"]

    @pytest.mark.asyncio
    async def test_limit_validated(self, client: AsyncClient, auth_headers: dict):
        response = await client.get("/api/v1/billing/history?limit=0", headers=auth_headers)
        assert response.status_code == 400
