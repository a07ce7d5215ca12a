"""Billing API endpoints — plans, subscriptions, Stripe Checkout, Customer Portal, and history."""

import logging

import stripe
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from course_review.api.deps import get_current_user, get_db
from course_review.billing.plans import PLANS, get_plan_by_price_id
from course_review.billing.stripe_client import create_checkout_session, create_portal_session
from course_review.config import settings
from course_review.exceptions import ExternalServiceError, ValidationError
from course_review.models.user import User
from course_review.schemas.billing import (
    BillingHistoryListResponse,
    BillingHistoryResponse,
    CancelSubscriptionRequest,
    CheckoutRequest,
    CheckoutResponse,
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    PlanResponse,
    PlansListResponse,
    PortalRequest,
    PortalResponse,
    SubscriptionResponse,
    SubscriptionStatusResponse,
)
from course_review.services import subscription_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/billing", tags=["billing"])


def _require_paid_plan(price_id: str) -> None:
    plan = get_plan_by_price_id(price_id)
    if plan is None:
        raise ValidationError("Unknown price", {"price_id": price_id})


@router.get("/plans", response_model=PlansListResponse)
async def list_plans() -> PlansListResponse:
    """List available plans (public — no auth required)."""
    return PlansListResponse(
        plans=[
            PlanResponse(
                name=p.name,
                display_name=p.display_name,
                price_id=p.stripe_price_id,
                amount=p.amount,
                currency=p.currency,
                interval=p.interval,
                features=list(p.features),
            )
            for p in PLANS.values()
        ]
    )


@router.post(
    "/create-subscription",
    response_model=CreateSubscriptionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_subscription(
    body: CreateSubscriptionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CreateSubscriptionResponse:
    """Start a premium subscription; the client confirms payment with ``client_secret``."""
    _require_paid_plan(body.price_id)
    created = await subscription_service.create_subscription(
        db,
        current_user,
        price_id=body.price_id,
        trial_days=body.trial_days,
        payment_method_id=body.payment_method_id,
    )
    return CreateSubscriptionResponse(
        subscription_id=created.subscription_id,
        status=created.status,
        client_secret=created.client_secret,
        requires_action=created.requires_action,
    )


@router.post("/cancel-subscription", response_model=SubscriptionResponse)
async def cancel_subscription(
    body: CancelSubscriptionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> SubscriptionResponse:
    """Cancel at period end, or right away with ``immediately``."""
    subscription = await subscription_service.cancel_subscription(
        db, current_user, body.subscription_id, immediately=body.immediately
    )
    return SubscriptionResponse.model_validate(subscription)


@router.get("/subscription", response_model=SubscriptionStatusResponse)
async def get_subscription_status(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> SubscriptionStatusResponse:
    """Current premium state and the most recent subscription."""
    subscription = await subscription_service.get_latest_subscription(db, current_user.id)
    return SubscriptionStatusResponse(
        is_premium=current_user.is_premium_active(),
        premium_expires_at=current_user.premium_expires_at,
        subscription=SubscriptionResponse.model_validate(subscription) if subscription else None,
    )


@router.post("/checkout-session", response_model=CheckoutResponse)
async def create_checkout(
    body: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CheckoutResponse:
    """Create a Stripe Checkout session for a premium price."""
    _require_paid_plan(body.price_id)
    customer_id = await subscription_service.ensure_stripe_customer(db, current_user)

    success_url = body.success_url or f"{settings.frontend_url}/billing?session_id={{CHECKOUT_SESSION_ID}}"
    cancel_url = body.cancel_url or f"{settings.frontend_url}/pricing"

    try:
        session = await create_checkout_session(
            customer_id=customer_id,
            price_id=body.price_id,
            success_url=success_url,
            cancel_url=cancel_url,
            user_id=str(current_user.id),
        )
    except stripe.StripeError as e:
        logger.error("Stripe checkout error: %s", e)
        raise ExternalServiceError("Payment processor error", {"stripe_error": str(e)}) from e

    return CheckoutResponse(checkout_url=session.url, session_id=session.id)


@router.post("/customer-portal", response_model=PortalResponse)
async def create_portal(
    body: PortalRequest,
    current_user: User = Depends(get_current_user),
) -> PortalResponse:
    """Create a Stripe Customer Portal session for subscription management."""
    if not current_user.stripe_customer_id:
        raise ValidationError("No Stripe customer found. Subscribe first.")

    return_url = body.return_url or f"{settings.frontend_url}/billing"

    try:
        session = await create_portal_session(
            customer_id=current_user.stripe_customer_id,
            return_url=return_url,
        )
    except stripe.StripeError as e:
        logger.error("Stripe portal error: %s", e)
        raise ExternalServiceError("Payment processor error", {"stripe_error": str(e)}) from e

    return PortalResponse(portal_url=session.url)


@router.get("/history", response_model=BillingHistoryListResponse)
async def billing_history(
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> BillingHistoryListResponse:
    """The caller's invoices, newest first."""
    entries = await subscription_service.list_billing_history(db, current_user, limit=limit)
    return BillingHistoryListResponse(items=[BillingHistoryResponse.model_validate(e) for e in entries])
