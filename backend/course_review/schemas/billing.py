"""Pydantic v2 request/response schemas for billing and usage endpoints."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

UsageFeature = Literal["reviews_per_month", "searches_per_day"]

# --- Request schemas ---


class CreateSubscriptionRequest(BaseModel):
    """Start a subscription on a Stripe price."""

    price_id: str = Field(..., min_length=1)
    trial_days: int = Field(0, ge=0, le=365)
    payment_method_id: str | None = None


class CancelSubscriptionRequest(BaseModel):
    """Cancel at period end by default; ``immediately`` ends it right away."""

    subscription_id: str = Field(..., min_length=1)  # Stripe subscription ID
    immediately: bool = False


class CheckoutRequest(BaseModel):
    """Request to create a Stripe Checkout session."""

    price_id: str = Field(..., min_length=1)
    success_url: str | None = None
    cancel_url: str | None = None


class PortalRequest(BaseModel):
    """Request to create a Stripe Customer Portal session."""

    return_url: str | None = None


class UsageIncrementRequest(BaseModel):
    feature: UsageFeature
    increment: int = Field(1, ge=0)


# --- Response schemas ---


class PlanResponse(BaseModel):
    """Plan details for display."""

    name: str
    display_name: str
    price_id: str | None
    amount: int
    currency: str
    interval: str | None
    features: list[str]


class PlansListResponse(BaseModel):
    """All available plans."""

    plans: list[PlanResponse]


class CreateSubscriptionResponse(BaseModel):
    subscription_id: str
    status: str
    client_secret: str | None = None
    requires_action: bool


class SubscriptionResponse(BaseModel):
    """Local mirror of a Stripe subscription."""

    id: uuid.UUID
    stripe_subscription_id: str
    status: str
    price_id: str | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    trial_end: datetime | None = None
    cancel_at_period_end: bool
    canceled_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubscriptionStatusResponse(BaseModel):
    """Premium state plus the most recent subscription, if any."""

    is_premium: bool
    premium_expires_at: datetime | None = None
    subscription: SubscriptionResponse | None = None


class CheckoutResponse(BaseModel):
    """Stripe Checkout session URL returned to frontend."""

    checkout_url: str
    session_id: str


class PortalResponse(BaseModel):
    """Stripe Customer Portal URL returned to frontend."""

    portal_url: str


class BillingHistoryResponse(BaseModel):
    id: uuid.UUID
    stripe_invoice_id: str
    amount: int
    currency: str
    status: str
    description: str | None = None
    invoice_url: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BillingHistoryListResponse(BaseModel):
    items: list[BillingHistoryResponse]


class UsageLimitResponse(BaseModel):
    """Current usage of one feature. ``limit``/``remaining`` of -1 mean unlimited."""

    feature: str
    limit: int
    used: int
    remaining: int
    reset_date: datetime
    is_premium: bool


class UsageIncrementResponse(BaseModel):
    feature: str
    allowed: bool
    limit: int
    used: int
    remaining: int
    is_premium: bool
