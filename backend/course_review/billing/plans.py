"""Plan definitions — the free tier and the premium prices sold through Stripe."""

from dataclasses import dataclass

from course_review.config import settings


@dataclass(frozen=True)
class Plan:
    """A purchasable (or free) tier."""

    name: str
    display_name: str
    stripe_price_id: str | None  # None for free tier
    amount: int  # JPY, no minor unit
    currency: str
    interval: str | None  # "month", "year", None for free
    features: tuple[str, ...]


_PREMIUM_FEATURES = (
    "Unlimited reviews",
    "Unlimited searches",
    "Advanced search filters",
    "Detailed course analytics",
)

PLANS: dict[str, Plan] = {
    "free": Plan(
        name="free",
        display_name="Free",
        stripe_price_id=None,
        amount=0,
        currency="jpy",
        interval=None,
        features=(
            f"{settings.free_reviews_per_month} reviews per month",
            f"{settings.free_searches_per_day} searches per day",
        ),
    ),
    "premium_monthly": Plan(
        name="premium_monthly",
        display_name="Premium (monthly)",
        stripe_price_id=settings.stripe_premium_monthly_price_id or None,
        amount=980,
        currency="jpy",
        interval="month",
        features=_PREMIUM_FEATURES,
    ),
    "premium_yearly": Plan(
        name="premium_yearly",
        display_name="Premium (yearly)",
        stripe_price_id=settings.stripe_premium_yearly_price_id or None,
        amount=9800,
        currency="jpy",
        interval="year",
        features=_PREMIUM_FEATURES,
    ),
}


def get_plan_by_price_id(price_id: str | None) -> Plan | None:
    """Reverse lookup: Stripe price ID -> plan. Returns None if not found."""
    if not price_id:
        return None
    for plan in PLANS.values():
        if plan.stripe_price_id and plan.stripe_price_id == price_id:
            return plan
    return None


def monthly_amount(plan: Plan) -> float:
    """Normalise a plan's price to one month, for MRR."""
    if plan.interval == "year":
        return plan.amount / 12
    return float(plan.amount)
