"""Static plan catalog and plan lookup helpers."""
from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence, Tuple

from .models import PlanDuration, SubscriptionPlan

DEFAULT_PLANS: Tuple[SubscriptionPlan, ...] = (
    SubscriptionPlan(
        id="monthly",
        name="Monthly Premium",
        description="Billed monthly",
        price=Decimal("9.99"),
        currency="USD",
        duration=PlanDuration.MONTHLY,
        features=(
            "Unlimited access",
            "Priority support",
            "Ad-free experience",
            "Early access to features",
        ),
        product_id="premium_monthly",
    ),
    SubscriptionPlan(
        id="yearly",
        name="Annual Premium",
        description="Best value - Save 20%",
        price=Decimal("95.99"),
        currency="USD",
        duration=PlanDuration.YEARLY,
        features=(
            "Unlimited access",
            "Priority support",
            "Ad-free experience",
            "Early access to features",
            "Exclusive content",
        ),
        original_price=Decimal("119.88"),
        discount_percentage=20,
        is_popular=True,
        product_id="premium_yearly",
    ),
    SubscriptionPlan(
        id="lifetime",
        name="Lifetime Premium",
        description="Pay once, use forever",
        price=Decimal("299.99"),
        currency="USD",
        duration=PlanDuration.LIFETIME,
        features=(
            "Lifetime unlimited access",
            "All current & future features",
            "VIP priority support",
            "Exclusive beta access",
            "Personal onboarding session",
        ),
        product_id="premium_lifetime",
    ),
)


def get_plan_by_id(plans: Sequence[SubscriptionPlan], plan_id: str) -> Optional[SubscriptionPlan]:
    for plan in plans:
        if plan.id == plan_id:
            return plan
    return None


def get_popular_plan(plans: Sequence[SubscriptionPlan]) -> Optional[SubscriptionPlan]:
    for plan in plans:
        if plan.is_popular:
            return plan
    return None


def get_cheapest_plan(plans: Sequence[SubscriptionPlan]) -> Optional[SubscriptionPlan]:
    if not plans:
        return None
    return min(plans, key=lambda plan: plan.price)


def get_best_value_plan(plans: Sequence[SubscriptionPlan]) -> Optional[SubscriptionPlan]:
    """Return the plan offering the most features per unit of price.

    Free plans rank above any paid plan with at least one feature.
    """

    if not plans:
        return None

    def _score(plan: SubscriptionPlan) -> Decimal:
        if plan.price == 0:
            return Decimal("Infinity") if plan.features else Decimal(0)
        return Decimal(len(plan.features)) / plan.price

    best = plans[0]
    for plan in plans[1:]:
        if _score(plan) > _score(best):
            best = plan
    return best


__all__ = [
    "DEFAULT_PLANS",
    "get_best_value_plan",
    "get_cheapest_plan",
    "get_plan_by_id",
    "get_popular_plan",
]
