"""Discount arithmetic for promo codes."""
from __future__ import annotations

from decimal import Decimal

from ..plans.models import SubscriptionPlan
from .models import DiscountKind, DiscountRule

_ZERO = Decimal(0)
_HUNDRED = Decimal(100)


def compute_price(base_price: Decimal, discount: DiscountRule) -> Decimal:
    """Return ``base_price`` reduced by ``discount``, never below zero.

    ``free_trial`` discounts always price the first period at zero; the trial
    duration is display information only.
    """

    base = Decimal(base_price)
    if discount.kind == DiscountKind.PERCENTAGE:
        return max(_ZERO, base * (1 - discount.value / _HUNDRED))
    if discount.kind == DiscountKind.FIXED:
        return max(_ZERO, base - discount.value)
    return _ZERO


def apply_discount_to_plan(plan: SubscriptionPlan, discount: DiscountRule) -> SubscriptionPlan:
    """Derive a new discounted plan from ``plan``."""

    description = plan.description
    if discount.kind == DiscountKind.FREE_TRIAL and discount.duration:
        description = f"{plan.description} - {discount.duration} days free trial"
    return plan.model_copy(
        update={
            "price": compute_price(plan.price, discount),
            "description": description,
        }
    )


__all__ = ["apply_discount_to_plan", "compute_price"]
