"""Subscription plan models and catalog helpers."""

from .catalog import (
    DEFAULT_PLANS,
    get_best_value_plan,
    get_cheapest_plan,
    get_plan_by_id,
    get_popular_plan,
)
from .models import PlanDuration, PurchaseInfo, SubscriptionPlan, SubscriptionStatus

__all__ = [
    "DEFAULT_PLANS",
    "get_best_value_plan",
    "get_cheapest_plan",
    "get_plan_by_id",
    "get_popular_plan",
    "PlanDuration",
    "PurchaseInfo",
    "SubscriptionPlan",
    "SubscriptionStatus",
]
