"""Paywall purchase lifecycle: state machine, listeners and orchestrator."""

from .events import PaywallEventHandlers
from .service import BillingProvider, PlanProvider, PurchaseOrchestrator
from .state import (
    InvalidTransitionError,
    PaywallState,
    PromoCodeState,
    PurchaseStatus,
    paywall_transition,
    promo_transition,
)

__all__ = [
    "BillingProvider",
    "InvalidTransitionError",
    "PaywallEventHandlers",
    "PaywallState",
    "PlanProvider",
    "PromoCodeState",
    "PurchaseOrchestrator",
    "PurchaseStatus",
    "paywall_transition",
    "promo_transition",
]
