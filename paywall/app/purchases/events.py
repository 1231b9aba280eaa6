"""Optional lifecycle listeners notified by the purchase orchestrator."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from ..errors import PaywallError
from ..plans.models import PurchaseInfo, SubscriptionPlan
from ..promo_codes.models import PromoCodeApplication, PromoCodeValidation


@dataclass(frozen=True)
class PaywallEventHandlers:
    """Callbacks invoked synchronously at well-defined lifecycle points.

    Every handler is optional. Handler exceptions are logged by the
    orchestrator and never change the outcome of the action that fired them.
    """

    on_paywall_shown: Optional[Callable[[], None]] = None
    on_paywall_close: Optional[Callable[[], None]] = None
    on_plan_selected: Optional[Callable[[SubscriptionPlan], None]] = None
    on_purchase_start: Optional[Callable[[SubscriptionPlan], None]] = None
    on_purchase_success: Optional[Callable[[PurchaseInfo], None]] = None
    on_purchase_error: Optional[Callable[[PaywallError], None]] = None
    on_restore_start: Optional[Callable[[], None]] = None
    on_restore_success: Optional[Callable[[Sequence[PurchaseInfo]], None]] = None
    on_restore_error: Optional[Callable[[PaywallError], None]] = None
    on_promo_code_validated: Optional[Callable[[PromoCodeValidation], None]] = None
    on_promo_code_applied: Optional[Callable[[PromoCodeApplication], None]] = None
    on_promo_code_removed: Optional[Callable[[PromoCodeApplication], None]] = None
    on_promo_code_error: Optional[Callable[[PaywallError], None]] = None


__all__ = ["PaywallEventHandlers"]
