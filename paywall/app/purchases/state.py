"""Paywall read models, tagged actions and pure transition functions."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ErrorCode, PaywallError
from ..plans.models import SubscriptionPlan
from ..promo_codes.models import PromoCodeApplication, PromoCodeValidation


class PurchaseStatus(str, Enum):
    """Purchase lifecycle: idle -> processing -> success | error -> idle."""

    IDLE = "idle"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


class PaywallState(BaseModel):
    """Paywall visibility, plan selection and purchase lifecycle."""

    is_visible: bool = Field(default=False, alias="isVisible")
    selected_plan: Optional[SubscriptionPlan] = Field(default=None, alias="selectedPlan")
    is_loading: bool = Field(default=False, alias="isLoading")
    error: Optional[str] = None
    purchase_status: PurchaseStatus = Field(default=PurchaseStatus.IDLE, alias="purchaseState")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def is_processing(self) -> bool:
        return self.purchase_status == PurchaseStatus.PROCESSING


class PromoCodeState(BaseModel):
    """Promo code entry, last validation and the live application, if any."""

    code: str = ""
    validation: Optional[PromoCodeValidation] = None
    is_applying: bool = Field(default=False, alias="isApplying")
    applied_promo: Optional[PromoCodeApplication] = Field(default=None, alias="appliedPromo")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class InvalidTransitionError(RuntimeError):
    """Raised when an action is dispatched from a state that cannot accept it."""


@dataclass(frozen=True)
class ShowPaywall:
    pass


@dataclass(frozen=True)
class HidePaywall:
    pass


@dataclass(frozen=True)
class SelectPlan:
    plan: SubscriptionPlan


@dataclass(frozen=True)
class StartPurchase:
    pass


@dataclass(frozen=True)
class PurchaseSucceeded:
    pass


@dataclass(frozen=True)
class PurchaseFailed:
    message: str


@dataclass(frozen=True)
class ResetPurchase:
    pass


@dataclass(frozen=True)
class SetLoading:
    loading: bool


@dataclass(frozen=True)
class SetError:
    message: Optional[str]


PaywallAction = Union[
    ShowPaywall,
    HidePaywall,
    SelectPlan,
    StartPurchase,
    PurchaseSucceeded,
    PurchaseFailed,
    ResetPurchase,
    SetLoading,
    SetError,
]


@dataclass(frozen=True)
class SetCode:
    code: str


@dataclass(frozen=True)
class SetValidation:
    validation: Optional[PromoCodeValidation]


@dataclass(frozen=True)
class SetApplying:
    applying: bool


@dataclass(frozen=True)
class SetAppliedPromo:
    application: Optional[PromoCodeApplication]


@dataclass(frozen=True)
class ClearPromoCode:
    pass


PromoCodeAction = Union[SetCode, SetValidation, SetApplying, SetAppliedPromo, ClearPromoCode]


def _update(state: BaseModel, **changes: object):
    return state.model_copy(update=changes)


def paywall_transition(state: PaywallState, action: PaywallAction) -> PaywallState:
    """Return the state that results from applying ``action`` to ``state``.

    Actions that violate a precondition raise :class:`PaywallError` (user
    facing) or :class:`InvalidTransitionError` (programming error) and leave
    the input state untouched.
    """

    if isinstance(action, ShowPaywall):
        return _update(state, is_visible=True, error=None)

    if isinstance(action, HidePaywall):
        if state.is_processing:
            raise PaywallError(code=ErrorCode.PURCHASE_IN_PROGRESS)
        return _update(state, is_visible=False, selected_plan=None, error=None)

    if isinstance(action, SelectPlan):
        return _update(state, selected_plan=action.plan)

    if isinstance(action, StartPurchase):
        if state.is_processing:
            raise PaywallError(code=ErrorCode.PURCHASE_IN_PROGRESS)
        if state.selected_plan is None:
            raise PaywallError(code=ErrorCode.NO_PLAN_SELECTED)
        return _update(state, purchase_status=PurchaseStatus.PROCESSING, is_loading=True, error=None)

    if isinstance(action, PurchaseSucceeded):
        if not state.is_processing:
            raise InvalidTransitionError(f"cannot succeed from {state.purchase_status.value}")
        return _update(state, purchase_status=PurchaseStatus.SUCCESS, is_loading=False)

    if isinstance(action, PurchaseFailed):
        if not state.is_processing:
            raise InvalidTransitionError(f"cannot fail from {state.purchase_status.value}")
        return _update(
            state,
            purchase_status=PurchaseStatus.ERROR,
            is_loading=False,
            error=action.message,
        )

    if isinstance(action, ResetPurchase):
        # never interrupts an in-flight purchase
        if state.is_processing:
            return state
        return _update(state, purchase_status=PurchaseStatus.IDLE)

    if isinstance(action, SetLoading):
        return _update(state, is_loading=action.loading)

    if isinstance(action, SetError):
        return _update(state, error=action.message)

    raise InvalidTransitionError(f"unknown paywall action {action!r}")


def promo_transition(state: PromoCodeState, action: PromoCodeAction) -> PromoCodeState:
    """Promo code counterpart of :func:`paywall_transition`."""

    if isinstance(action, SetCode):
        return _update(state, code=action.code)
    if isinstance(action, SetValidation):
        return _update(state, validation=action.validation)
    if isinstance(action, SetApplying):
        return _update(state, is_applying=action.applying)
    if isinstance(action, SetAppliedPromo):
        return _update(state, applied_promo=action.application)
    if isinstance(action, ClearPromoCode):
        # code, validation and application are always reset together
        return _update(state, code="", validation=None, applied_promo=None)
    raise InvalidTransitionError(f"unknown promo code action {action!r}")


__all__ = [
    "ClearPromoCode",
    "HidePaywall",
    "InvalidTransitionError",
    "PaywallAction",
    "PaywallState",
    "PromoCodeAction",
    "PromoCodeState",
    "PurchaseFailed",
    "PurchaseStatus",
    "PurchaseSucceeded",
    "ResetPurchase",
    "SelectPlan",
    "SetAppliedPromo",
    "SetApplying",
    "SetCode",
    "SetError",
    "SetLoading",
    "SetValidation",
    "ShowPaywall",
    "StartPurchase",
    "paywall_transition",
    "promo_transition",
]
