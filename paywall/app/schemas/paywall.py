"""API schemas for paywall endpoints."""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..plans.models import PurchaseInfo, SubscriptionPlan, SubscriptionStatus
from ..promo_codes.models import PromoCodeApplication, PromoCodeValidation
from ..purchases import PaywallState, PromoCodeState, PurchaseOrchestrator


class PlanSelectionRequest(BaseModel):
    plan_id: str = Field(alias="planId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class PromoCodeRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)

    model_config = ConfigDict(populate_by_name=True)


class PaywallStateResponse(BaseModel):
    paywall: PaywallState
    promo_code: PromoCodeState = Field(alias="promoCode")
    subscription_status: Optional[SubscriptionStatus] = Field(alias="subscriptionStatus", default=None)
    user_id: Optional[str] = Field(alias="userId", default=None)
    promo_codes_enabled: bool = Field(alias="promoCodesEnabled", default=True)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_orchestrator(cls, orchestrator: PurchaseOrchestrator) -> "PaywallStateResponse":
        return cls(
            paywall=orchestrator.paywall_state,
            promo_code=orchestrator.promo_state,
            subscription_status=orchestrator.subscription_status,
            user_id=orchestrator.user_id,
            promo_codes_enabled=orchestrator.promo_codes_enabled,
        )


class PlanListResponse(BaseModel):
    plans: List[SubscriptionPlan]

    model_config = ConfigDict(populate_by_name=True)


class FeatureAccessResponse(BaseModel):
    feature_id: str = Field(alias="featureId")
    unlocked: bool

    model_config = ConfigDict(populate_by_name=True)


class PurchaseResponse(BaseModel):
    purchase: PurchaseInfo
    state: PaywallStateResponse

    model_config = ConfigDict(populate_by_name=True)


class RestoreResponse(BaseModel):
    purchases: List[PurchaseInfo]
    state: PaywallStateResponse

    model_config = ConfigDict(populate_by_name=True)


class PromoValidationResponse(BaseModel):
    validation: PromoCodeValidation
    state: PaywallStateResponse

    model_config = ConfigDict(populate_by_name=True)


class PromoApplicationResponse(BaseModel):
    application: Optional[PromoCodeApplication] = None
    state: PaywallStateResponse

    model_config = ConfigDict(populate_by_name=True)


class SubscriptionStatusResponse(BaseModel):
    status: SubscriptionStatus

    model_config = ConfigDict(populate_by_name=True)
