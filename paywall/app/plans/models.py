"""Domain models for subscription plans and subscription status."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PlanDuration(str, Enum):
    """Billing period of a purchasable plan."""

    MONTHLY = "monthly"
    YEARLY = "yearly"
    LIFETIME = "lifetime"


class SubscriptionPlan(BaseModel):
    """A purchasable subscription tier.

    Plans are immutable values. A discounted plan is derived with
    ``model_copy`` and never replaces the base plan in place.
    """

    id: str
    name: str
    description: str = ""
    price: Decimal = Field(ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    duration: PlanDuration
    features: Tuple[str, ...] = Field(default_factory=tuple)
    original_price: Optional[Decimal] = Field(default=None, alias="originalPrice", ge=0)
    discount_percentage: Optional[int] = Field(default=None, alias="discountPercentage", ge=0, le=100)
    is_popular: bool = Field(default=False, alias="isPopular")
    product_id: Optional[str] = Field(default=None, alias="productId")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()

    @property
    def store_product_id(self) -> str:
        """Identifier sent to the store, falling back to the plan id."""

        return self.product_id or self.id


class SubscriptionStatus(BaseModel):
    """Current entitlement state reported by the billing collaborator."""

    is_active: bool = Field(default=False, alias="isActive")
    entitlements: FrozenSet[str] = Field(default_factory=frozenset)
    expiration_date: Optional[datetime] = Field(default=None, alias="expirationDate")
    will_renew: bool = Field(default=False, alias="willRenew")
    trial_period: bool = Field(default=False, alias="trialPeriod")
    promo_code_used: Optional[str] = Field(default=None, alias="promoCodeUsed")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class PurchaseInfo(BaseModel):
    """Receipt of a completed purchase."""

    transaction_id: str = Field(alias="transactionId")
    product_id: str = Field(alias="productId")
    purchase_date: datetime = Field(alias="purchaseDate")
    expiration_date: Optional[datetime] = Field(default=None, alias="expirationDate")
    is_active: bool = Field(default=True, alias="isActive")
    promo_code_used: Optional[str] = Field(default=None, alias="promoCodeUsed")
    original_price: Optional[Decimal] = Field(default=None, alias="originalPrice", ge=0)
    final_price: Decimal = Field(alias="finalPrice", ge=0)
    currency: str = "USD"

    model_config = ConfigDict(populate_by_name=True, frozen=True)


__all__ = ["PlanDuration", "PurchaseInfo", "SubscriptionPlan", "SubscriptionStatus"]
