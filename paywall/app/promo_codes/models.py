"""Domain models for promo codes, validations and applications."""
from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..errors import ErrorCode
from ..plans.models import SubscriptionPlan

_WHITESPACE = re.compile(r"\s+")
PROMO_CODE_PATTERN = re.compile(r"^[A-Z0-9_-]+$")
PROMO_CODE_MIN_LENGTH = 3
PROMO_CODE_MAX_LENGTH = 20


def canonicalize_code(code: str) -> str:
    """Trim, uppercase and strip inner whitespace from a user-entered code."""

    return _WHITESPACE.sub("", code.strip().upper())


def is_well_formed_code(code: str) -> bool:
    """Return whether a canonical code satisfies the accepted format."""

    return (
        PROMO_CODE_MIN_LENGTH <= len(code) <= PROMO_CODE_MAX_LENGTH
        and PROMO_CODE_PATTERN.match(code) is not None
    )


class DiscountKind(str, Enum):
    """How a promo code reduces the plan price."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_TRIAL = "free_trial"


class DiscountRule(BaseModel):
    """A (kind, value[, duration]) triple describing a discount."""

    kind: DiscountKind = Field(alias="type")
    value: Decimal = Field(ge=0)
    duration: Optional[int] = Field(default=None, ge=1, description="Free trial length in days")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class PromoRestrictions(BaseModel):
    """Optional eligibility restrictions carried with a promo code."""

    new_customers_only: bool = Field(default=False, alias="newCustomersOnly")
    minimum_plan: Optional[str] = Field(default=None, alias="minimumPlan")
    maximum_discount: Optional[Decimal] = Field(default=None, alias="maximumDiscount", ge=0)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class PromoCode(BaseModel):
    """A promo code as stored in the catalog."""

    id: str
    code: str
    description: str = ""
    discount: DiscountRule
    max_uses: Optional[int] = Field(default=None, alias="maxUses", ge=0)
    current_uses: int = Field(default=0, alias="currentUses", ge=0)
    valid_from: datetime = Field(alias="validFrom")
    valid_until: datetime = Field(alias="validUntil")
    is_active: bool = Field(default=True, alias="isActive")
    applicable_plans: Optional[Tuple[str, ...]] = Field(default=None, alias="applicablePlans")
    restrictions: Optional[PromoRestrictions] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("code")
    @classmethod
    def _canonical_code(cls, value: str) -> str:
        return canonicalize_code(value)

    @field_validator("valid_from", "valid_until")
    @classmethod
    def _aware_datetime(cls, value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    @model_validator(mode="after")
    def _check_window(self) -> "PromoCode":
        if self.valid_until < self.valid_from:
            raise ValueError("validUntil must not precede validFrom")
        return self

    @property
    def is_exhausted(self) -> bool:
        return self.max_uses is not None and self.current_uses >= self.max_uses

    def is_within_window(self, now: datetime) -> bool:
        return self.valid_from <= now <= self.valid_until

    def applies_to(self, plan_id: Optional[str]) -> bool:
        if self.applicable_plans is None or plan_id is None:
            return True
        return plan_id in self.applicable_plans


class PromoCodeValidation(BaseModel):
    """Outcome of checking a promo code.

    When ``is_valid`` is false the promo code and discounted price are
    always absent.
    """

    is_valid: bool = Field(alias="isValid")
    promo_code: Optional[PromoCode] = Field(default=None, alias="promoCode")
    discounted_price: Optional[Decimal] = Field(default=None, alias="discountedPrice", ge=0)
    message: str = ""
    error: Optional[ErrorCode] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("error", mode="before")
    @classmethod
    def _known_error(cls, value: object) -> object:
        if value is None or isinstance(value, ErrorCode):
            return value
        try:
            return ErrorCode(str(value))
        except ValueError:
            return ErrorCode.VALIDATION_ERROR

    @model_validator(mode="after")
    def _drop_untrusted_fields(self) -> "PromoCodeValidation":
        if not self.is_valid and (self.promo_code is not None or self.discounted_price is not None):
            object.__setattr__(self, "promo_code", None)
            object.__setattr__(self, "discounted_price", None)
        return self

    @classmethod
    def valid(
        cls,
        promo_code: PromoCode,
        discounted_price: Optional[Decimal] = None,
        message: str = "Promo code applied successfully",
    ) -> "PromoCodeValidation":
        return cls(
            is_valid=True,
            promo_code=promo_code,
            discounted_price=discounted_price,
            message=message,
        )

    @classmethod
    def invalid(cls, error: ErrorCode, message: Optional[str] = None) -> "PromoCodeValidation":
        return cls(is_valid=False, error=error, message=message or error.default_message)


class PromoCodeApplication(BaseModel):
    """A validated promo code bound to the plan it discounts."""

    promo_code: PromoCode = Field(alias="promoCode")
    original_plan: SubscriptionPlan = Field(alias="originalPlan")
    discounted_plan: SubscriptionPlan = Field(alias="discountedPlan")
    applied_at: datetime = Field(
        alias="appliedAt",
        default_factory=lambda: datetime.now(timezone.utc),
    )

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def code(self) -> str:
        return self.promo_code.code


__all__ = [
    "DiscountKind",
    "DiscountRule",
    "PROMO_CODE_MAX_LENGTH",
    "PROMO_CODE_MIN_LENGTH",
    "PromoCode",
    "PromoCodeApplication",
    "PromoCodeValidation",
    "PromoRestrictions",
    "canonicalize_code",
    "is_well_formed_code",
]
