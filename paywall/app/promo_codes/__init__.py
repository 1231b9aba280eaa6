"""Promo code domain: models, discount math, validation cache and engine."""

from .cache import DEFAULT_TTL_SECONDS, PromoValidationCache, ValidationCache, validation_cache_key
from .catalog import DEFAULT_PROMO_CODES, InMemoryPromoCatalog, PromoCatalog, PromoCodeBackend
from .discounts import apply_discount_to_plan, compute_price
from .models import (
    DiscountKind,
    DiscountRule,
    PromoCode,
    PromoCodeApplication,
    PromoCodeValidation,
    PromoRestrictions,
    canonicalize_code,
    is_well_formed_code,
)
from .service import PromoCodeEngine, evaluate_promo_code

__all__ = [
    "DEFAULT_TTL_SECONDS",
    "PromoValidationCache",
    "ValidationCache",
    "validation_cache_key",
    "DEFAULT_PROMO_CODES",
    "InMemoryPromoCatalog",
    "PromoCatalog",
    "PromoCodeBackend",
    "apply_discount_to_plan",
    "compute_price",
    "DiscountKind",
    "DiscountRule",
    "PromoCode",
    "PromoCodeApplication",
    "PromoCodeValidation",
    "PromoRestrictions",
    "canonicalize_code",
    "is_well_formed_code",
    "PromoCodeEngine",
    "evaluate_promo_code",
]
