"""Promo code catalogs consumed by the promo code engine."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from ..plans.catalog import DEFAULT_PLANS
from ..plans.models import SubscriptionPlan
from .models import (
    DiscountKind,
    DiscountRule,
    PromoCode,
    PromoCodeValidation,
    PromoRestrictions,
    canonicalize_code,
)


class PromoCatalog(Protocol):
    """Local source of promo codes and plans, evaluated by the engine itself."""

    async def get_promo_code(self, code: str) -> Optional[PromoCode]:
        ...

    async def get_plan(self, plan_id: str) -> Optional[SubscriptionPlan]:
        ...

    async def list_promo_codes(self) -> Sequence[PromoCode]:
        ...

    async def record_redemption(self, code: str, user_id: str, purchase_id: Optional[str]) -> None:
        ...

    async def has_redeemed(self, code: str, user_id: str) -> bool:
        ...


class PromoCodeBackend(Protocol):
    """Remote promo code service that validates codes on its side."""

    async def validate_code(
        self,
        code: str,
        plan_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> PromoCodeValidation:
        ...

    async def redeem_code(self, code: str, user_id: str, purchase_id: Optional[str] = None) -> None:
        ...

    async def check_usage(self, code: str, user_id: str) -> bool:
        ...

    async def list_promo_codes(
        self,
        *,
        active: Optional[bool] = None,
        plan_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Sequence[PromoCode]:
        ...


DEFAULT_PROMO_CODES: Tuple[PromoCode, ...] = (
    PromoCode(
        id="1",
        code="SAVE20",
        description="Save 20% on your first subscription",
        discount=DiscountRule(kind=DiscountKind.PERCENTAGE, value=Decimal(20)),
        max_uses=1000,
        current_uses=342,
        valid_from=datetime(2024, 1, 1, tzinfo=timezone.utc),
        valid_until=datetime(2030, 12, 31, 23, 59, 59, tzinfo=timezone.utc),
        applicable_plans=("monthly", "yearly"),
        restrictions=PromoRestrictions(new_customers_only=True),
    ),
    PromoCode(
        id="2",
        code="FREEMONTH",
        description="Get your first month free",
        discount=DiscountRule(kind=DiscountKind.FREE_TRIAL, value=Decimal(30), duration=30),
        max_uses=500,
        current_uses=198,
        valid_from=datetime(2024, 1, 1, tzinfo=timezone.utc),
        valid_until=datetime(2030, 6, 30, 23, 59, 59, tzinfo=timezone.utc),
        applicable_plans=("monthly",),
        restrictions=PromoRestrictions(new_customers_only=True),
    ),
    PromoCode(
        id="3",
        code="SPECIAL50",
        description="$50 off annual subscription",
        discount=DiscountRule(kind=DiscountKind.FIXED, value=Decimal(50)),
        max_uses=200,
        current_uses=67,
        valid_from=datetime(2024, 1, 1, tzinfo=timezone.utc),
        valid_until=datetime(2030, 3, 31, 23, 59, 59, tzinfo=timezone.utc),
        applicable_plans=("yearly",),
    ),
)


class InMemoryPromoCatalog:
    """Promo catalog held in process memory, suitable for tests and the sandbox."""

    def __init__(
        self,
        promo_codes: Iterable[PromoCode] = DEFAULT_PROMO_CODES,
        plans: Iterable[SubscriptionPlan] = DEFAULT_PLANS,
        *,
        latency_seconds: float = 0.0,
    ) -> None:
        self._codes: Dict[str, PromoCode] = {promo.code: promo for promo in promo_codes}
        self._plans: Dict[str, SubscriptionPlan] = {plan.id: plan for plan in plans}
        self._redemptions: Dict[str, Set[str]] = {}
        self._latency = max(latency_seconds, 0.0)
        self.lookups = 0

    async def _simulate_latency(self) -> None:
        if self._latency:
            await asyncio.sleep(self._latency)

    def add(self, promo_code: PromoCode) -> None:
        self._codes[promo_code.code] = promo_code

    async def get_promo_code(self, code: str) -> Optional[PromoCode]:
        self.lookups += 1
        await self._simulate_latency()
        return self._codes.get(canonicalize_code(code))

    async def get_plan(self, plan_id: str) -> Optional[SubscriptionPlan]:
        return self._plans.get(plan_id)

    async def list_promo_codes(self) -> Sequence[PromoCode]:
        await self._simulate_latency()
        return list(self._codes.values())

    async def record_redemption(self, code: str, user_id: str, purchase_id: Optional[str]) -> None:
        canonical = canonicalize_code(code)
        await self._simulate_latency()
        promo = self._codes.get(canonical)
        if promo is not None:
            self._codes[canonical] = promo.model_copy(update={"current_uses": promo.current_uses + 1})
        self._redemptions.setdefault(canonical, set()).add(user_id)

    async def has_redeemed(self, code: str, user_id: str) -> bool:
        return user_id in self._redemptions.get(canonicalize_code(code), set())

    def redemptions(self, code: str) -> List[str]:
        return sorted(self._redemptions.get(canonicalize_code(code), set()))


__all__ = [
    "DEFAULT_PROMO_CODES",
    "InMemoryPromoCatalog",
    "PromoCatalog",
    "PromoCodeBackend",
]
