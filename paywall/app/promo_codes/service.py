"""Promo code engine: validation, pricing and redemption tracking."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from ..errors import ErrorCode, PaywallError, wrap_error
from ..plans.models import SubscriptionPlan
from .cache import PromoValidationCache, ValidationCache, validation_cache_key
from .catalog import PromoCatalog, PromoCodeBackend
from .discounts import apply_discount_to_plan, compute_price
from .models import (
    PromoCode,
    PromoCodeApplication,
    PromoCodeValidation,
    canonicalize_code,
    is_well_formed_code,
)

logger = logging.getLogger(__name__)


def evaluate_promo_code(
    promo_code: Optional[PromoCode],
    *,
    plan_id: Optional[str],
    plan: Optional[SubscriptionPlan],
    now: datetime,
) -> PromoCodeValidation:
    """Check a resolved promo code against the validity rules, in order.

    The first failing rule decides the outcome: unknown or inactive code,
    validity window, usage limit, then plan applicability.
    """

    if promo_code is None or not promo_code.is_active:
        return PromoCodeValidation.invalid(ErrorCode.CODE_NOT_FOUND)
    if not promo_code.is_within_window(now):
        return PromoCodeValidation.invalid(ErrorCode.CODE_EXPIRED)
    if promo_code.is_exhausted:
        return PromoCodeValidation.invalid(ErrorCode.CODE_EXHAUSTED)
    if not promo_code.applies_to(plan_id):
        return PromoCodeValidation.invalid(ErrorCode.PLAN_NOT_APPLICABLE)

    discounted_price = compute_price(plan.price, promo_code.discount) if plan is not None else None
    return PromoCodeValidation.valid(promo_code, discounted_price)


class PromoCodeEngine:
    """Validates promo codes, prices plans and records redemptions.

    Codes are checked against ``catalog`` locally unless a remote ``backend``
    is configured, in which case the backend performs the rule checks and
    owns redemption bookkeeping.
    """

    def __init__(
        self,
        catalog: Optional[PromoCatalog] = None,
        *,
        backend: Optional[PromoCodeBackend] = None,
        cache: Optional[ValidationCache] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if catalog is None and backend is None:
            raise ValueError("A promo catalog or a promo code backend is required")
        self._catalog = catalog
        self._backend = backend
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._cache = cache if cache is not None else PromoValidationCache(clock=self._clock)
        self._in_flight: Dict[str, "asyncio.Future[PromoCodeValidation]"] = {}

    @property
    def cache(self) -> ValidationCache:
        return self._cache

    async def validate(
        self,
        code: str,
        plan_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> PromoCodeValidation:
        """Return the validation outcome for ``code``; never raises for bad codes."""

        canonical = canonicalize_code(code)
        if not is_well_formed_code(canonical):
            return PromoCodeValidation.invalid(
                ErrorCode.VALIDATION_ERROR,
                "Promo codes are 3-20 letters, digits, dashes or underscores",
            )

        key = validation_cache_key(canonical, plan_id, user_id)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Returning cached validation for %s", key)
            return cached

        pending = self._in_flight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._resolve(key, canonical, plan_id, user_id))
            self._in_flight[key] = pending
            pending.add_done_callback(lambda _: self._in_flight.pop(key, None))
        return await asyncio.shield(pending)

    async def _resolve(
        self,
        key: str,
        code: str,
        plan_id: Optional[str],
        user_id: Optional[str],
    ) -> PromoCodeValidation:
        try:
            if self._backend is not None:
                validation = await self._backend.validate_code(code, plan_id, user_id)
            else:
                promo_code = await self._catalog.get_promo_code(code)
                plan = await self._catalog.get_plan(plan_id) if plan_id else None
                validation = evaluate_promo_code(
                    promo_code,
                    plan_id=plan_id,
                    plan=plan,
                    now=self._clock(),
                )
        except Exception as exc:
            logger.warning("Promo code check failed for %s: %s", code, exc)
            return PromoCodeValidation.invalid(ErrorCode.VALIDATION_ERROR)

        self._cache.set(key, validation)
        logger.info(
            "Validated promo code %s plan=%s valid=%s error=%s",
            code,
            plan_id,
            validation.is_valid,
            validation.error.value if validation.error else None,
        )
        return validation

    async def apply(
        self,
        code: str,
        plan: SubscriptionPlan,
        user_id: Optional[str] = None,
    ) -> PromoCodeApplication:
        """Validate ``code`` for ``plan`` and derive the discounted plan.

        Raises :class:`PaywallError` with ``INVALID_PROMO_CODE`` when the code
        does not validate. No orchestrator state is touched.
        """

        validation = await self.validate(code, plan.id, user_id)
        if not validation.is_valid or validation.promo_code is None:
            raise PaywallError(
                code=ErrorCode.INVALID_PROMO_CODE,
                message=validation.message or ErrorCode.INVALID_PROMO_CODE.default_message,
                detail={"reason": validation.error.value if validation.error else None},
            )

        promo_code = validation.promo_code
        discounted_plan = apply_discount_to_plan(plan, promo_code.discount)
        logger.info(
            "Promo code %s applied to plan %s: %s -> %s",
            promo_code.code,
            plan.id,
            plan.price,
            discounted_plan.price,
        )
        return PromoCodeApplication(
            promo_code=promo_code,
            original_plan=plan,
            discounted_plan=discounted_plan,
            applied_at=self._clock(),
        )

    async def redeem(self, code: str, user_id: str, purchase_id: Optional[str] = None) -> None:
        """Record usage of ``code`` by ``user_id``."""

        canonical = canonicalize_code(code)
        try:
            if self._backend is not None:
                await self._backend.redeem_code(canonical, user_id, purchase_id)
            else:
                await self._catalog.record_redemption(canonical, user_id, purchase_id)
        except Exception as exc:
            raise wrap_error(ErrorCode.REDEEM_FAILED, exc) from exc
        logger.info("Redeemed promo code %s for user %s purchase=%s", canonical, user_id, purchase_id)

    async def has_user_used(self, code: str, user_id: str) -> bool:
        """Return whether ``user_id`` already used ``code``; ``False`` on any failure."""

        canonical = canonicalize_code(code)
        try:
            if self._backend is not None:
                return bool(await self._backend.check_usage(canonical, user_id))
            return bool(await self._catalog.has_redeemed(canonical, user_id))
        except Exception as exc:
            logger.warning("Failed to check promo code usage for %s: %s", canonical, exc)
            return False

    async def list_promo_codes(
        self,
        *,
        active: Optional[bool] = None,
        plan_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[PromoCode]:
        """List catalog promo codes, for marketing and admin screens."""

        if self._backend is not None:
            return list(await self._backend.list_promo_codes(active=active, plan_id=plan_id, limit=limit))

        codes: Sequence[PromoCode] = await self._catalog.list_promo_codes()
        filtered = [
            promo
            for promo in codes
            if (active is None or promo.is_active == active)
            and (plan_id is None or promo.applies_to(plan_id))
        ]
        if limit:
            filtered = filtered[:limit]
        return filtered

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.debug("Promo code cache cleared")


__all__ = ["PromoCodeEngine", "evaluate_promo_code"]
