from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

import pytest

from paywall.app.errors import ErrorCode, PaywallError
from paywall.app.plans import DEFAULT_PLANS, get_plan_by_id
from paywall.app.promo_codes import (
    DEFAULT_PROMO_CODES,
    DiscountKind,
    DiscountRule,
    InMemoryPromoCatalog,
    PromoCode,
    PromoCodeEngine,
    PromoCodeValidation,
    PromoValidationCache,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class UnreachableCatalog(InMemoryPromoCatalog):
    async def get_promo_code(self, code: str) -> Optional[PromoCode]:
        self.lookups += 1
        raise ConnectionError("catalog unreachable")

    async def record_redemption(self, code: str, user_id: str, purchase_id: Optional[str]) -> None:
        raise ConnectionError("catalog unreachable")

    async def has_redeemed(self, code: str, user_id: str) -> bool:
        raise ConnectionError("catalog unreachable")


class FakePromoBackend:
    def __init__(self, validation: PromoCodeValidation) -> None:
        self.validation = validation
        self.validate_calls: List[Tuple[str, Optional[str], Optional[str]]] = []
        self.redeem_calls: List[Tuple[str, str, Optional[str]]] = []

    async def validate_code(self, code, plan_id=None, user_id=None) -> PromoCodeValidation:
        self.validate_calls.append((code, plan_id, user_id))
        return self.validation

    async def redeem_code(self, code, user_id, purchase_id=None) -> None:
        self.redeem_calls.append((code, user_id, purchase_id))

    async def check_usage(self, code, user_id) -> bool:
        return True

    async def list_promo_codes(self, *, active=None, plan_id=None, limit=None):
        return list(DEFAULT_PROMO_CODES)[: limit or None]


def _promo(code: str, **overrides) -> PromoCode:
    values = dict(
        id=code.lower(),
        code=code,
        discount=DiscountRule(kind=DiscountKind.PERCENTAGE, value=Decimal(10)),
        valid_from=datetime(2026, 1, 1, tzinfo=timezone.utc),
        valid_until=datetime(2026, 12, 31, tzinfo=timezone.utc),
    )
    values.update(overrides)
    return PromoCode(**values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def catalog() -> InMemoryPromoCatalog:
    return InMemoryPromoCatalog()


@pytest.fixture
def engine(catalog: InMemoryPromoCatalog, clock: FakeClock) -> PromoCodeEngine:
    return PromoCodeEngine(catalog, cache=PromoValidationCache(ttl_seconds=300, clock=clock), clock=clock)


def test_save20_on_monthly_plan_is_discounted(engine: PromoCodeEngine) -> None:
    validation = asyncio.run(engine.validate("SAVE20", "monthly"))

    assert validation.is_valid is True
    assert validation.error is None
    assert validation.promo_code is not None and validation.promo_code.code == "SAVE20"
    assert validation.discounted_price == Decimal("7.992")


def test_code_is_canonicalized_before_lookup(engine: PromoCodeEngine) -> None:
    validation = asyncio.run(engine.validate("  save 20 ", "monthly"))

    assert validation.is_valid is True


def test_plan_restricted_code_is_not_applicable(engine: PromoCodeEngine) -> None:
    validation = asyncio.run(engine.validate("SPECIAL50", "monthly"))

    assert validation.is_valid is False
    assert validation.error == ErrorCode.PLAN_NOT_APPLICABLE
    assert validation.promo_code is None
    assert validation.discounted_price is None


def test_unknown_code_is_not_found(engine: PromoCodeEngine) -> None:
    validation = asyncio.run(engine.validate("NOPE123"))

    assert validation.error == ErrorCode.CODE_NOT_FOUND
    assert validation.message == "Invalid promo code"


def test_inactive_code_is_not_found(engine: PromoCodeEngine, catalog: InMemoryPromoCatalog) -> None:
    catalog.add(_promo("PAUSED", is_active=False))

    validation = asyncio.run(engine.validate("PAUSED"))

    assert validation.error == ErrorCode.CODE_NOT_FOUND


def test_code_outside_validity_window_is_expired(engine: PromoCodeEngine, catalog: InMemoryPromoCatalog) -> None:
    catalog.add(_promo("OLDCODE", valid_until=datetime(2026, 5, 31, tzinfo=timezone.utc)))
    catalog.add(_promo("FUTURE", valid_from=datetime(2026, 7, 1, tzinfo=timezone.utc)))

    assert asyncio.run(engine.validate("OLDCODE")).error == ErrorCode.CODE_EXPIRED
    assert asyncio.run(engine.validate("FUTURE")).error == ErrorCode.CODE_EXPIRED


def test_exhausted_code_is_rejected_even_when_in_window(engine: PromoCodeEngine, catalog: InMemoryPromoCatalog) -> None:
    catalog.add(_promo("USEDUP", max_uses=5, current_uses=5))

    validation = asyncio.run(engine.validate("USEDUP", "monthly"))

    assert validation.is_valid is False
    assert validation.error == ErrorCode.CODE_EXHAUSTED


def test_expiry_is_checked_before_usage_limit(engine: PromoCodeEngine, catalog: InMemoryPromoCatalog) -> None:
    catalog.add(
        _promo(
            "STALE",
            max_uses=1,
            current_uses=1,
            valid_until=datetime(2026, 1, 31, tzinfo=timezone.utc),
        )
    )

    assert asyncio.run(engine.validate("STALE")).error == ErrorCode.CODE_EXPIRED


def test_malformed_code_never_reaches_catalog(engine: PromoCodeEngine, catalog: InMemoryPromoCatalog) -> None:
    for code in ("AB", "X" * 21, "SAVE$20"):
        validation = asyncio.run(engine.validate(code))
        assert validation.error == ErrorCode.VALIDATION_ERROR

    assert catalog.lookups == 0


def test_repeated_validation_is_served_from_cache(engine: PromoCodeEngine, catalog: InMemoryPromoCatalog) -> None:
    first = asyncio.run(engine.validate("SAVE20", "monthly", "user-1"))
    second = asyncio.run(engine.validate("SAVE20", "monthly", "user-1"))

    assert second == first
    assert second.model_dump() == first.model_dump()
    assert catalog.lookups == 1


def test_negative_results_are_cached(engine: PromoCodeEngine, catalog: InMemoryPromoCatalog) -> None:
    asyncio.run(engine.validate("SPECIAL50", "monthly"))
    asyncio.run(engine.validate("SPECIAL50", "monthly"))

    assert catalog.lookups == 1


def test_validation_is_requeried_after_ttl(engine: PromoCodeEngine, catalog: InMemoryPromoCatalog, clock: FakeClock) -> None:
    asyncio.run(engine.validate("SAVE20", "monthly"))
    clock.advance(301)
    asyncio.run(engine.validate("SAVE20", "monthly"))

    assert catalog.lookups == 2


def test_different_plans_are_cached_separately(engine: PromoCodeEngine, catalog: InMemoryPromoCatalog) -> None:
    asyncio.run(engine.validate("SAVE20", "monthly"))
    asyncio.run(engine.validate("SAVE20", "yearly"))

    assert catalog.lookups == 2


def test_clear_cache_forces_new_lookup(engine: PromoCodeEngine, catalog: InMemoryPromoCatalog) -> None:
    asyncio.run(engine.validate("SAVE20", "monthly"))
    engine.clear_cache()
    asyncio.run(engine.validate("SAVE20", "monthly"))

    assert catalog.lookups == 2


def test_concurrent_validations_share_one_lookup(clock: FakeClock) -> None:
    catalog = InMemoryPromoCatalog(latency_seconds=0.01)
    engine = PromoCodeEngine(catalog, clock=clock)

    async def scenario():
        return await asyncio.gather(
            engine.validate("SAVE20", "monthly"),
            engine.validate("save20", "monthly"),
        )

    first, second = asyncio.run(scenario())

    assert first == second
    assert catalog.lookups == 1


def test_catalog_failure_resolves_to_uncached_validation_error(clock: FakeClock) -> None:
    catalog = UnreachableCatalog()
    cache = PromoValidationCache(clock=clock)
    engine = PromoCodeEngine(catalog, cache=cache, clock=clock)

    validation = asyncio.run(engine.validate("SAVE20", "monthly"))

    assert validation.is_valid is False
    assert validation.error == ErrorCode.VALIDATION_ERROR
    assert len(cache) == 0


def test_apply_returns_discounted_application(engine: PromoCodeEngine, clock: FakeClock) -> None:
    monthly = get_plan_by_id(DEFAULT_PLANS, "monthly")

    application = asyncio.run(engine.apply("SAVE20", monthly, "user-1"))

    assert application.code == "SAVE20"
    assert application.original_plan == monthly
    assert application.discounted_plan.price == Decimal("7.992")
    assert application.applied_at == clock.now


def test_apply_reuses_cached_validation(engine: PromoCodeEngine, catalog: InMemoryPromoCatalog) -> None:
    monthly = get_plan_by_id(DEFAULT_PLANS, "monthly")

    asyncio.run(engine.validate("SAVE20", monthly.id, "user-1"))
    asyncio.run(engine.apply("SAVE20", monthly, "user-1"))

    assert catalog.lookups == 1


def test_apply_raises_invalid_promo_code_with_reason(engine: PromoCodeEngine) -> None:
    monthly = get_plan_by_id(DEFAULT_PLANS, "monthly")

    with pytest.raises(PaywallError) as exc:
        asyncio.run(engine.apply("SPECIAL50", monthly))

    assert exc.value.code == ErrorCode.INVALID_PROMO_CODE
    assert exc.value.payload["reason"] == "PLAN_NOT_APPLICABLE"
    assert exc.value.message == "Promo code is not applicable to this plan"


def test_redeem_records_usage(engine: PromoCodeEngine, catalog: InMemoryPromoCatalog) -> None:
    asyncio.run(engine.redeem("save20", "user-1", "txn-1"))

    assert catalog.redemptions("SAVE20") == ["user-1"]
    assert asyncio.run(engine.has_user_used("SAVE20", "user-1")) is True
    assert asyncio.run(engine.has_user_used("SAVE20", "user-2")) is False


def test_redeem_failure_is_typed(clock: FakeClock) -> None:
    engine = PromoCodeEngine(UnreachableCatalog(), clock=clock)

    with pytest.raises(PaywallError) as exc:
        asyncio.run(engine.redeem("SAVE20", "user-1"))

    assert exc.value.code == ErrorCode.REDEEM_FAILED
    assert exc.value.payload["cause"] == "catalog unreachable"


def test_has_user_used_fails_open(clock: FakeClock) -> None:
    engine = PromoCodeEngine(UnreachableCatalog(), clock=clock)

    assert asyncio.run(engine.has_user_used("SAVE20", "user-1")) is False


def test_list_promo_codes_filters_by_plan_and_limit(engine: PromoCodeEngine, catalog: InMemoryPromoCatalog) -> None:
    catalog.add(_promo("PAUSED", is_active=False))

    yearly = asyncio.run(engine.list_promo_codes(plan_id="yearly"))
    active = asyncio.run(engine.list_promo_codes(active=True))
    limited = asyncio.run(engine.list_promo_codes(limit=2))

    assert [promo.code for promo in yearly] == ["SAVE20", "SPECIAL50", "PAUSED"]
    assert "PAUSED" not in [promo.code for promo in active]
    assert len(limited) == 2


def test_backend_validation_replaces_local_rules(clock: FakeClock) -> None:
    backend = FakePromoBackend(PromoCodeValidation.invalid(ErrorCode.CODE_EXPIRED))
    catalog = InMemoryPromoCatalog()
    engine = PromoCodeEngine(catalog, backend=backend, clock=clock)

    validation = asyncio.run(engine.validate("save20", "monthly", "user-1"))
    asyncio.run(engine.redeem("SAVE20", "user-1", "txn-9"))

    assert validation.error == ErrorCode.CODE_EXPIRED
    assert backend.validate_calls == [("SAVE20", "monthly", "user-1")]
    assert backend.redeem_calls == [("SAVE20", "user-1", "txn-9")]
    assert catalog.lookups == 0


def test_engine_requires_a_source() -> None:
    with pytest.raises(ValueError):
        PromoCodeEngine()
