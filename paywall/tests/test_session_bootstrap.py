from __future__ import annotations

import asyncio
import re
from datetime import datetime, timezone
from typing import List, Optional

import pytest

from paywall.app.errors import ErrorCode, PaywallError
from paywall.app.plans import DEFAULT_PLANS, SubscriptionPlan, SubscriptionStatus
from paywall.app.promo_codes import InMemoryPromoCatalog, PromoCodeEngine
from paywall.app.purchases import PurchaseOrchestrator
from paywall.app.session import InMemorySessionStore, SessionBootstrap, generate_user_id

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeBilling:
    def __init__(self) -> None:
        self.initialize_calls = 0
        self.initialize_error: Optional[Exception] = None
        self.status: Optional[SubscriptionStatus] = SubscriptionStatus(
            is_active=True,
            entitlements=frozenset({"premium"}),
        )

    async def initialize(self) -> None:
        self.initialize_calls += 1
        if self.initialize_error is not None:
            raise self.initialize_error

    async def purchase(self, plan, promo_code=None):
        raise AssertionError("not used")

    async def restore(self):
        return []

    async def get_status(self) -> SubscriptionStatus:
        if self.status is None:
            raise ConnectionError("status endpoint down")
        return self.status


class FakePlanProvider:
    def __init__(self, plans: List[SubscriptionPlan]) -> None:
        self.plans = plans
        self.error: Optional[Exception] = None

    async def fetch_plans(self) -> List[SubscriptionPlan]:
        if self.error is not None:
            raise self.error
        return self.plans


@pytest.fixture
def billing() -> FakeBilling:
    return FakeBilling()


@pytest.fixture
def plans() -> FakePlanProvider:
    return FakePlanProvider(list(DEFAULT_PLANS))


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def orchestrator(billing, store) -> PurchaseOrchestrator:
    return PurchaseOrchestrator(
        billing=billing,
        promo_engine=PromoCodeEngine(InMemoryPromoCatalog()),
        session_store=store,
    )


@pytest.fixture
def bootstrap(orchestrator, billing, plans, store) -> SessionBootstrap:
    return SessionBootstrap(
        orchestrator=orchestrator,
        billing=billing,
        plan_provider=plans,
        session_store=store,
        clock=lambda: NOW,
        id_factory=lambda now: "user_fixed",
    )


def test_generated_user_id_format() -> None:
    user_id = generate_user_id(NOW)

    assert re.fullmatch(r"user_\d+_[a-z0-9]{9}", user_id)
    assert user_id.startswith(f"user_{int(NOW.timestamp() * 1000)}_")


def test_first_run_provisions_and_persists_user_id(bootstrap, orchestrator, store, billing) -> None:
    asyncio.run(bootstrap.initialize())

    assert store.get_user_id() == "user_fixed"
    assert orchestrator.user_id == "user_fixed"
    assert billing.initialize_calls == 1
    assert [plan.id for plan in orchestrator.plans] == ["monthly", "yearly", "lifetime"]
    assert orchestrator.subscription_status.is_active is True
    assert store.get_status() == orchestrator.subscription_status
    assert bootstrap.is_initialized is True


def test_existing_user_id_is_reused(bootstrap, orchestrator, store) -> None:
    store.save_user_id("user_existing")

    asyncio.run(bootstrap.initialize())

    assert orchestrator.user_id == "user_existing"


def test_cached_status_is_kept_when_refresh_fails(bootstrap, orchestrator, store, billing) -> None:
    cached = SubscriptionStatus(is_active=True, entitlements=frozenset({"export"}))
    store.save_status(cached)
    billing.status = None

    asyncio.run(bootstrap.initialize())

    assert orchestrator.subscription_status == cached
    assert orchestrator.is_feature_unlocked("export") is True


def test_plan_fetch_failure_is_typed_and_retryable(bootstrap, plans, orchestrator) -> None:
    plans.error = ConnectionError("catalog down")

    with pytest.raises(PaywallError) as exc:
        asyncio.run(bootstrap.initialize())

    assert exc.value.code == ErrorCode.PLAN_FETCH_FAILED
    assert bootstrap.is_initialized is False

    plans.error = None
    asyncio.run(bootstrap.initialize())

    assert bootstrap.is_initialized is True
    assert len(orchestrator.plans) == 3


def test_initialize_runs_once(bootstrap, billing) -> None:
    async def scenario():
        await asyncio.gather(bootstrap.initialize(), bootstrap.initialize())
        await bootstrap.initialize()

    asyncio.run(scenario())

    assert billing.initialize_calls == 1


def test_billing_initialize_failure_is_network_error(bootstrap, billing) -> None:
    billing.initialize_error = OSError("unreachable")

    with pytest.raises(PaywallError) as exc:
        asyncio.run(bootstrap.initialize())

    assert exc.value.code == ErrorCode.NETWORK_ERROR
