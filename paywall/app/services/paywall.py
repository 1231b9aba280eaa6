"""Application wiring for the paywall engine."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Callable, Iterable, List, Optional, Sequence

from dotenv import load_dotenv

from ..clients import HttpPaywallBackend
from ..config import SESSION_STORE_POSTGRES, PaywallConfig, load_paywall_config
from ..errors import PaywallError
from ..feature_gates import PREMIUM_ENTITLEMENT
from ..plans import DEFAULT_PLANS, PlanDuration, PurchaseInfo, SubscriptionPlan, SubscriptionStatus
from ..promo_codes import InMemoryPromoCatalog, PromoCodeApplication, PromoCodeEngine, PromoCodeValidation, PromoValidationCache
from ..purchases import BillingProvider, PaywallEventHandlers, PlanProvider, PurchaseOrchestrator
from ..session import (
    InMemorySessionStore,
    PostgresSessionStore,
    SessionBootstrap,
    SessionStore,
    connection_factory_from_config,
)


logger = logging.getLogger("paywall")
events_logger = logging.getLogger("paywall.events")

_PLAN_LENGTHS = {
    PlanDuration.MONTHLY: timedelta(days=30),
    PlanDuration.YEARLY: timedelta(days=365),
}


class LocalSandboxBillingProvider:
    """Minimal billing and plan provider for local development and tests."""

    def __init__(
        self,
        plans: Iterable[SubscriptionPlan] = DEFAULT_PLANS,
        *,
        latency_seconds: float = 0.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._plans = list(plans)
        self._latency = max(latency_seconds, 0.0)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._purchases: List[PurchaseInfo] = []
        self._status = SubscriptionStatus()

    async def _simulate_latency(self) -> None:
        if self._latency:
            await asyncio.sleep(self._latency)

    async def initialize(self) -> None:
        logger.debug("Sandbox billing initialized with %s plans", len(self._plans))

    async def fetch_plans(self) -> List[SubscriptionPlan]:
        await self._simulate_latency()
        return list(self._plans)

    async def purchase(self, plan: SubscriptionPlan, promo_code: Optional[str] = None) -> PurchaseInfo:
        await self._simulate_latency()
        now = self._clock()
        length = _PLAN_LENGTHS.get(plan.duration)
        expiration = now + length if length is not None else None
        info = PurchaseInfo(
            transaction_id=f"mock_{int(now.timestamp() * 1000)}",
            product_id=plan.store_product_id,
            purchase_date=now,
            expiration_date=expiration,
            is_active=True,
            promo_code_used=promo_code,
            final_price=plan.price,
            currency=plan.currency,
        )
        self._purchases.append(info)
        self._status = SubscriptionStatus(
            is_active=True,
            entitlements=frozenset({PREMIUM_ENTITLEMENT}),
            expiration_date=expiration,
            will_renew=plan.duration != PlanDuration.LIFETIME,
            promo_code_used=promo_code,
        )
        return info

    async def restore(self) -> List[PurchaseInfo]:
        await self._simulate_latency()
        return list(self._purchases)

    async def get_status(self) -> SubscriptionStatus:
        return self._status


def logging_event_handlers() -> PaywallEventHandlers:
    """Listener set forwarding every lifecycle point to the events logger."""

    def _shown() -> None:
        events_logger.info("Paywall shown")

    def _closed() -> None:
        events_logger.info("Paywall closed")

    def _plan_selected(plan: SubscriptionPlan) -> None:
        events_logger.info("Plan selected plan=%s price=%s %s", plan.id, plan.price, plan.currency)

    def _purchase_start(plan: SubscriptionPlan) -> None:
        events_logger.info("Purchase started plan=%s price=%s", plan.id, plan.price)

    def _purchase_success(info: PurchaseInfo) -> None:
        events_logger.info(
            "Purchase completed transaction=%s product=%s price=%s promo=%s",
            info.transaction_id,
            info.product_id,
            info.final_price,
            info.promo_code_used,
        )

    def _purchase_error(error: PaywallError) -> None:
        events_logger.warning("Purchase failed code=%s message=%s", error.code.value, error.message)

    def _restore_start() -> None:
        events_logger.info("Restore started")

    def _restore_success(purchases: Sequence[PurchaseInfo]) -> None:
        events_logger.info("Restore completed purchases=%s", len(purchases))

    def _restore_error(error: PaywallError) -> None:
        events_logger.warning("Restore failed code=%s", error.code.value)

    def _promo_validated(validation: PromoCodeValidation) -> None:
        code = validation.promo_code.code if validation.promo_code else None
        events_logger.info("Promo code validated code=%s price=%s", code, validation.discounted_price)

    def _promo_applied(application: PromoCodeApplication) -> None:
        events_logger.info(
            "Promo code applied code=%s plan=%s %s -> %s",
            application.code,
            application.original_plan.id,
            application.original_plan.price,
            application.discounted_plan.price,
        )

    def _promo_removed(application: PromoCodeApplication) -> None:
        events_logger.info("Promo code removed code=%s", application.code)

    def _promo_error(error: PaywallError) -> None:
        events_logger.info("Promo code rejected code=%s message=%s", error.code.value, error.message)

    return PaywallEventHandlers(
        on_paywall_shown=_shown,
        on_paywall_close=_closed,
        on_plan_selected=_plan_selected,
        on_purchase_start=_purchase_start,
        on_purchase_success=_purchase_success,
        on_purchase_error=_purchase_error,
        on_restore_start=_restore_start,
        on_restore_success=_restore_success,
        on_restore_error=_restore_error,
        on_promo_code_validated=_promo_validated,
        on_promo_code_applied=_promo_applied,
        on_promo_code_removed=_promo_removed,
        on_promo_code_error=_promo_error,
    )


@dataclass(frozen=True)
class PaywallRuntime:
    """Process-wide paywall components built from configuration."""

    config: PaywallConfig
    engine: PromoCodeEngine
    orchestrator: PurchaseOrchestrator
    bootstrap: SessionBootstrap


def _build_session_store(config: PaywallConfig) -> SessionStore:
    if config.session_store == SESSION_STORE_POSTGRES:
        return PostgresSessionStore(connection_factory=connection_factory_from_config(config.db_config))
    return InMemorySessionStore()


def build_paywall_runtime(
    config: PaywallConfig,
    *,
    session_store: Optional[SessionStore] = None,
    handlers: Optional[PaywallEventHandlers] = None,
) -> PaywallRuntime:
    billing: BillingProvider
    plan_provider: PlanProvider
    cache = PromoValidationCache(ttl_seconds=config.effective_cache_ttl_seconds)

    if config.uses_remote_backend:
        backend = HttpPaywallBackend(
            base_url=config.backend_url,
            api_key=config.api_key,
            timeout=config.request_timeout_seconds,
        )
        billing = plan_provider = backend
        engine = PromoCodeEngine(backend=backend, cache=cache)
    else:
        sandbox = LocalSandboxBillingProvider()
        billing = plan_provider = sandbox
        engine = PromoCodeEngine(InMemoryPromoCatalog(), cache=cache)

    store = session_store if session_store is not None else _build_session_store(config)
    orchestrator = PurchaseOrchestrator(
        billing=billing,
        promo_engine=engine,
        session_store=store,
        handlers=handlers if handlers is not None else logging_event_handlers(),
        enable_promo_codes=config.enable_promo_codes,
        result_reset_delay_seconds=config.result_reset_delay_seconds,
    )
    bootstrap = SessionBootstrap(
        orchestrator=orchestrator,
        billing=billing,
        plan_provider=plan_provider,
        session_store=store,
    )
    return PaywallRuntime(config=config, engine=engine, orchestrator=orchestrator, bootstrap=bootstrap)


@lru_cache(maxsize=1)
def get_paywall_config() -> PaywallConfig:
    load_dotenv()
    config = load_paywall_config()
    if config.debug:
        logging.getLogger("paywall").setLevel(logging.DEBUG)
    return config


@lru_cache(maxsize=1)
def get_paywall_runtime() -> PaywallRuntime:
    config = get_paywall_config()
    runtime = build_paywall_runtime(config)
    logger.info(
        "Paywall configured backend=%s promo_codes=%s cache_ttl=%ss session_store=%s",
        config.backend_url or "sandbox",
        config.enable_promo_codes,
        config.effective_cache_ttl_seconds,
        config.session_store,
    )
    return runtime


__all__ = [
    "LocalSandboxBillingProvider",
    "PaywallRuntime",
    "build_paywall_runtime",
    "get_paywall_config",
    "get_paywall_runtime",
    "logging_event_handlers",
]
