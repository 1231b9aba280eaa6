"""One-time session initialization feeding the purchase orchestrator."""
from __future__ import annotations

import asyncio
import logging
import secrets
import string
from datetime import datetime, timezone
from typing import Callable, Optional

from ..errors import ErrorCode, PaywallError, wrap_error
from ..purchases.service import BillingProvider, PlanProvider, PurchaseOrchestrator
from .store import SessionStore

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_user_id(now: datetime) -> str:
    """Return an anonymous per-device id such as ``user_1718000000000_k3j9x0a1b``."""

    millis = int(now.timestamp() * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"user_{millis}_{suffix}"


class SessionBootstrap:
    """Provisions the user id, hydrates cached status and loads plans.

    ``initialize`` is idempotent: once it has succeeded further calls return
    immediately, and concurrent callers wait for the same run. A failed run
    can be retried.
    """

    def __init__(
        self,
        *,
        orchestrator: PurchaseOrchestrator,
        billing: BillingProvider,
        plan_provider: PlanProvider,
        session_store: SessionStore,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[datetime], str]] = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._billing = billing
        self._plan_provider = plan_provider
        self._session_store = session_store
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._id_factory = id_factory or generate_user_id
        self._lock = asyncio.Lock()
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> PurchaseOrchestrator:
        async with self._lock:
            if not self._initialized:
                await self._run()
                self._initialized = True
        return self._orchestrator

    async def _run(self) -> None:
        try:
            await self._billing.initialize()
        except PaywallError:
            raise
        except Exception as exc:
            raise wrap_error(ErrorCode.NETWORK_ERROR, exc) from exc

        user_id = self._session_store.get_user_id()
        if not user_id:
            user_id = self._id_factory(self._clock())
            self._session_store.save_user_id(user_id)
            logger.info("Provisioned paywall user %s", user_id)
        self._orchestrator.set_user_id(user_id)

        cached_status = self._session_store.get_status()
        if cached_status is not None:
            self._orchestrator.set_subscription_status(cached_status)

        try:
            await self._orchestrator.refresh_status()
        except PaywallError as exc:
            logger.warning(
                "Status refresh failed during bootstrap, using %s status: %s",
                "cached" if cached_status is not None else "no",
                exc,
            )

        try:
            plans = await self._plan_provider.fetch_plans()
        except Exception as exc:
            raise wrap_error(ErrorCode.PLAN_FETCH_FAILED, exc) from exc
        self._orchestrator.set_plans(plans)
        logger.info("Paywall session ready user=%s plans=%s", user_id, len(plans))


__all__ = ["SessionBootstrap", "generate_user_id"]
