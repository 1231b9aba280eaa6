"""Purchase orchestrator coordinating plan selection, promo codes and billing."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, List, Optional, Protocol, Sequence

from ..errors import ErrorCode, PaywallError, wrap_error
from ..feature_gates import is_feature_unlocked
from ..plans.catalog import get_plan_by_id
from ..plans.models import PurchaseInfo, SubscriptionPlan, SubscriptionStatus
from ..promo_codes.models import PromoCodeApplication, PromoCodeValidation
from ..promo_codes.service import PromoCodeEngine
from .events import PaywallEventHandlers
from .state import (
    ClearPromoCode,
    HidePaywall,
    PaywallAction,
    PaywallState,
    PromoCodeAction,
    PromoCodeState,
    PurchaseFailed,
    PurchaseStatus,
    PurchaseSucceeded,
    ResetPurchase,
    SelectPlan,
    SetAppliedPromo,
    SetApplying,
    SetCode,
    SetError,
    SetLoading,
    SetValidation,
    ShowPaywall,
    StartPurchase,
    paywall_transition,
    promo_transition,
)

if TYPE_CHECKING:  # pragma: no cover
    from ..session.store import SessionStore

logger = logging.getLogger(__name__)


class BillingProvider(Protocol):
    """Store or payment backend that executes purchases."""

    async def initialize(self) -> None:
        ...

    async def purchase(self, plan: SubscriptionPlan, promo_code: Optional[str] = None) -> PurchaseInfo:
        ...

    async def restore(self) -> Sequence[PurchaseInfo]:
        ...

    async def get_status(self) -> SubscriptionStatus:
        ...


class PlanProvider(Protocol):
    """Source of the purchasable plan catalog."""

    async def fetch_plans(self) -> Sequence[SubscriptionPlan]:
        ...


class PurchaseOrchestrator:
    """Owns the paywall and promo code state for one user session.

    All mutations go through :meth:`_dispatch` / :meth:`_dispatch_promo`, which
    run the pure transition functions, so observers only ever see states the
    transition functions can produce.
    """

    def __init__(
        self,
        *,
        billing: BillingProvider,
        promo_engine: PromoCodeEngine,
        session_store: Optional[SessionStore] = None,
        handlers: Optional[PaywallEventHandlers] = None,
        enable_promo_codes: bool = True,
        result_reset_delay_seconds: float = 2.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._billing = billing
        self._promo_engine = promo_engine
        self._session_store = session_store
        self._handlers = handlers or PaywallEventHandlers()
        self._enable_promo_codes = enable_promo_codes
        self._reset_delay = max(result_reset_delay_seconds, 0.0)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._paywall_state = PaywallState()
        self._promo_state = PromoCodeState()
        self._status: Optional[SubscriptionStatus] = None
        self._plans: List[SubscriptionPlan] = []
        self._user_id: Optional[str] = None
        self._applying = False
        self._finalizing = False
        self._promo_ops = 0
        self._reset_handle: Optional[asyncio.TimerHandle] = None

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------
    @property
    def paywall_state(self) -> PaywallState:
        return self._paywall_state

    @property
    def promo_state(self) -> PromoCodeState:
        return self._promo_state

    @property
    def subscription_status(self) -> Optional[SubscriptionStatus]:
        return self._status

    @property
    def plans(self) -> List[SubscriptionPlan]:
        return list(self._plans)

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def promo_codes_enabled(self) -> bool:
        return self._enable_promo_codes

    def set_user_id(self, user_id: str) -> None:
        self._user_id = user_id

    def set_plans(self, plans: Sequence[SubscriptionPlan]) -> None:
        self._plans = list(plans)

    def set_subscription_status(self, status: Optional[SubscriptionStatus]) -> None:
        """Seed the status, e.g. from the session store, without persisting it."""

        self._status = status

    def is_feature_unlocked(self, feature_id: str) -> bool:
        return is_feature_unlocked(self._status, feature_id)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    def _dispatch(self, action: PaywallAction) -> PaywallState:
        self._paywall_state = paywall_transition(self._paywall_state, action)
        return self._paywall_state

    def _dispatch_promo(self, action: PromoCodeAction) -> PromoCodeState:
        self._promo_state = promo_transition(self._promo_state, action)
        return self._promo_state

    def _emit(self, name: str, *args: object) -> None:
        handler = getattr(self._handlers, name, None)
        if handler is None:
            return
        try:
            handler(*args)
        except Exception:
            logger.exception("Paywall listener %s raised", name)

    # ------------------------------------------------------------------
    # Visibility and plan selection
    # ------------------------------------------------------------------
    def show(self) -> PaywallState:
        state = self._dispatch(ShowPaywall())
        if self._session_store is not None:
            try:
                self._session_store.record_last_seen(self._clock())
            except Exception:
                logger.exception("Failed to record paywall last-seen time")
        self._emit("on_paywall_shown")
        return state

    def hide(self) -> PaywallState:
        state = self._dispatch(HidePaywall())
        self._emit("on_paywall_close")
        return state

    def select_plan(self, plan: SubscriptionPlan) -> PaywallState:
        """Select ``plan``, keeping an applied promo only for the same plan id."""

        application = self._promo_state.applied_promo
        if application is not None:
            if plan.id == application.original_plan.id:
                plan = application.discounted_plan
            else:
                self._dispatch_promo(ClearPromoCode())
                logger.info("Cleared promo code %s after switching to plan %s", application.code, plan.id)
                self._emit("on_promo_code_removed", application)

        state = self._dispatch(SelectPlan(plan))
        self._emit("on_plan_selected", plan)
        return state

    def select_plan_by_id(self, plan_id: str) -> PaywallState:
        plan = get_plan_by_id(self._plans, plan_id)
        if plan is not None:
            return self.select_plan(plan)
        raise PaywallError(
            code=ErrorCode.NO_PLAN_SELECTED,
            message=f"Unknown plan '{plan_id}'",
            detail={"plan_id": plan_id},
        )

    # ------------------------------------------------------------------
    # Purchase lifecycle
    # ------------------------------------------------------------------
    async def purchase(self) -> PurchaseInfo:
        """Buy the selected plan, with the applied promo code if any.

        Raises ``NO_PLAN_SELECTED`` without any state change when nothing is
        selected, ``PURCHASE_IN_PROGRESS`` while another purchase is running or
        still being recorded, and ``PURCHASE_FAILED`` when billing rejects the
        purchase. A successful purchase consumes the applied promo before any
        further await.
        """

        if self._finalizing:
            raise PaywallError(code=ErrorCode.PURCHASE_IN_PROGRESS)
        state = self._paywall_state
        if state.purchase_status in (PurchaseStatus.SUCCESS, PurchaseStatus.ERROR):
            state = paywall_transition(state, ResetPurchase())
        started = paywall_transition(state, StartPurchase())
        plan = started.selected_plan
        if plan is None:
            raise PaywallError(code=ErrorCode.NO_PLAN_SELECTED)
        self._paywall_state = started
        self._cancel_result_reset()

        application = self._promo_state.applied_promo
        promo_code = application.code if application is not None else None

        logger.info("Purchase started plan=%s price=%s promo=%s", plan.id, plan.price, promo_code)
        self._emit("on_purchase_start", plan)

        try:
            info = await self._billing.purchase(plan, promo_code)
        except asyncio.CancelledError:
            error = PaywallError(code=ErrorCode.PURCHASE_FAILED, message="Purchase was cancelled")
            self._dispatch(PurchaseFailed(error.message))
            logger.warning("Purchase cancelled plan=%s", plan.id)
            self._emit("on_purchase_error", error)
            self._schedule_result_reset(hide=False)
            raise
        except Exception as exc:
            error = exc if isinstance(exc, PaywallError) and exc.code == ErrorCode.PURCHASE_FAILED else None
            if error is None:
                error = wrap_error(ErrorCode.PURCHASE_FAILED, exc)
            self._dispatch(PurchaseFailed(error.message))
            logger.warning("Purchase failed plan=%s: %s", plan.id, exc)
            self._emit("on_purchase_error", error)
            self._schedule_result_reset(hide=False)
            if error is exc:
                raise
            raise error from exc

        self._dispatch(PurchaseSucceeded())
        if application is not None:
            self._consume_promo(application)
        logger.info("Purchase succeeded plan=%s transaction=%s", plan.id, info.transaction_id)

        # new purchases and promo changes wait for the bookkeeping below
        self._finalizing = True
        try:
            try:
                await self.refresh_status()
            except PaywallError as exc:
                logger.warning("Status refresh failed after purchase %s: %s", info.transaction_id, exc)

            if application is not None:
                await self._redeem(application, info)
        finally:
            self._finalizing = False

        self._emit("on_purchase_success", info)
        self._schedule_result_reset(hide=True)
        return info

    def _consume_promo(self, application: PromoCodeApplication) -> None:
        """Clear a promo consumed by a purchase and reselect the undiscounted plan."""

        self._dispatch_promo(ClearPromoCode())
        if self._paywall_state.selected_plan is not None:
            self._dispatch(SelectPlan(application.original_plan))

    def _purchase_busy(self) -> bool:
        return self._paywall_state.is_processing or self._finalizing

    async def _redeem(self, application: PromoCodeApplication, info: PurchaseInfo) -> None:
        if self._user_id is None:
            logger.warning(
                "Skipping redemption of %s: %s",
                application.code,
                ErrorCode.NOT_INITIALIZED.default_message,
            )
            return
        try:
            await self._promo_engine.redeem(application.code, self._user_id, info.transaction_id)
        except PaywallError as exc:
            logger.warning(
                "Promo code %s redemption failed for purchase %s: %s",
                application.code,
                info.transaction_id,
                exc.payload.get("cause", exc.message),
            )

    def acknowledge_result(self) -> PaywallState:
        """Return a finished purchase to ``idle``; a running purchase is untouched."""

        self._cancel_result_reset()
        return self._dispatch(ResetPurchase())

    def _schedule_result_reset(self, *, hide: bool) -> None:
        self._cancel_result_reset()
        if self._reset_delay <= 0:
            return
        loop = asyncio.get_running_loop()
        self._reset_handle = loop.call_later(self._reset_delay, self._auto_reset, hide)

    def _cancel_result_reset(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None

    def _auto_reset(self, hide: bool) -> None:
        self._reset_handle = None
        if self._paywall_state.purchase_status not in (PurchaseStatus.SUCCESS, PurchaseStatus.ERROR):
            return
        if hide and self._paywall_state.is_visible:
            self._dispatch(HidePaywall())
            self._emit("on_paywall_close")
        self._dispatch(ResetPurchase())

    async def restore(self) -> List[PurchaseInfo]:
        """Restore previous purchases and refresh the subscription status."""

        self._emit("on_restore_start")
        self._dispatch(SetLoading(True))
        try:
            purchases = list(await self._billing.restore())
        except Exception as exc:
            error = wrap_error(ErrorCode.RESTORE_FAILED, exc)
            self._dispatch(SetError(error.message))
            logger.warning("Restore failed: %s", exc)
            self._emit("on_restore_error", error)
            raise error from exc
        finally:
            if not self._paywall_state.is_processing:
                self._dispatch(SetLoading(False))

        try:
            await self.refresh_status()
        except PaywallError as exc:
            logger.warning("Status refresh failed after restore: %s", exc)

        logger.info("Restored %s purchase(s)", len(purchases))
        self._emit("on_restore_success", purchases)
        return purchases

    async def refresh_status(self) -> SubscriptionStatus:
        """Fetch the subscription status and persist it to the session store."""

        try:
            status = await self._billing.get_status()
        except Exception as exc:
            raise wrap_error(ErrorCode.STATUS_FETCH_FAILED, exc) from exc

        self._status = status
        if self._session_store is not None:
            try:
                self._session_store.save_status(status)
            except Exception:
                logger.exception("Failed to persist subscription status")
        return status

    # ------------------------------------------------------------------
    # Promo codes
    # ------------------------------------------------------------------
    def _ensure_promo_codes_enabled(self) -> None:
        if not self._enable_promo_codes:
            raise PaywallError(code=ErrorCode.PROMO_CODES_DISABLED)

    def _begin_promo_op(self) -> None:
        self._promo_ops += 1
        self._dispatch_promo(SetApplying(True))

    def _end_promo_op(self) -> None:
        self._promo_ops = max(self._promo_ops - 1, 0)
        if self._promo_ops == 0:
            self._dispatch_promo(SetApplying(False))

    def _selected_plan_id(self) -> Optional[str]:
        plan = self._paywall_state.selected_plan
        return plan.id if plan is not None else None

    async def validate_promo_code(self, code: str) -> PromoCodeValidation:
        """Check ``code`` against the selected plan without applying it.

        The result is recorded in the promo state only while the selected plan
        is still the one it was checked against.
        """

        self._ensure_promo_codes_enabled()
        plan_id = self._selected_plan_id()
        self._dispatch_promo(SetCode(code))
        self._begin_promo_op()
        try:
            validation = await self._promo_engine.validate(code, plan_id, self._user_id)
        finally:
            self._end_promo_op()

        if self._selected_plan_id() == plan_id:
            self._dispatch_promo(SetValidation(validation))
        else:
            logger.debug("Discarding stale validation of %s for plan %s", code, plan_id)

        if validation.is_valid:
            self._emit("on_promo_code_validated", validation)
        else:
            self._emit(
                "on_promo_code_error",
                PaywallError(
                    code=validation.error or ErrorCode.VALIDATION_ERROR,
                    message=validation.message,
                ),
            )
        return validation

    async def apply_promo_code(self, code: str) -> Optional[PromoCodeApplication]:
        """Apply ``code`` to the selected plan.

        A second code is priced from the original plan, never from an already
        discounted one. Returns ``None`` when the selection changed while the
        code was being checked; the result is then discarded.
        """

        self._ensure_promo_codes_enabled()
        selected = self._paywall_state.selected_plan
        if selected is None:
            error = PaywallError(code=ErrorCode.SELECT_PLAN_FIRST)
            self._emit("on_promo_code_error", error)
            raise error
        if self._purchase_busy():
            raise PaywallError(code=ErrorCode.PURCHASE_IN_PROGRESS)
        if self._applying:
            raise PaywallError(code=ErrorCode.PROMO_APPLY_IN_PROGRESS)

        current = self._promo_state.applied_promo
        base_plan = current.original_plan if current is not None else selected

        self._applying = True
        self._dispatch_promo(SetCode(code))
        self._begin_promo_op()
        try:
            application = await self._promo_engine.apply(code, base_plan, self._user_id)
        except PaywallError as exc:
            reason = (exc.detail or {}).get("reason")
            self._dispatch_promo(
                SetValidation(PromoCodeValidation.invalid(ErrorCode(reason or exc.code), exc.message))
            )
            logger.info("Promo code %s rejected for plan %s: %s", code, base_plan.id, reason or exc.code.value)
            self._emit("on_promo_code_error", exc)
            raise
        finally:
            self._applying = False
            self._end_promo_op()

        if self._selected_plan_id() != base_plan.id or self._purchase_busy():
            logger.debug("Discarding promo application %s: selection changed", application.code)
            return None

        self._dispatch_promo(
            SetValidation(PromoCodeValidation.valid(application.promo_code, application.discounted_plan.price))
        )
        self._dispatch_promo(SetAppliedPromo(application))
        self._dispatch(SelectPlan(application.discounted_plan))
        self._emit("on_promo_code_applied", application)
        return application

    def remove_promo_code(self) -> Optional[PromoCodeApplication]:
        """Drop the applied promo code and restore the original plan price."""

        if self._purchase_busy():
            raise PaywallError(code=ErrorCode.PURCHASE_IN_PROGRESS)
        application = self._promo_state.applied_promo
        self._dispatch_promo(ClearPromoCode())
        if application is not None:
            if self._paywall_state.selected_plan is not None:
                self._dispatch(SelectPlan(application.original_plan))
            logger.info("Removed promo code %s", application.code)
            self._emit("on_promo_code_removed", application)
        return application


__all__ = ["BillingProvider", "PlanProvider", "PurchaseOrchestrator"]
