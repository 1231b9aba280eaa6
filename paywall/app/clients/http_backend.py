"""HTTP client for a remote paywall backend (plans, billing and promo codes)."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from ..errors import ErrorCode, PaywallError, wrap_error
from ..plans.models import PurchaseInfo, SubscriptionPlan, SubscriptionStatus
from ..promo_codes.models import PromoCode, PromoCodeValidation

logger = logging.getLogger(__name__)


class HttpPaywallBackend:
    """
    Client wrapper for the paywall REST backend.
    - Implements the plan, billing and promo code collaborators in one place.
    - Every call carries ``Authorization: Bearer <api_key>``; keep the key out of logs.
    - Transport failures raise ``NETWORK_ERROR``; non-2xx responses raise the
      operation's own error code.
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str = "",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        error_code: ErrorCode,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self._base}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                r = await client.request(method, url, headers=self._headers(), json=json, params=params)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise wrap_error(ErrorCode.NETWORK_ERROR, exc) from exc

        if r.is_error:
            message = ""
            try:
                body = r.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                message = str(body.get("message") or "")
            logger.warning("%s %s returned HTTP %s", method, path, r.status_code)
            raise PaywallError(
                code=error_code,
                message=message,
                detail={"status": r.status_code},
            )

        if not r.content:
            return None
        try:
            return r.json()
        except ValueError as exc:
            raise wrap_error(error_code, exc) from exc

    async def initialize(self) -> None:
        """GET /health; raises ``NETWORK_ERROR`` when the backend is unreachable."""

        await self._request("GET", "/health", error_code=ErrorCode.NETWORK_ERROR)
        logger.info("Paywall backend reachable at %s", self._base)

    async def fetch_plans(self) -> List[SubscriptionPlan]:
        data = await self._request("GET", "/plans", error_code=ErrorCode.PLAN_FETCH_FAILED)
        items = data.get("plans", []) if isinstance(data, dict) else data or []
        try:
            return [SubscriptionPlan.model_validate(item) for item in items]
        except ValidationError as exc:
            raise wrap_error(ErrorCode.PLAN_FETCH_FAILED, exc) from exc

    async def get_status(self) -> SubscriptionStatus:
        data = await self._request("GET", "/subscription/status", error_code=ErrorCode.STATUS_FETCH_FAILED)
        try:
            return SubscriptionStatus.model_validate(data or {})
        except ValidationError as exc:
            raise wrap_error(ErrorCode.STATUS_FETCH_FAILED, exc) from exc

    async def purchase(self, plan: SubscriptionPlan, promo_code: Optional[str] = None) -> PurchaseInfo:
        """
        POST /purchase
        payload: {"planId": "monthly", "productId": "monthly", "promoCode": "SAVE20"}
        """
        payload = {"planId": plan.id, "productId": plan.store_product_id, "promoCode": promo_code}
        data = await self._request("POST", "/purchase", error_code=ErrorCode.PURCHASE_FAILED, json=payload)
        try:
            return PurchaseInfo.model_validate(data)
        except ValidationError as exc:
            raise wrap_error(ErrorCode.PURCHASE_FAILED, exc) from exc

    async def restore(self) -> List[PurchaseInfo]:
        data = await self._request("POST", "/restore", error_code=ErrorCode.RESTORE_FAILED)
        items = data.get("purchases", []) if isinstance(data, dict) else data or []
        try:
            return [PurchaseInfo.model_validate(item) for item in items]
        except ValidationError as exc:
            raise wrap_error(ErrorCode.RESTORE_FAILED, exc) from exc

    async def validate_code(
        self,
        code: str,
        plan_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> PromoCodeValidation:
        payload = {"code": code, "planId": plan_id, "userId": user_id}
        data = await self._request(
            "POST",
            "/promo-codes/validate",
            error_code=ErrorCode.VALIDATION_ERROR,
            json=payload,
        )
        try:
            return PromoCodeValidation.model_validate(data)
        except ValidationError as exc:
            raise wrap_error(ErrorCode.VALIDATION_ERROR, exc) from exc

    async def redeem_code(self, code: str, user_id: str, purchase_id: Optional[str] = None) -> None:
        payload = {"code": code, "userId": user_id, "purchaseId": purchase_id}
        await self._request("POST", "/promo-codes/redeem", error_code=ErrorCode.REDEEM_FAILED, json=payload)

    async def check_usage(self, code: str, user_id: str) -> bool:
        data = await self._request(
            "POST",
            "/promo-codes/check-usage",
            error_code=ErrorCode.FETCH_FAILED,
            json={"code": code, "userId": user_id},
        )
        return bool(isinstance(data, dict) and data.get("hasUsed"))

    async def list_promo_codes(
        self,
        *,
        active: Optional[bool] = None,
        plan_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Sequence[PromoCode]:
        params: Dict[str, Any] = {}
        if active is not None:
            params["active"] = "true" if active else "false"
        if plan_id:
            params["planId"] = plan_id
        if limit:
            params["limit"] = limit
        data = await self._request(
            "GET",
            "/promo-codes",
            error_code=ErrorCode.FETCH_FAILED,
            params=params or None,
        )
        items = data.get("promoCodes", []) if isinstance(data, dict) else data or []
        try:
            return [PromoCode.model_validate(item) for item in items]
        except ValidationError as exc:
            raise wrap_error(ErrorCode.FETCH_FAILED, exc) from exc


__all__ = ["HttpPaywallBackend"]
