"""Typed errors surfaced by the paywall core."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


class ErrorCode(str, Enum):
    """Machine-readable error codes shared by every paywall component."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    CODE_NOT_FOUND = "CODE_NOT_FOUND"
    CODE_EXPIRED = "CODE_EXPIRED"
    CODE_EXHAUSTED = "CODE_EXHAUSTED"
    PLAN_NOT_APPLICABLE = "PLAN_NOT_APPLICABLE"
    INVALID_PROMO_CODE = "INVALID_PROMO_CODE"
    NO_PLAN_SELECTED = "NO_PLAN_SELECTED"
    SELECT_PLAN_FIRST = "SELECT_PLAN_FIRST"
    PURCHASE_FAILED = "PURCHASE_FAILED"
    RESTORE_FAILED = "RESTORE_FAILED"
    PLAN_FETCH_FAILED = "PLAN_FETCH_FAILED"
    STATUS_FETCH_FAILED = "STATUS_FETCH_FAILED"
    FETCH_FAILED = "FETCH_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"
    PURCHASE_IN_PROGRESS = "PURCHASE_IN_PROGRESS"
    PROMO_APPLY_IN_PROGRESS = "PROMO_APPLY_IN_PROGRESS"
    PROMO_CODES_DISABLED = "PROMO_CODES_DISABLED"
    REDEEM_FAILED = "REDEEM_FAILED"
    FEATURE_LOCKED = "FEATURE_LOCKED"
    NOT_INITIALIZED = "NOT_INITIALIZED"

    @property
    def default_message(self) -> str:
        return _DEFAULT_MESSAGES[self]


_DEFAULT_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.VALIDATION_ERROR: "We couldn't check that promo code. Please try again.",
    ErrorCode.CODE_NOT_FOUND: "Invalid promo code",
    ErrorCode.CODE_EXPIRED: "Promo code has expired",
    ErrorCode.CODE_EXHAUSTED: "Promo code has been fully redeemed",
    ErrorCode.PLAN_NOT_APPLICABLE: "Promo code is not applicable to this plan",
    ErrorCode.INVALID_PROMO_CODE: "Invalid promo code",
    ErrorCode.NO_PLAN_SELECTED: "No plan selected",
    ErrorCode.SELECT_PLAN_FIRST: "Select a plan first",
    ErrorCode.PURCHASE_FAILED: "Purchase failed. Please try again.",
    ErrorCode.RESTORE_FAILED: "Failed to restore purchases. Please try again.",
    ErrorCode.PLAN_FETCH_FAILED: "Failed to load subscription plans",
    ErrorCode.STATUS_FETCH_FAILED: "Failed to check subscription status",
    ErrorCode.FETCH_FAILED: "Failed to load promo code data",
    ErrorCode.NETWORK_ERROR: "Network connection problem. Please try again.",
    ErrorCode.PURCHASE_IN_PROGRESS: "A purchase is already in progress",
    ErrorCode.PROMO_APPLY_IN_PROGRESS: "A promo code is already being applied",
    ErrorCode.PROMO_CODES_DISABLED: "Promo codes are not available",
    ErrorCode.REDEEM_FAILED: "Failed to redeem promo code",
    ErrorCode.FEATURE_LOCKED: "This feature requires a premium subscription",
    ErrorCode.NOT_INITIALIZED: "Paywall session has not been initialized",
}

_STATUS_CODES: Dict[ErrorCode, int] = {
    ErrorCode.NO_PLAN_SELECTED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.SELECT_PLAN_FIRST: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_PROMO_CODE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.PURCHASE_IN_PROGRESS: status.HTTP_409_CONFLICT,
    ErrorCode.PROMO_APPLY_IN_PROGRESS: status.HTTP_409_CONFLICT,
    ErrorCode.PROMO_CODES_DISABLED: status.HTTP_403_FORBIDDEN,
    ErrorCode.FEATURE_LOCKED: status.HTTP_403_FORBIDDEN,
    ErrorCode.NOT_INITIALIZED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.NETWORK_ERROR: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.PURCHASE_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.RESTORE_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.PLAN_FETCH_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.STATUS_FETCH_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.FETCH_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.REDEEM_FAILED: status.HTTP_502_BAD_GATEWAY,
}


@dataclass
class PaywallError(Exception):
    """Represents a typed paywall failure with a display-ready message."""

    code: ErrorCode
    message: str = ""
    detail: Optional[Mapping[str, Any]] = None
    status_code: Optional[int] = None

    def __post_init__(self) -> None:
        self.code = ErrorCode(self.code)
        if not self.message:
            self.message = self.code.default_message
        if self.status_code is None:
            self.status_code = _STATUS_CODES.get(self.code, status.HTTP_400_BAD_REQUEST)
        base_detail: Dict[str, Any] = {"error": self.code.value, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


def wrap_error(code: ErrorCode, exc: BaseException, message: Optional[str] = None) -> PaywallError:
    """Build a ``PaywallError`` for ``code`` that records the underlying failure."""

    detail: Dict[str, Any] = {"cause": str(exc) or type(exc).__name__}
    if isinstance(exc, PaywallError):
        detail["cause_code"] = exc.code.value
    return PaywallError(code=code, message=message or code.default_message, detail=detail)


__all__ = ["ErrorCode", "PaywallError", "wrap_error"]
