"""Helpers for gating premium features on the current subscription status."""
from __future__ import annotations

from typing import Optional

from ..errors import ErrorCode, PaywallError
from ..plans.models import SubscriptionStatus

PREMIUM_ENTITLEMENT = "premium"


def is_feature_unlocked(status: Optional[SubscriptionStatus], feature_id: str) -> bool:
    """Return whether ``feature_id`` is available under ``status``.

    A feature is unlocked only for an active subscription that carries either
    the feature's own entitlement or the blanket ``premium`` entitlement.
    """

    if status is None or not status.is_active:
        return False
    return feature_id in status.entitlements or PREMIUM_ENTITLEMENT in status.entitlements


def require_feature(
    status: Optional[SubscriptionStatus],
    feature_id: str,
    *,
    message: str | None = None,
) -> None:
    """Ensure a feature is unlocked before proceeding.

    Parameters
    ----------
    status:
        The subscription status last reported by the billing collaborator, or
        ``None`` when it has not been loaded yet.
    feature_id:
        The entitlement identifier guarding the feature.
    message:
        Optional human-friendly message explaining the failure. Defaults to
        the ``FEATURE_LOCKED`` message.
    """

    if not is_feature_unlocked(status, feature_id):
        raise PaywallError(
            code=ErrorCode.FEATURE_LOCKED,
            message=message or "",
            detail={"missing_entitlement": feature_id},
        )
