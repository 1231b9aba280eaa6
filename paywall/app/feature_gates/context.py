"""Convenience wrapper around a subscription status for feature gating."""
from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Optional

from ..plans.models import SubscriptionStatus
from .enforcement import is_feature_unlocked, require_feature


@dataclass(frozen=True)
class SubscriptionContext:
    """Facade exposing gating-centric helpers for a subject's subscription."""

    status: Optional[SubscriptionStatus]

    @property
    def is_active(self) -> bool:
        return bool(self.status and self.status.is_active)

    @property
    def entitlements(self) -> FrozenSet[str]:
        if self.status is None:
            return frozenset()
        return self.status.entitlements

    def has(self, feature_id: str) -> bool:
        """Return whether the feature is unlocked."""

        return is_feature_unlocked(self.status, feature_id)

    def require(self, feature_id: str, *, message: Optional[str] = None) -> None:
        """Raise ``FEATURE_LOCKED`` unless the feature is unlocked."""

        require_feature(self.status, feature_id, message=message)
