"""Feature gating helpers driven by subscription entitlements."""

from .context import SubscriptionContext
from .enforcement import PREMIUM_ENTITLEMENT, is_feature_unlocked, require_feature

__all__ = [
    "PREMIUM_ENTITLEMENT",
    "SubscriptionContext",
    "is_feature_unlocked",
    "require_feature",
]
