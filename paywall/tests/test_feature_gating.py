from __future__ import annotations

import pytest

from paywall.app.errors import ErrorCode, PaywallError
from paywall.app.feature_gates import SubscriptionContext, is_feature_unlocked, require_feature
from paywall.app.plans import SubscriptionStatus


@pytest.fixture
def premium_status() -> SubscriptionStatus:
    return SubscriptionStatus(is_active=True, entitlements=frozenset({"premium"}))


def test_premium_entitlement_unlocks_every_feature(premium_status: SubscriptionStatus) -> None:
    assert is_feature_unlocked(premium_status, "offline_mode") is True
    assert is_feature_unlocked(premium_status, "export") is True


def test_specific_entitlement_unlocks_only_that_feature() -> None:
    status = SubscriptionStatus(is_active=True, entitlements=frozenset({"export"}))

    assert is_feature_unlocked(status, "export") is True
    assert is_feature_unlocked(status, "offline_mode") is False


def test_inactive_subscription_unlocks_nothing() -> None:
    status = SubscriptionStatus(is_active=False, entitlements=frozenset({"premium", "export"}))

    assert is_feature_unlocked(status, "export") is False
    assert is_feature_unlocked(None, "export") is False


def test_require_feature_raises_feature_locked() -> None:
    with pytest.raises(PaywallError) as exc:
        require_feature(SubscriptionStatus(), "export")

    assert exc.value.code == ErrorCode.FEATURE_LOCKED
    assert exc.value.payload["missing_entitlement"] == "export"
    assert exc.value.to_http_exception().status_code == 403


def test_subscription_context_helpers(premium_status: SubscriptionStatus) -> None:
    context = SubscriptionContext(premium_status)

    assert context.is_active is True
    assert context.has("export") is True
    context.require("export")

    locked = SubscriptionContext(None)
    assert locked.entitlements == frozenset()
    with pytest.raises(PaywallError):
        locked.require("export", message="Upgrade to export")
