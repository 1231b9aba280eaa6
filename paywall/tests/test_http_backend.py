from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from typing import Callable, List

import httpx
import pytest

from paywall.app.clients import HttpPaywallBackend
from paywall.app.errors import ErrorCode, PaywallError
from paywall.app.plans import DEFAULT_PLANS, get_plan_by_id
from paywall.app.promo_codes import PromoCodeEngine

BASE_URL = "https://paywall.example.com/v1"


def _backend(handler: Callable[[httpx.Request], httpx.Response], requests: List[httpx.Request]) -> HttpPaywallBackend:
    def recording(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return HttpPaywallBackend(
        base_url=BASE_URL + "/",
        api_key="test-key",
        timeout=1.0,
        transport=httpx.MockTransport(recording),
    )


@pytest.fixture
def requests() -> List[httpx.Request]:
    return []


def test_fetch_plans_sends_bearer_token(requests) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "plans": [
                    {"id": "monthly", "name": "Monthly", "price": "9.99", "duration": "monthly"},
                    {"id": "yearly", "name": "Yearly", "price": "95.99", "duration": "yearly", "isPopular": True},
                ]
            },
        )

    plans = asyncio.run(_backend(handler, requests).fetch_plans())

    assert [plan.id for plan in plans] == ["monthly", "yearly"]
    assert plans[1].is_popular is True
    request = requests[0]
    assert str(request.url) == f"{BASE_URL}/plans"
    assert request.headers["Authorization"] == "Bearer test-key"


def test_purchase_posts_plan_and_promo_code(requests) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "transactionId": "txn_remote",
                "productId": "premium_monthly",
                "purchaseDate": "2026-06-01T12:00:00Z",
                "finalPrice": "7.99",
                "promoCodeUsed": "SAVE20",
            },
        )

    monthly = get_plan_by_id(DEFAULT_PLANS, "monthly")
    info = asyncio.run(_backend(handler, requests).purchase(monthly, "SAVE20"))

    assert info.transaction_id == "txn_remote"
    assert info.final_price == Decimal("7.99")
    request = requests[0]
    assert request.method == "POST"
    assert json.loads(request.content) == {
        "planId": "monthly",
        "productId": "premium_monthly",
        "promoCode": "SAVE20",
    }


def test_error_status_raises_operation_code_with_backend_message(requests) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(402, json={"message": "Card declined"})

    monthly = get_plan_by_id(DEFAULT_PLANS, "monthly")
    with pytest.raises(PaywallError) as exc:
        asyncio.run(_backend(handler, requests).purchase(monthly))

    assert exc.value.code == ErrorCode.PURCHASE_FAILED
    assert exc.value.message == "Card declined"
    assert exc.value.payload["status"] == 402


def test_transport_failure_is_network_error(requests) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PaywallError) as exc:
        asyncio.run(_backend(handler, requests).initialize())

    assert exc.value.code == ErrorCode.NETWORK_ERROR


def test_status_and_restore_parse_payloads(requests) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/subscription/status"):
            return httpx.Response(200, json={"isActive": True, "entitlements": ["premium"], "willRenew": True})
        return httpx.Response(
            200,
            json={
                "purchases": [
                    {
                        "transactionId": "txn_1",
                        "productId": "premium_yearly",
                        "purchaseDate": "2025-06-01T00:00:00Z",
                        "finalPrice": "95.99",
                    }
                ]
            },
        )

    backend = _backend(handler, requests)
    status = asyncio.run(backend.get_status())
    purchases = asyncio.run(backend.restore())

    assert status.is_active is True
    assert "premium" in status.entitlements
    assert [purchase.transaction_id for purchase in purchases] == ["txn_1"]


def test_malformed_status_is_status_fetch_failed(requests) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"isActive": "not-a-bool"})

    with pytest.raises(PaywallError) as exc:
        asyncio.run(_backend(handler, requests).get_status())

    assert exc.value.code == ErrorCode.STATUS_FETCH_FAILED


def test_validate_code_maps_remote_result(requests) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"isValid": False, "error": "CODE_EXPIRED", "message": "Promo code has expired"})

    validation = asyncio.run(_backend(handler, requests).validate_code("SAVE20", "monthly", "user-1"))

    assert validation.is_valid is False
    assert validation.error == ErrorCode.CODE_EXPIRED
    assert json.loads(requests[0].content) == {"code": "SAVE20", "planId": "monthly", "userId": "user-1"}


def test_unknown_remote_error_code_becomes_validation_error(requests) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"isValid": False, "error": "SOMETHING_NEW"})

    validation = asyncio.run(_backend(handler, requests).validate_code("SAVE20"))

    assert validation.error == ErrorCode.VALIDATION_ERROR


def test_check_usage_and_listing(requests) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/check-usage"):
            return httpx.Response(200, json={"hasUsed": True})
        return httpx.Response(
            200,
            json={
                "promoCodes": [
                    {
                        "id": "1",
                        "code": "SAVE20",
                        "discount": {"type": "percentage", "value": 20},
                        "validFrom": "2024-01-01T00:00:00Z",
                        "validUntil": "2030-12-31T23:59:59Z",
                    }
                ]
            },
        )

    backend = _backend(handler, requests)

    assert asyncio.run(backend.check_usage("SAVE20", "user-1")) is True
    codes = asyncio.run(backend.list_promo_codes(active=True, plan_id="monthly", limit=5))

    assert [promo.code for promo in codes] == ["SAVE20"]
    params = requests[1].url.params
    assert (params["active"], params["planId"], params["limit"]) == ("true", "monthly", "5")


def test_listing_failure_is_a_fetch_error(requests) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/check-usage"):
            return httpx.Response(503, json={"message": "Usage ledger unavailable"})
        return httpx.Response(500, json={"message": "Promo service down"})

    backend = _backend(handler, requests)

    with pytest.raises(PaywallError) as listing:
        asyncio.run(backend.list_promo_codes(active=True))
    with pytest.raises(PaywallError) as usage:
        asyncio.run(backend.check_usage("SAVE20", "user-1"))

    assert listing.value.code == ErrorCode.FETCH_FAILED
    assert listing.value.message == "Promo service down"
    assert listing.value.status_code == 502
    assert usage.value.code == ErrorCode.FETCH_FAILED


def test_engine_does_not_cache_transport_failures(requests) -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200, json={"isValid": False, "error": "CODE_NOT_FOUND", "message": "Invalid promo code"})

    engine = PromoCodeEngine(backend=_backend(handler, requests))

    first = asyncio.run(engine.validate("SAVE20", "monthly"))
    second = asyncio.run(engine.validate("SAVE20", "monthly"))
    third = asyncio.run(engine.validate("SAVE20", "monthly"))

    assert first.error == ErrorCode.VALIDATION_ERROR
    assert second.error == ErrorCode.CODE_NOT_FOUND
    assert third == second
    assert calls["count"] == 2
