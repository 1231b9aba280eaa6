"""API routes exposing the paywall read model and actions.

Every handler is a coroutine: orchestrator mutations stay on the event loop.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ..errors import PaywallError
from ..purchases import PurchaseOrchestrator
from ..schemas.paywall import (
    FeatureAccessResponse,
    PaywallStateResponse,
    PlanListResponse,
    PlanSelectionRequest,
    PromoApplicationResponse,
    PromoCodeRequest,
    PromoValidationResponse,
    PurchaseResponse,
    RestoreResponse,
    SubscriptionStatusResponse,
)
from ..services.paywall import get_paywall_runtime


async def get_orchestrator() -> PurchaseOrchestrator:
    runtime = get_paywall_runtime()
    try:
        return await runtime.bootstrap.initialize()
    except PaywallError as exc:
        raise exc.to_http_exception() from exc


router = APIRouter(prefix="/api/paywall", tags=["paywall"])


@router.get("/state", response_model=PaywallStateResponse)
async def get_state(*, orchestrator: PurchaseOrchestrator = Depends(get_orchestrator)) -> PaywallStateResponse:
    return PaywallStateResponse.from_orchestrator(orchestrator)


@router.get("/plans", response_model=PlanListResponse)
async def list_plans(*, orchestrator: PurchaseOrchestrator = Depends(get_orchestrator)) -> PlanListResponse:
    return PlanListResponse(plans=orchestrator.plans)


@router.get("/features/{feature_id}", response_model=FeatureAccessResponse)
async def get_feature_access(
    feature_id: str,
    *,
    orchestrator: PurchaseOrchestrator = Depends(get_orchestrator),
) -> FeatureAccessResponse:
    return FeatureAccessResponse(feature_id=feature_id, unlocked=orchestrator.is_feature_unlocked(feature_id))


@router.post("/show", response_model=PaywallStateResponse)
async def show_paywall(*, orchestrator: PurchaseOrchestrator = Depends(get_orchestrator)) -> PaywallStateResponse:
    orchestrator.show()
    return PaywallStateResponse.from_orchestrator(orchestrator)


@router.post("/hide", response_model=PaywallStateResponse)
async def hide_paywall(*, orchestrator: PurchaseOrchestrator = Depends(get_orchestrator)) -> PaywallStateResponse:
    try:
        orchestrator.hide()
    except PaywallError as exc:
        raise exc.to_http_exception() from exc
    return PaywallStateResponse.from_orchestrator(orchestrator)


@router.post("/plans/select", response_model=PaywallStateResponse)
async def select_plan(
    payload: PlanSelectionRequest,
    *,
    orchestrator: PurchaseOrchestrator = Depends(get_orchestrator),
) -> PaywallStateResponse:
    try:
        orchestrator.select_plan_by_id(payload.plan_id)
    except PaywallError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=dict(exc.payload)) from exc
    return PaywallStateResponse.from_orchestrator(orchestrator)


@router.post("/purchase", response_model=PurchaseResponse)
async def purchase(*, orchestrator: PurchaseOrchestrator = Depends(get_orchestrator)) -> PurchaseResponse:
    try:
        info = await orchestrator.purchase()
    except PaywallError as exc:
        raise exc.to_http_exception() from exc
    return PurchaseResponse(purchase=info, state=PaywallStateResponse.from_orchestrator(orchestrator))


@router.post("/purchase/acknowledge", response_model=PaywallStateResponse)
async def acknowledge_purchase(
    *,
    orchestrator: PurchaseOrchestrator = Depends(get_orchestrator),
) -> PaywallStateResponse:
    orchestrator.acknowledge_result()
    return PaywallStateResponse.from_orchestrator(orchestrator)


@router.post("/restore", response_model=RestoreResponse)
async def restore_purchases(*, orchestrator: PurchaseOrchestrator = Depends(get_orchestrator)) -> RestoreResponse:
    try:
        purchases = await orchestrator.restore()
    except PaywallError as exc:
        raise exc.to_http_exception() from exc
    return RestoreResponse(purchases=purchases, state=PaywallStateResponse.from_orchestrator(orchestrator))


@router.post("/promo-codes/validate", response_model=PromoValidationResponse)
async def validate_promo_code(
    payload: PromoCodeRequest,
    *,
    orchestrator: PurchaseOrchestrator = Depends(get_orchestrator),
) -> PromoValidationResponse:
    try:
        validation = await orchestrator.validate_promo_code(payload.code)
    except PaywallError as exc:
        raise exc.to_http_exception() from exc
    return PromoValidationResponse(validation=validation, state=PaywallStateResponse.from_orchestrator(orchestrator))


@router.post("/promo-codes/apply", response_model=PromoApplicationResponse)
async def apply_promo_code(
    payload: PromoCodeRequest,
    *,
    orchestrator: PurchaseOrchestrator = Depends(get_orchestrator),
) -> PromoApplicationResponse:
    try:
        application = await orchestrator.apply_promo_code(payload.code)
    except PaywallError as exc:
        raise exc.to_http_exception() from exc
    return PromoApplicationResponse(
        application=application,
        state=PaywallStateResponse.from_orchestrator(orchestrator),
    )


@router.delete("/promo-codes", response_model=PaywallStateResponse)
async def remove_promo_code(*, orchestrator: PurchaseOrchestrator = Depends(get_orchestrator)) -> PaywallStateResponse:
    try:
        orchestrator.remove_promo_code()
    except PaywallError as exc:
        raise exc.to_http_exception() from exc
    return PaywallStateResponse.from_orchestrator(orchestrator)


@router.post("/status/refresh", response_model=SubscriptionStatusResponse)
async def refresh_status(
    *,
    orchestrator: PurchaseOrchestrator = Depends(get_orchestrator),
) -> SubscriptionStatusResponse:
    try:
        current = await orchestrator.refresh_status()
    except PaywallError as exc:
        raise exc.to_http_exception() from exc
    return SubscriptionStatusResponse(status=current)
