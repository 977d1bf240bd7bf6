from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Path

from src.api.request_models import (
    AllocatorVersionRequest,
    AssetRequest,
    ConstraintEditRequest,
    ImportApplyRequest,
    ImportPreviewRequest,
    InflowRequest,
    PortfolioReplaceRequest,
    RegimeFieldRequest,
    RiskPostureRequest,
    SectorSentimentRequest,
)
from src.api.routers.session_config import get_orchestrator
from src.api.routers.session_http_errors import raise_session_http_exception
from src.core.common.errors import DecisionSessionError
from src.core.imports.models import ImportPreviewResult
from src.core.session import SessionOrchestrator, SessionSnapshot
from src.core.session.models import DraftField

router = APIRouter(prefix="/session/drafts", tags=["Session Drafts"])

Orchestrator = Annotated[SessionOrchestrator, Depends(get_orchestrator)]
AssetId = Annotated[str, Path(description="Asset identifier.", examples=["BTC"])]


@router.post("/assets", response_model=SessionSnapshot, summary="Add Asset")
async def add_asset(payload: AssetRequest, orchestrator: Orchestrator) -> SessionSnapshot:
    try:
        orchestrator.add_asset(payload.model_dump(exclude_none=True))
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()


@router.patch("/assets/{asset_id}", response_model=SessionSnapshot, summary="Update Asset")
async def update_asset(
    asset_id: AssetId,
    orchestrator: Orchestrator,
    patch: Annotated[Dict[str, Any], Body(examples=[{"current_weight": 0.6}])],
) -> SessionSnapshot:
    try:
        orchestrator.update_asset(asset_id, patch)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()


@router.delete("/assets/{asset_id}", response_model=SessionSnapshot, summary="Remove Asset")
async def remove_asset(asset_id: AssetId, orchestrator: Orchestrator) -> SessionSnapshot:
    try:
        orchestrator.remove_asset(asset_id)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()


@router.put("/portfolio", response_model=SessionSnapshot, summary="Replace Portfolio")
async def replace_portfolio(
    payload: PortfolioReplaceRequest, orchestrator: Orchestrator
) -> SessionSnapshot:
    orchestrator.replace_portfolio(payload.portfolio)
    return orchestrator.snapshot()


@router.delete("/portfolio", response_model=SessionSnapshot, summary="Clear Portfolio")
async def clear_portfolio(orchestrator: Orchestrator) -> SessionSnapshot:
    orchestrator.clear_portfolio()
    return orchestrator.snapshot()


@router.put(
    "/constraints",
    response_model=SessionSnapshot,
    summary="Edit Constraint",
    description="Applies one bound edit, keeping min <= max <= concentration.",
)
async def set_constraint(
    payload: ConstraintEditRequest, orchestrator: Orchestrator
) -> SessionSnapshot:
    try:
        orchestrator.set_constraint(payload.field, payload.value)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()


@router.put("/inflow", response_model=SessionSnapshot, summary="Set Capital Inflow")
async def set_inflow(payload: InflowRequest, orchestrator: Orchestrator) -> SessionSnapshot:
    try:
        orchestrator.set_inflow(payload.amount)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()


@router.put("/risk-posture", response_model=SessionSnapshot, summary="Set Risk Posture")
async def set_risk_posture(
    payload: RiskPostureRequest, orchestrator: Orchestrator
) -> SessionSnapshot:
    try:
        orchestrator.set_risk_posture(payload.risk_posture)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()


@router.put("/sector-sentiment", response_model=SessionSnapshot, summary="Set Sector Sentiment")
async def set_sector_sentiment(
    payload: SectorSentimentRequest, orchestrator: Orchestrator
) -> SessionSnapshot:
    try:
        orchestrator.set_sector_sentiment(payload.sector_sentiment)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()


@router.put("/regime/{key}", response_model=SessionSnapshot, summary="Set Regime Field")
async def set_regime_field(
    key: Annotated[str, Path(description="Regime field key.", examples=["correlation_state"])],
    payload: RegimeFieldRequest,
    orchestrator: Orchestrator,
) -> SessionSnapshot:
    try:
        orchestrator.set_regime_field(key, payload.value)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()


@router.post(
    "/regime/reset", response_model=SessionSnapshot, summary="Reset Regime To Version Defaults"
)
async def reset_regime(orchestrator: Orchestrator) -> SessionSnapshot:
    orchestrator.reset_regime_to_version_defaults()
    return orchestrator.snapshot()


@router.put("/allocator-version", response_model=SessionSnapshot, summary="Set Allocator Version")
async def set_allocator_version(
    payload: AllocatorVersionRequest, orchestrator: Orchestrator
) -> SessionSnapshot:
    try:
        orchestrator.set_allocator_version(payload.allocator_version)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()


@router.post(
    "/{field}/save-now",
    response_model=SessionSnapshot,
    summary="Save Draft Now",
    description="Commits the draft immediately, bypassing the debounce timer.",
)
async def save_now(
    field: Annotated[DraftField, Path(examples=["portfolio"])], orchestrator: Orchestrator
) -> SessionSnapshot:
    try:
        await orchestrator.save_now(field)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()


@router.post(
    "/flush",
    response_model=SessionSnapshot,
    summary="Flush Pending Autosaves",
    description="Fires pending debounce timers now and waits for their commits.",
)
async def flush(
    orchestrator: Orchestrator, field: Optional[DraftField] = None
) -> SessionSnapshot:
    try:
        await orchestrator.flush(field)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()


@router.post("/import/preview", response_model=ImportPreviewResult, summary="Preview Import")
async def preview_import(
    payload: ImportPreviewRequest, orchestrator: Orchestrator
) -> ImportPreviewResult:
    try:
        return orchestrator.preview_import(payload.connector_id, payload.payload)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)


@router.post("/import/apply", response_model=SessionSnapshot, summary="Apply Import")
async def apply_import(payload: ImportApplyRequest, orchestrator: Orchestrator) -> SessionSnapshot:
    try:
        orchestrator.apply_import(payload.preview)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()
