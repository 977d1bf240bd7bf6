from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from src.api.request_models import (
    CreateSessionRequest,
    DecisionRunResponse,
    LoadSessionRequest,
    ModeRequest,
    PerformanceRequest,
    SimulationRunRequest,
    TimeAdvanceRequest,
    TimeSetRequest,
)
from src.api.routers.session_config import get_orchestrator
from src.api.routers.session_http_errors import raise_session_http_exception
from src.core.allocation.models import AllocationDiff
from src.core.common.errors import DecisionSessionError
from src.core.session import SessionLifecycleError, SessionOrchestrator, SessionSnapshot
from src.core.session.models import ScenarioTime

router = APIRouter(tags=["Decision Session"])

Orchestrator = Annotated[SessionOrchestrator, Depends(get_orchestrator)]
TickId = Annotated[str, Path(description="Decision record identifier.", examples=["tick_001"])]


@router.post(
    "/session",
    response_model=SessionSnapshot,
    status_code=status.HTTP_201_CREATED,
    summary="Create Decision Session",
    description="Creates a fresh remote scenario and makes it the live session.",
)
async def create_session(
    orchestrator: Orchestrator, payload: Optional[CreateSessionRequest] = None
) -> SessionSnapshot:
    config = {"mode": payload.mode} if payload and payload.mode else {}
    try:
        created = await orchestrator.create_session(config)
    except (DecisionSessionError, SessionLifecycleError) as exc:
        raise_session_http_exception(exc)
    if created is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="SESSION_CREATION_IN_PROGRESS"
        )
    return orchestrator.snapshot()


@router.get(
    "/session",
    response_model=SessionSnapshot,
    summary="Get Session Snapshot",
    description="Returns drafts, save states, reconciled ticks and status messages.",
)
async def get_session(orchestrator: Orchestrator) -> SessionSnapshot:
    return orchestrator.snapshot()


@router.post("/session/load", response_model=SessionSnapshot, summary="Load Existing Session")
async def load_session(payload: LoadSessionRequest, orchestrator: Orchestrator) -> SessionSnapshot:
    try:
        await orchestrator.load_session(payload.session_id)
    except (DecisionSessionError, SessionLifecycleError) as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()


@router.post("/session/reload", response_model=SessionSnapshot, summary="Reload Session")
async def reload_session(orchestrator: Orchestrator) -> SessionSnapshot:
    try:
        await orchestrator.reload()
    except (DecisionSessionError, SessionLifecycleError) as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()


@router.put(
    "/session/mode",
    response_model=SessionSnapshot,
    summary="Switch Session Mode",
    description=(
        "Switching to simulation guarantees a simulation-tagged scenario, creating one "
        "from the current portfolio and constraints when needed."
    ),
)
async def switch_mode(payload: ModeRequest, orchestrator: Orchestrator) -> SessionSnapshot:
    try:
        await orchestrator.switch_mode(payload.mode)
    except (DecisionSessionError, SessionLifecycleError) as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()


@router.post(
    "/session/decisions",
    response_model=DecisionRunResponse,
    summary="Run Decision",
    description="Runs exactly one remote decision tick for the live session.",
)
async def run_decision(orchestrator: Orchestrator) -> DecisionRunResponse:
    try:
        tick = await orchestrator.run_decision()
    except (DecisionSessionError, SessionLifecycleError) as exc:
        raise_session_http_exception(exc)
    allocation = orchestrator.allocation_for_tick(tick["tick_id"]) if tick else None
    return DecisionRunResponse(tick=tick, allocation=allocation, session=orchestrator.snapshot())


@router.get("/session/ticks", response_model=List[Dict[str, Any]], summary="List Ticks")
async def list_ticks(orchestrator: Orchestrator) -> List[Dict[str, Any]]:
    return orchestrator.ticks


@router.get("/session/ticks/{tick_id}", summary="Get Tick Details")
async def get_tick_details(tick_id: TickId, orchestrator: Orchestrator) -> Dict[str, Any]:
    try:
        return orchestrator.tick_details(tick_id)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)


@router.delete(
    "/session/ticks/{tick_id}",
    response_model=List[Dict[str, Any]],
    summary="Hide Tick",
    description="Removes a tick from the visible list without a remote delete.",
)
async def hide_tick(tick_id: TickId, orchestrator: Orchestrator) -> List[Dict[str, Any]]:
    try:
        return orchestrator.hide_tick(tick_id)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)


@router.get("/session/ticks/{tick_id}/export", summary="Export Tick")
async def export_tick(tick_id: TickId, orchestrator: Orchestrator) -> Dict[str, Any]:
    try:
        return orchestrator.export_tick(tick_id)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)


@router.get(
    "/session/ticks/{tick_id}/allocation",
    response_model=AllocationDiff,
    summary="Get Tick Allocation",
)
async def tick_allocation(tick_id: TickId, orchestrator: Orchestrator) -> AllocationDiff:
    try:
        return orchestrator.allocation_for_tick(tick_id)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)


@router.post(
    "/session/ticks/{tick_id}/load-into-portfolio",
    response_model=SessionSnapshot,
    summary="Load Allocation Into Portfolio",
)
async def load_tick_into_portfolio(tick_id: TickId, orchestrator: Orchestrator) -> SessionSnapshot:
    try:
        orchestrator.load_allocation_into_portfolio(tick_id)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()


@router.get(
    "/session/allocation",
    response_model=Optional[AllocationDiff],
    summary="Get Latest Allocation",
    description="Rows for the latest decision; null when no decision exists yet.",
)
async def latest_allocation(orchestrator: Orchestrator) -> Optional[AllocationDiff]:
    return orchestrator.latest_allocation()


@router.post("/session/simulation/run", summary="Run Simulation")
async def run_simulation(payload: SimulationRunRequest, orchestrator: Orchestrator) -> Any:
    try:
        return await orchestrator.run_simulation(
            policy_a_id=payload.policy_a_id,
            policy_b_id=payload.policy_b_id,
            tick_count=payload.tick_count,
            seed=payload.seed,
            persistence=payload.persistence,
            risk_class_regimes=payload.risk_class_regimes,
        )
    except (DecisionSessionError, SessionLifecycleError) as exc:
        raise_session_http_exception(exc)


@router.post("/session/simulation/step", summary="Step Simulation")
async def step_simulation(
    orchestrator: Orchestrator, payload: Optional[Dict[str, Any]] = None
) -> Any:
    try:
        return await orchestrator.step_simulation(payload)
    except (DecisionSessionError, SessionLifecycleError) as exc:
        raise_session_http_exception(exc)


@router.post("/session/simulation/reset", summary="Reset Simulation")
async def reset_simulation(
    orchestrator: Orchestrator, payload: Optional[Dict[str, Any]] = None
) -> Any:
    try:
        return await orchestrator.reset_simulation(payload)
    except (DecisionSessionError, SessionLifecycleError) as exc:
        raise_session_http_exception(exc)


@router.get("/session/simulation/state", summary="Get Simulation State")
async def simulation_state(orchestrator: Orchestrator) -> Any:
    try:
        return await orchestrator.load_sim_state()
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)


@router.get("/session/simulation/score-trace", summary="Get Simulation Score Trace")
async def score_trace(
    orchestrator: Orchestrator,
    year: Annotated[Optional[int], Query(description="Restrict to one year.", examples=[2026])] = None,
) -> Any:
    try:
        return await orchestrator.score_trace(year)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)


@router.post("/session/time/advance", response_model=ScenarioTime, summary="Advance Scenario Time")
async def advance_time(payload: TimeAdvanceRequest, orchestrator: Orchestrator) -> ScenarioTime:
    try:
        return await orchestrator.advance_time(
            days=payload.days, hours=payload.hours, minutes=payload.minutes
        )
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)


@router.post("/session/time/set", response_model=ScenarioTime, summary="Set Scenario Time")
async def set_time(payload: TimeSetRequest, orchestrator: Orchestrator) -> ScenarioTime:
    try:
        return await orchestrator.set_time(payload.sim_now)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)


@router.post("/session/performance", summary="Record Realised Performance")
async def record_performance(payload: PerformanceRequest, orchestrator: Orchestrator) -> Any:
    try:
        return await orchestrator.record_performance(**payload.model_dump())
    except (DecisionSessionError, SessionLifecycleError) as exc:
        raise_session_http_exception(exc)
