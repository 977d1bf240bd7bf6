from typing import Annotated, Dict, List

from fastapi import APIRouter, Depends, Path, status

from src.api.request_models import ComparisonRequest, NamedSaveRequest
from src.api.routers.session_config import get_orchestrator
from src.api.routers.session_http_errors import raise_session_http_exception
from src.core.allocation.models import AllocationDiff
from src.core.common.errors import DecisionSessionError
from src.core.session import (
    AbResult,
    AllocationPolicy,
    SavedPortfolio,
    SessionOrchestrator,
    SessionSnapshot,
)

router = APIRouter(tags=["Operator Library"])

Orchestrator = Annotated[SessionOrchestrator, Depends(get_orchestrator)]
PolicyId = Annotated[str, Path(description="Saved policy identifier.")]
PortfolioId = Annotated[str, Path(description="Saved portfolio identifier.")]


@router.get("/library/policies", response_model=List[AllocationPolicy], summary="List Policies")
async def list_policies(orchestrator: Orchestrator) -> List[AllocationPolicy]:
    return orchestrator.list_policies()


@router.post(
    "/library/policies",
    response_model=AllocationPolicy,
    summary="Save Policy",
    description="Saves the current constraints, regime and allocator version as a policy.",
)
async def save_policy(payload: NamedSaveRequest, orchestrator: Orchestrator) -> AllocationPolicy:
    return orchestrator.save_policy(payload.name)


@router.post("/library/policies/new", response_model=SessionSnapshot, summary="Start New Policy")
async def new_policy(orchestrator: Orchestrator) -> SessionSnapshot:
    orchestrator.new_policy()
    return orchestrator.snapshot()


@router.post(
    "/library/policies/{policy_id}/select", response_model=SessionSnapshot, summary="Select Policy"
)
async def select_policy(policy_id: PolicyId, orchestrator: Orchestrator) -> SessionSnapshot:
    try:
        orchestrator.select_policy(policy_id)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()


@router.delete(
    "/library/policies/{policy_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Policy",
)
async def delete_policy(policy_id: PolicyId, orchestrator: Orchestrator) -> None:
    try:
        orchestrator.delete_policy(policy_id)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)


@router.get(
    "/library/portfolios", response_model=List[SavedPortfolio], summary="List Saved Portfolios"
)
async def list_portfolios(orchestrator: Orchestrator) -> List[SavedPortfolio]:
    return orchestrator.list_saved_portfolios()


@router.post("/library/portfolios", response_model=SavedPortfolio, summary="Save Portfolio")
async def save_portfolio(payload: NamedSaveRequest, orchestrator: Orchestrator) -> SavedPortfolio:
    return orchestrator.save_portfolio_to_library(payload.name)


@router.post(
    "/library/portfolios/{portfolio_id}/load",
    response_model=SessionSnapshot,
    summary="Load Saved Portfolio",
)
async def load_portfolio(portfolio_id: PortfolioId, orchestrator: Orchestrator) -> SessionSnapshot:
    try:
        orchestrator.load_saved_portfolio(portfolio_id)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)
    return orchestrator.snapshot()


@router.delete(
    "/library/portfolios/{portfolio_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Saved Portfolio",
)
async def delete_portfolio(portfolio_id: PortfolioId, orchestrator: Orchestrator) -> None:
    try:
        orchestrator.delete_saved_portfolio(portfolio_id)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)


@router.post(
    "/comparisons",
    response_model=AbResult,
    summary="Run Policy Comparison",
    description=(
        "Runs one decision per policy, each in its own throwaway scenario, against one shared "
        "current-weights snapshot. The live session's ticks are not touched."
    ),
)
async def run_comparison(payload: ComparisonRequest, orchestrator: Orchestrator) -> AbResult:
    try:
        return await orchestrator.run_policy_comparison(payload.policy_a_id, payload.policy_b_id)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)


@router.get("/comparisons", response_model=List[AbResult], summary="List Policy Comparisons")
async def list_comparisons(orchestrator: Orchestrator) -> List[AbResult]:
    return orchestrator.ab_results


@router.get("/comparisons/{run_id}", response_model=AbResult, summary="Get Policy Comparison")
async def get_comparison(
    run_id: Annotated[str, Path(examples=["ab_2026-01-05T10:00:00.000Z"])],
    orchestrator: Orchestrator,
) -> AbResult:
    try:
        return orchestrator.get_comparison(run_id)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)


@router.get(
    "/comparisons/{run_id}/rows",
    response_model=Dict[str, AllocationDiff],
    summary="Get Policy Comparison Rows",
)
async def comparison_rows(
    run_id: Annotated[str, Path(examples=["ab_2026-01-05T10:00:00.000Z"])],
    orchestrator: Orchestrator,
) -> Dict[str, AllocationDiff]:
    try:
        return orchestrator.comparison_rows(run_id)
    except DecisionSessionError as exc:
        raise_session_http_exception(exc)
