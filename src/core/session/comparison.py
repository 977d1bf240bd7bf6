"""
Two-policy comparison runs.

Each side runs in its own throwaway scenario so the operator's live session and its tick history
are never touched. Both outputs are judged against one current-weights snapshot taken before
either side starts.
"""

import logging
from typing import Any, Optional

from src.core.allocation.diff import current_weights
from src.core.allocation.models import Constraints, Portfolio
from src.core.allocation.regime import pick_outgoing_regime
from src.core.common.errors import DecisionServiceError
from src.core.session.models import AbPolicySnapshot, AbResult, AllocationPolicy, RunDecisionType
from src.core.session.repository import DecisionService
from src.core.session.ticks import Tick, tick_from_decision_response, utc_now_iso

logger = logging.getLogger(__name__)


def allocator_for_run(version: Optional[str]) -> str:
    """The version sent to the decision service; ``default`` is served by v1."""
    if not version or version == "default":
        return "v1"
    return version


def policy_snapshot(policy: AllocationPolicy) -> AbPolicySnapshot:
    return AbPolicySnapshot(
        id=policy.id,
        name=policy.name,
        allocator_version=policy.allocator_version,
        constraints=policy.constraints.model_copy(deep=True),
        regime=dict(policy.regime),
    )


def simulation_policy_snapshot(
    *,
    policy_id: Optional[str],
    name: str,
    allocator_version: Optional[str],
    constraints: Optional[Constraints],
    regime: Optional[dict[str, Any]],
    risk_posture: Optional[str],
) -> dict[str, Any]:
    return {
        "id": policy_id,
        "name": name,
        "allocator_version": allocator_for_run(allocator_version),
        "constraints": constraints.to_payload() if constraints else {},
        "regime": pick_outgoing_regime(allocator_version, regime),
        "risk_posture": risk_posture,
    }


async def run_one_off_policy_tick(
    service: DecisionService,
    *,
    policy: AllocationPolicy,
    portfolio: Portfolio,
    inflow: Optional[float],
    decision_type: RunDecisionType,
) -> Tick:
    """Run exactly one decision for ``policy`` in a fresh scenario and return its tick."""
    allocator = allocator_for_run(policy.allocator_version)
    scenario_id = await service.create_scenario({})
    await service.put_portfolio(scenario_id, portfolio.to_payload())
    await service.put_constraints(scenario_id, policy.constraints.to_payload())
    await service.put_allocator_version(scenario_id, allocator)
    await service.put_regime(
        scenario_id, pick_outgoing_regime(policy.allocator_version, policy.regime)
    )
    if inflow is not None:
        await service.put_inflow(scenario_id, float(inflow))

    response = await service.run_tick(
        scenario_id,
        {
            "decision_type": decision_type,
            "allocator_version": allocator,
            "policy_id": policy.id,
            "policy_name": policy.name,
        },
    )
    tick = tick_from_decision_response(response)
    if tick is None:
        raise DecisionServiceError("runTick did not return a usable tick/decision payload")
    logger.info(
        "comparison.side_completed",
        extra={
            "extra_fields": {
                "policy_id": policy.id,
                "scenario_id": scenario_id,
                "tick_id": tick["tick_id"],
            }
        },
    )
    return tick


async def run_policy_comparison(
    service: DecisionService,
    *,
    policy_a: AllocationPolicy,
    policy_b: AllocationPolicy,
    portfolio: Optional[Portfolio],
    inflow: Optional[float],
    decision_type: RunDecisionType = "allocation",
) -> AbResult:
    created_at = utc_now_iso()
    base = portfolio.model_copy(deep=True) if portfolio is not None else Portfolio()
    weights_snapshot = current_weights(base)

    # Sequential: side B starts only after side A has its tick.
    output_a = await run_one_off_policy_tick(
        service, policy=policy_a, portfolio=base, inflow=inflow, decision_type=decision_type
    )
    output_b = await run_one_off_policy_tick(
        service, policy=policy_b, portfolio=base, inflow=inflow, decision_type=decision_type
    )

    return AbResult(
        run_id=f"ab_{created_at}",
        created_at=created_at,
        portfolio_snapshot=base,
        inflow_snapshot=inflow,
        current_weights_snapshot=weights_snapshot,
        policy_a=policy_snapshot(policy_a),
        policy_b=policy_snapshot(policy_b),
        output_a=output_a,
        output_b=output_b,
    )
