import asyncio
from copy import deepcopy
from typing import Any, Iterable, Optional

from src.core.allocation.models import Asset, Constraints, Portfolio
from src.core.common.errors import DecisionServiceError
from src.core.session.models import AllocationPolicy, SavedPortfolio


def asset(
    asset_id: str,
    weight: float,
    *,
    name: Optional[str] = None,
    expected_return: float = 0.1,
    volatility: float = 0.3,
    role: Optional[str] = "core",
) -> Asset:
    return Asset(
        id=asset_id,
        name=name or asset_id,
        current_weight=weight,
        expected_return=expected_return,
        volatility=volatility,
        role=role,
    )


def portfolio(*weights: tuple[str, float]) -> Portfolio:
    return Portfolio(assets=[asset(asset_id, weight) for asset_id, weight in weights])


def policy(
    policy_id: str,
    *,
    name: Optional[str] = None,
    allocator_version: str = "v1",
    constraints: Optional[Constraints] = None,
    regime: Optional[dict[str, Any]] = None,
) -> AllocationPolicy:
    return AllocationPolicy(
        id=policy_id,
        name=name or policy_id,
        created_at="2026-01-05T10:00:00.000Z",
        updated_at="2026-01-05T10:00:00.000Z",
        allocator_version=allocator_version,
        constraints=constraints
        or Constraints(min_asset_weight=0.05, max_asset_weight=0.6, max_concentration=0.7),
        regime=regime if regime is not None else {"mission": "risk_adjusted_return"},
    )


def saved_portfolio(portfolio_id: str, value: Portfolio, *, name: str = "Core") -> SavedPortfolio:
    return SavedPortfolio(
        id=portfolio_id,
        name=name,
        updated_at="2026-01-05T10:00:00.000Z",
        portfolio=value,
    )


def tick(
    tick_id: Optional[str],
    timestamp: Optional[str] = "2026-01-05T10:00:00Z",
    **fields: Any,
) -> dict[str, Any]:
    payload: dict[str, Any] = dict(fields)
    if tick_id is not None:
        payload["tick_id"] = tick_id
    if timestamp is not None:
        payload["timestamp"] = timestamp
    return payload


class FakeDecisionService:
    """In-memory decision service double that records every call.

    ``tick_responses`` is consumed first-in first-out by ``run_tick``; without queued responses a
    server tick with a generated id is returned and appended to the scenario history.
    ``failures`` maps a method name to the exception raised on its next call.
    """

    def __init__(self, *, scenario_defaults: Optional[dict[str, Any]] = None) -> None:
        self.calls: list[tuple[str, Optional[str], Any]] = []
        self.scenarios: dict[str, dict[str, Any]] = {}
        self.ticks: dict[str, list[dict[str, Any]]] = {}
        self.tick_responses: list[Any] = []
        self.failures: dict[str, DecisionServiceError] = {}
        self.persistent_failures: dict[str, DecisionServiceError] = {}
        self.scenario_defaults = scenario_defaults or {}
        self.create_gate: Optional[asyncio.Event] = None
        self.closed = False
        self._scenario_counter = 0
        self._tick_counter = 0

    def calls_named(self, name: str) -> list[tuple[str, Optional[str], Any]]:
        return [call for call in self.calls if call[0] == name]

    def seed_scenario(
        self,
        scenario_id: str,
        scenario: Optional[dict[str, Any]] = None,
        ticks: Iterable[dict[str, Any]] = (),
    ) -> None:
        self.scenarios[scenario_id] = {"scenario_id": scenario_id, **(scenario or {})}
        self.ticks[scenario_id] = list(ticks)

    async def _record(self, name: str, scenario_id: Optional[str], payload: Any = None) -> None:
        self.calls.append((name, scenario_id, deepcopy(payload)))
        await asyncio.sleep(0)
        if name in self.persistent_failures:
            raise self.persistent_failures[name]
        failure = self.failures.pop(name, None)
        if failure is not None:
            raise failure

    def _scenario(self, scenario_id: str) -> dict[str, Any]:
        return self.scenarios.setdefault(scenario_id, {"scenario_id": scenario_id})

    async def create_scenario(self, config: Optional[dict[str, Any]] = None) -> str:
        await self._record("create_scenario", None, config)
        if self.create_gate is not None:
            await self.create_gate.wait()
        self._scenario_counter += 1
        scenario_id = f"scn_{self._scenario_counter:03d}"
        self.scenarios[scenario_id] = {
            "scenario_id": scenario_id,
            **deepcopy(self.scenario_defaults),
            **deepcopy(config or {}),
        }
        self.ticks[scenario_id] = []
        return scenario_id

    async def get_scenario(self, scenario_id: str) -> Any:
        await self._record("get_scenario", scenario_id)
        return deepcopy(self._scenario(scenario_id))

    async def get_ticks(self, scenario_id: str) -> Any:
        await self._record("get_ticks", scenario_id)
        return deepcopy(self.ticks.get(scenario_id, []))

    async def get_scenario_time(self, scenario_id: str) -> Any:
        await self._record("get_scenario_time", scenario_id)
        return {
            "now": "2026-01-05T00:00:00+00:00",
            "decision_window_start": "2026-01-05T00:00:00+00:00",
            "decision_window_end": "2026-01-12T00:00:00+00:00",
        }

    async def get_sim_state(self, scenario_id: str) -> Any:
        await self._record("get_sim_state", scenario_id)
        return {"tick_index": 0}

    async def get_score_trace(self, scenario_id: str, year: Optional[int] = None) -> Any:
        await self._record("get_score_trace", scenario_id, year)
        return {"year": year, "points": []}

    async def put_portfolio(self, scenario_id: str, portfolio: dict[str, Any]) -> Any:
        await self._record("put_portfolio", scenario_id, portfolio)
        self._scenario(scenario_id)["portfolio"] = deepcopy(portfolio)
        return {"ok": True}

    async def put_constraints(self, scenario_id: str, constraints: dict[str, Any]) -> Any:
        await self._record("put_constraints", scenario_id, constraints)
        self._scenario(scenario_id)["constraints"] = deepcopy(constraints)
        return {"ok": True}

    async def put_inflow(self, scenario_id: str, amount: float) -> Any:
        await self._record("put_inflow", scenario_id, amount)
        self._scenario(scenario_id)["capital_inflow_amount"] = amount
        return {"ok": True}

    async def put_risk_posture(self, scenario_id: str, risk_posture: str) -> Any:
        await self._record("put_risk_posture", scenario_id, risk_posture)
        self._scenario(scenario_id)["risk_posture"] = risk_posture
        return {"ok": True}

    async def put_sector_sentiment(
        self, scenario_id: str, sector_sentiment: dict[str, float]
    ) -> Any:
        await self._record("put_sector_sentiment", scenario_id, sector_sentiment)
        self._scenario(scenario_id)["sector_sentiment"] = deepcopy(sector_sentiment)
        return {"ok": True}

    async def put_regime(self, scenario_id: str, regime: dict[str, Any]) -> Any:
        await self._record("put_regime", scenario_id, regime)
        self._scenario(scenario_id)["regime"] = deepcopy(regime)
        return {"ok": True}

    async def put_allocator_version(self, scenario_id: str, allocator_version: str) -> Any:
        await self._record("put_allocator_version", scenario_id, allocator_version)
        return {"ok": True}

    async def run_tick(self, scenario_id: str, body: Optional[dict[str, Any]] = None) -> Any:
        await self._record("run_tick", scenario_id, body)
        if self.tick_responses:
            response = self.tick_responses.pop(0)
        else:
            self._tick_counter += 1
            response = {
                "tick_id": f"tick_{self._tick_counter:03d}",
                "timestamp": f"2026-01-05T10:{self._tick_counter:02d}:00Z",
                "target_weights": {"BTC": 0.5, "ETH": 0.5},
                **{key: value for key, value in (body or {}).items() if value is not None},
            }
        if isinstance(response, dict) and response.get("tick_id"):
            self.ticks.setdefault(scenario_id, []).append(deepcopy(response))
        return deepcopy(response)

    async def post_performance(self, scenario_id: str, payload: dict[str, Any]) -> Any:
        await self._record("post_performance", scenario_id, payload)
        return {"ok": True}

    async def advance_time(self, scenario_id: str, delta: dict[str, Any]) -> Any:
        await self._record("advance_time", scenario_id, delta)
        return {"ok": True}

    async def set_time(self, scenario_id: str, sim_now: str) -> Any:
        await self._record("set_time", scenario_id, sim_now)
        return {"ok": True}

    async def sim_reset(self, scenario_id: str, body: Optional[dict[str, Any]] = None) -> Any:
        await self._record("sim_reset", scenario_id, body)
        return {"reset": True}

    async def sim_step(self, scenario_id: str, body: Optional[dict[str, Any]] = None) -> Any:
        await self._record("sim_step", scenario_id, body)
        return {"stepped": True}

    async def sim_run(self, scenario_id: str, body: Optional[dict[str, Any]] = None) -> Any:
        await self._record("sim_run", scenario_id, body)
        return {"tracks": {"a": [], "b": []}}

    async def aclose(self) -> None:
        self.closed = True
