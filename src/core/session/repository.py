from typing import Any, List, Optional, Protocol, TypeVar

from src.core.session.models import AllocationPolicy, SavedPortfolio

RecordT = TypeVar("RecordT", AllocationPolicy, SavedPortfolio)


class LocalStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class LibraryRepository(Protocol[RecordT]):
    def list(self) -> List[RecordT]: ...

    def get(self, *, item_id: str) -> Optional[RecordT]: ...

    def put(self, record: RecordT) -> None: ...

    def delete(self, *, item_id: str) -> bool: ...


class SelectionRepository(Protocol):
    def get_selection(self, name: str) -> Optional[str]: ...

    def set_selection(self, name: str, item_id: Optional[str]) -> None: ...


class DecisionService(Protocol):
    async def create_scenario(self, config: Optional[dict[str, Any]] = None) -> str: ...

    async def get_scenario(self, scenario_id: str) -> Any: ...

    async def get_ticks(self, scenario_id: str) -> Any: ...

    async def get_scenario_time(self, scenario_id: str) -> Any: ...

    async def get_sim_state(self, scenario_id: str) -> Any: ...

    async def get_score_trace(self, scenario_id: str, year: Optional[int] = None) -> Any: ...

    async def put_portfolio(self, scenario_id: str, portfolio: dict[str, Any]) -> Any: ...

    async def put_constraints(self, scenario_id: str, constraints: dict[str, Any]) -> Any: ...

    async def put_inflow(self, scenario_id: str, amount: float) -> Any: ...

    async def put_risk_posture(self, scenario_id: str, risk_posture: str) -> Any: ...

    async def put_sector_sentiment(
        self, scenario_id: str, sector_sentiment: dict[str, float]
    ) -> Any: ...

    async def put_regime(self, scenario_id: str, regime: dict[str, Any]) -> Any: ...

    async def put_allocator_version(self, scenario_id: str, allocator_version: str) -> Any: ...

    async def run_tick(self, scenario_id: str, body: Optional[dict[str, Any]] = None) -> Any: ...

    async def post_performance(self, scenario_id: str, payload: dict[str, Any]) -> Any: ...

    async def advance_time(self, scenario_id: str, delta: dict[str, Any]) -> Any: ...

    async def set_time(self, scenario_id: str, sim_now: str) -> Any: ...

    async def sim_reset(self, scenario_id: str, body: Optional[dict[str, Any]] = None) -> Any: ...

    async def sim_step(self, scenario_id: str, body: Optional[dict[str, Any]] = None) -> Any: ...

    async def sim_run(self, scenario_id: str, body: Optional[dict[str, Any]] = None) -> Any: ...

    async def aclose(self) -> None: ...
