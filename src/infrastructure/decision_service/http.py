import logging
import time
from typing import Any, Optional
from urllib.parse import quote

import httpx

from src.core.common.errors import DecisionServiceError, SessionInvalidatedError
from src.core.session.repository import DecisionService

logger = logging.getLogger(__name__)

SESSION_INVALIDATION_STATUSES = frozenset({401, 403})


def parse_scenario_id(created: Any) -> Optional[str]:
    if isinstance(created, str):
        return created or None
    if not isinstance(created, dict):
        return None
    for key in ("scenario_id", "id"):
        value = created.get(key)
        if isinstance(value, str) and value:
            return value
    return None


class HttpDecisionService(DecisionService):
    """Async client for the remote decision service."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        started = time.perf_counter()
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            logger.warning(
                "decision_service.request",
                extra={
                    "extra_fields": {
                        "http_method": method,
                        "path": path,
                        "outcome": "TRANSPORT_ERROR",
                        "error": str(exc),
                        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
                    }
                },
            )
            raise DecisionServiceError(f"Decision service unreachable: {exc}") from exc

        latency_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            "decision_service.request",
            extra={
                "extra_fields": {
                    "http_method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "latency_ms": latency_ms,
                }
            },
        )

        if response.status_code in SESSION_INVALIDATION_STATUSES:
            raise SessionInvalidatedError(
                f"{response.status_code} {response.reason_phrase}: {response.text}",
                status_code=response.status_code,
            )
        if response.is_error:
            raise DecisionServiceError(
                f"{response.status_code} {response.reason_phrase}: {response.text}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise DecisionServiceError(
                "DECISION_SERVICE_INVALID_JSON", status_code=response.status_code
            ) from exc

    @staticmethod
    def _scenario_path(scenario_id: str, suffix: str = "") -> str:
        return f"/scenario/{quote(scenario_id, safe='')}{suffix}"

    async def create_scenario(self, config: Optional[dict[str, Any]] = None) -> str:
        created = await self._request("POST", "/scenario", json=config or {})
        scenario_id = parse_scenario_id(created)
        if scenario_id is None:
            raise DecisionServiceError("createScenario did not return a scenario id")
        return scenario_id

    async def get_scenario(self, scenario_id: str) -> Any:
        return await self._request("GET", self._scenario_path(scenario_id))

    async def get_ticks(self, scenario_id: str) -> Any:
        return await self._request("GET", self._scenario_path(scenario_id, "/ticks"))

    async def get_scenario_time(self, scenario_id: str) -> Any:
        return await self._request("GET", self._scenario_path(scenario_id, "/time"))

    async def get_sim_state(self, scenario_id: str) -> Any:
        return await self._request("GET", self._scenario_path(scenario_id, "/sim/state"))

    async def get_score_trace(self, scenario_id: str, year: Optional[int] = None) -> Any:
        params = {"year": year} if year is not None else None
        return await self._request(
            "GET", self._scenario_path(scenario_id, "/sim/score_trace"), params=params
        )

    async def put_portfolio(self, scenario_id: str, portfolio: dict[str, Any]) -> Any:
        return await self._request(
            "PUT", self._scenario_path(scenario_id, "/portfolio"), json=portfolio
        )

    async def put_constraints(self, scenario_id: str, constraints: dict[str, Any]) -> Any:
        return await self._request(
            "PUT", self._scenario_path(scenario_id, "/constraints"), json=constraints
        )

    async def put_inflow(self, scenario_id: str, amount: float) -> Any:
        return await self._request(
            "PUT",
            self._scenario_path(scenario_id, "/inflow"),
            json={"capital_inflow_amount": amount},
        )

    async def put_risk_posture(self, scenario_id: str, risk_posture: str) -> Any:
        return await self._request(
            "PUT",
            self._scenario_path(scenario_id, "/risk_posture"),
            json={"risk_posture": risk_posture},
        )

    async def put_sector_sentiment(
        self, scenario_id: str, sector_sentiment: dict[str, float]
    ) -> Any:
        return await self._request(
            "PUT",
            self._scenario_path(scenario_id, "/sector_sentiment"),
            json={"sector_sentiment": sector_sentiment},
        )

    async def put_regime(self, scenario_id: str, regime: dict[str, Any]) -> Any:
        return await self._request("PUT", self._scenario_path(scenario_id, "/regime"), json=regime)

    async def put_allocator_version(self, scenario_id: str, allocator_version: str) -> Any:
        return await self._request(
            "PUT",
            self._scenario_path(scenario_id, "/allocator_version"),
            json={"allocator_version": allocator_version},
        )

    async def run_tick(self, scenario_id: str, body: Optional[dict[str, Any]] = None) -> Any:
        return await self._request("POST", self._scenario_path(scenario_id, "/tick"), json=body)

    async def post_performance(self, scenario_id: str, payload: dict[str, Any]) -> Any:
        return await self._request(
            "POST", self._scenario_path(scenario_id, "/performance"), json=payload
        )

    async def advance_time(self, scenario_id: str, delta: dict[str, Any]) -> Any:
        return await self._request(
            "POST", self._scenario_path(scenario_id, "/time/advance"), json=delta
        )

    async def set_time(self, scenario_id: str, sim_now: str) -> Any:
        return await self._request(
            "POST", self._scenario_path(scenario_id, "/time/set"), json={"sim_now": sim_now}
        )

    async def sim_reset(self, scenario_id: str, body: Optional[dict[str, Any]] = None) -> Any:
        return await self._request(
            "POST", self._scenario_path(scenario_id, "/sim/reset"), json=body or {}
        )

    async def sim_step(self, scenario_id: str, body: Optional[dict[str, Any]] = None) -> Any:
        return await self._request(
            "POST", self._scenario_path(scenario_id, "/sim/step"), json=body or {}
        )

    async def sim_run(self, scenario_id: str, body: Optional[dict[str, Any]] = None) -> Any:
        return await self._request(
            "POST", self._scenario_path(scenario_id, "/sim/run"), json=body or {}
        )
