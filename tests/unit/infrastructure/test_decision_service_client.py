import asyncio
import json

import httpx
import pytest

from src.core.common.errors import DecisionServiceError, SessionInvalidatedError
from src.infrastructure.decision_service import HttpDecisionService, parse_scenario_id


def _client(handler) -> HttpDecisionService:
    return HttpDecisionService(
        base_url="http://decision.test/", transport=httpx.MockTransport(handler)
    )


def _run(coro):
    return asyncio.run(coro)


def test_parse_scenario_id_shapes():
    assert parse_scenario_id("scn_1") == "scn_1"
    assert parse_scenario_id({"scenario_id": "scn_2"}) == "scn_2"
    assert parse_scenario_id({"id": "scn_3"}) == "scn_3"
    assert parse_scenario_id({"scenario_id": ""}) is None
    assert parse_scenario_id(None) is None
    assert parse_scenario_id("") is None


def test_create_scenario_posts_config_and_parses_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"scenario_id": "scn_1"})

    async def scenario():
        client = _client(handler)
        try:
            return await client.create_scenario({"mode": "simulation"})
        finally:
            await client.aclose()

    assert _run(scenario()) == "scn_1"
    assert seen == {
        "method": "POST",
        "url": "http://decision.test/scenario",
        "body": {"mode": "simulation"},
    }


def test_create_scenario_without_id_fails():
    async def scenario():
        client = _client(lambda request: httpx.Response(200, json={"ok": True}))
        try:
            await client.create_scenario()
        finally:
            await client.aclose()

    with pytest.raises(DecisionServiceError, match="did not return a scenario id"):
        _run(scenario())


def test_scenario_id_is_url_encoded_and_bodies_are_wrapped():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append((request.method, request.url.raw_path.decode(), request.content))
        return httpx.Response(200, json={"ok": True})

    async def scenario():
        client = _client(handler)
        try:
            await client.put_inflow("scn/1", 2500.0)
            await client.put_risk_posture("scn/1", "neutral")
            await client.get_score_trace("scn/1", 2026)
        finally:
            await client.aclose()

    _run(scenario())

    assert requests[0][0] == "PUT"
    assert requests[0][1] == "/scenario/scn%2F1/inflow"
    assert json.loads(requests[0][2]) == {"capital_inflow_amount": 2500.0}
    assert json.loads(requests[1][2]) == {"risk_posture": "neutral"}
    assert requests[2][1] == "/scenario/scn%2F1/sim/score_trace?year=2026"


@pytest.mark.parametrize("status_code", [401, 403])
def test_auth_failures_invalidate_the_session(status_code):
    async def scenario():
        client = _client(lambda request: httpx.Response(status_code, text="expired"))
        try:
            await client.get_scenario("scn_1")
        finally:
            await client.aclose()

    with pytest.raises(SessionInvalidatedError) as exc:
        _run(scenario())

    assert exc.value.status_code == status_code
    assert "expired" in str(exc.value)


def test_server_errors_carry_status_and_body():
    async def scenario():
        client = _client(lambda request: httpx.Response(500, text="boom"))
        try:
            await client.run_tick("scn_1", {"decision_type": "allocation"})
        finally:
            await client.aclose()

    with pytest.raises(DecisionServiceError) as exc:
        _run(scenario())

    assert not isinstance(exc.value, SessionInvalidatedError)
    assert exc.value.status_code == 500
    assert str(exc.value) == "500 Internal Server Error: boom"


def test_transport_errors_are_wrapped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        client = _client(handler)
        try:
            await client.get_ticks("scn_1")
        finally:
            await client.aclose()

    with pytest.raises(DecisionServiceError, match="Decision service unreachable"):
        _run(scenario())


def test_empty_and_invalid_bodies():
    async def scenario():
        empty = _client(lambda request: httpx.Response(204))
        invalid = _client(lambda request: httpx.Response(200, text="<html>"))
        try:
            result = await empty.put_regime("scn_1", {"mission": "risk_adjusted_return"})
            with pytest.raises(DecisionServiceError, match="DECISION_SERVICE_INVALID_JSON"):
                await invalid.get_ticks("scn_1")
            return result
        finally:
            await empty.aclose()
            await invalid.aclose()

    assert _run(scenario()) is None
