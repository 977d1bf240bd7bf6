import pytest
from fastapi.testclient import TestClient

from src.api.main import app
from src.core.common.errors import DecisionServiceError, SessionInvalidatedError


def test_session_flow_edit_autosave_and_decide(session_runtime_test_harness):
    service = session_runtime_test_harness
    with TestClient(app) as client:
        created = client.post("/session")
        assert created.status_code == 201
        assert created.json()["session_id"] == "scn_001"
        assert created.json()["lifecycle"] == "READY"

        for payload in (
            {"id": "BTC", "name": "Bitcoin", "current_weight": 0.6},
            {"id": "ETH", "name": "Ethereum", "current_weight": 0.4},
        ):
            assert client.post("/session/drafts/assets", json=payload).status_code == 200
        edited = client.put("/session/drafts/inflow", json={"amount": 25000})
        assert edited.json()["save_states"]["inflow"]["touched"] is True

        flushed = client.post("/session/drafts/flush").json()
        assert flushed["save_states"]["portfolio"]["status"] == "SAVED"
        assert flushed["save_states"]["inflow"]["status"] == "SAVED"
        assert flushed["inflow"] == 25000.0

        decided = client.post("/session/decisions")
        assert decided.status_code == 200
        body = decided.json()
        assert body["tick"]["tick_id"] == "tick_001"
        assert body["allocation"]["turnover"] == pytest.approx(0.1)
        assert [item["tick_id"] for item in body["session"]["ticks"]] == ["tick_001"]

        ticks = client.get("/session/ticks").json()
        details = client.get("/session/ticks/tick_001").json()
        exported = client.get("/session/ticks/tick_001/export").json()
        latest = client.get("/session/allocation").json()

    assert len(service.calls_named("put_portfolio")) == 1
    assert service.calls_named("put_inflow")[0][2] == 25000.0
    assert ticks[0]["tick_id"] == "tick_001"
    assert details["allocator_version"]["value"] == "v1"
    assert exported["schema_version"] == "tick_export_v1"
    assert [row["id"] for row in latest["rows"]] == ["BTC", "ETH"]


def test_latest_allocation_is_null_without_decisions():
    with TestClient(app) as client:
        client.post("/session")
        response = client.get("/session/allocation")

    assert response.status_code == 200
    assert response.json() is None


def test_unknown_tick_is_404():
    with TestClient(app) as client:
        client.post("/session")
        response = client.get("/session/ticks/missing")
        hidden = client.delete("/session/ticks/missing")

    assert response.status_code == 404
    assert response.json()["detail"] == "TICK_NOT_FOUND"
    assert hidden.status_code == 404


def test_rejected_draft_edit_is_422():
    with TestClient(app) as client:
        client.post("/session")
        regime = client.put("/session/drafts/regime/max_risk_scale", json={"value": 1.0})
        sentiment = client.put(
            "/session/drafts/sector-sentiment", json={"sector_sentiment": "{oops"}
        )
        asset = client.patch("/session/drafts/assets/NOPE", json={"current_weight": 0.1})

    assert regime.status_code == 422
    assert "not defined for allocator version v1" in regime.json()["detail"]
    assert sentiment.status_code == 422
    assert asset.status_code == 422


def test_reload_without_session_is_409():
    with TestClient(app) as client:
        response = client.post("/session/reload")

    assert response.status_code == 409
    assert response.json()["detail"] == "SESSION_NOT_READY"


def test_decision_service_failure_is_502(session_runtime_test_harness):
    session_runtime_test_harness.failures["create_scenario"] = DecisionServiceError(
        "503 Service Unavailable: down", status_code=503
    )
    with TestClient(app) as client:
        response = client.post("/session")
        health = client.get("/health").json()

    assert response.status_code == 502
    assert response.json()["detail"] == "503 Service Unavailable: down"
    assert health["lifecycle"] == "ABSENT"


def test_failed_session_replacement_keeps_live_session(session_runtime_test_harness):
    with TestClient(app) as client:
        client.post("/session")
        session_runtime_test_harness.failures["create_scenario"] = DecisionServiceError(
            "503 Service Unavailable: down", status_code=503
        )
        response = client.post("/session")
        health = client.get("/health").json()

    assert response.status_code == 502
    assert health["session_id"] == "scn_001"
    assert health["lifecycle"] == "READY"


def test_invalidated_session_is_401(session_runtime_test_harness):
    with TestClient(app) as client:
        client.post("/session")
        session_runtime_test_harness.failures["get_scenario"] = SessionInvalidatedError(
            "401 Unauthorized: expired", status_code=401
        )
        response = client.post("/session/reload")

    assert response.status_code == 401


def test_mode_switch_creates_simulation_scenario(session_runtime_test_harness):
    with TestClient(app) as client:
        client.post("/session")
        response = client.put("/session/mode", json={"mode": "simulation"})
        run = client.post("/session/simulation/run", json={"tick_count": 3})

    assert response.status_code == 200
    assert response.json()["session_id"] == "scn_002"
    assert response.json()["run_decision_type"] == "simulation"
    assert run.status_code == 200
    sent = session_runtime_test_harness.calls_named("sim_run")[0][2]
    assert sent["simulation_config"]["tick_count"] == 3


def test_scenario_time_routes(session_runtime_test_harness):
    with TestClient(app) as client:
        client.post("/session")
        advanced = client.post("/session/time/advance", json={"days": 2})
        invalid = client.post("/session/time/advance", json={"days": -1})

    assert advanced.status_code == 200
    assert advanced.json()["now"] == "2026-01-05T00:00:00+00:00"
    assert invalid.status_code == 422
    assert session_runtime_test_harness.calls_named("advance_time")[0][2] == {
        "days": 2,
        "hours": 0,
        "minutes": 0,
    }


def test_import_preview_and_apply_routes():
    with TestClient(app) as client:
        client.post("/session")
        preview = client.post(
            "/session/drafts/import/preview",
            json={"connector_id": "csv_v1", "payload": {"csv_text": "symbol\nBTC\nETH\n"}},
        )
        applied = client.post("/session/drafts/import/apply", json={"preview": preview.json()})
        unknown = client.post(
            "/session/drafts/import/preview", json={"connector_id": "nope", "payload": {}}
        )

    assert preview.status_code == 200
    assert preview.json()["warnings"][0]["code"] == "EQUAL_WEIGHT_FALLBACK"
    assert applied.status_code == 200
    assert applied.json()["message"] == "Portfolio imported into editor"
    assert [item["current_weight"] for item in applied.json()["portfolio"]["assets"]] == [0.5, 0.5]
    assert unknown.status_code == 404
