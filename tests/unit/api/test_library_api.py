from fastapi.testclient import TestClient

from src.api.main import app


def _seed_portfolio(client: TestClient) -> None:
    for payload in (
        {"id": "BTC", "name": "Bitcoin", "current_weight": 0.6},
        {"id": "ETH", "name": "Ethereum", "current_weight": 0.4},
    ):
        client.post("/session/drafts/assets", json=payload)


def test_policy_library_save_select_and_delete():
    with TestClient(app) as client:
        client.post("/session")
        client.put("/session/drafts/allocator-version", json={"allocator_version": "v2"})
        saved = client.post("/library/policies", json={"name": "Balanced"})
        assert saved.status_code == 200
        policy_id = saved.json()["id"]

        listed = client.get("/library/policies").json()
        selected = client.post(f"/library/policies/{policy_id}/select")
        deleted = client.delete(f"/library/policies/{policy_id}")
        missing = client.post(f"/library/policies/{policy_id}/select")

    assert saved.json()["name"] == "Balanced"
    assert saved.json()["allocatorVersion"] == "v2"
    assert [item["id"] for item in listed] == [policy_id]
    assert selected.json()["selected_policy_id"] == policy_id
    assert deleted.status_code == 204
    assert missing.status_code == 404


def test_portfolio_library_save_and_load():
    with TestClient(app) as client:
        client.post("/session")
        _seed_portfolio(client)
        saved = client.post("/library/portfolios", json={"name": "Core"}).json()
        client.delete("/session/drafts/portfolio")
        loaded = client.post(f"/library/portfolios/{saved['id']}/load")

    assert saved["id"].startswith("portfolio_")
    assert loaded.status_code == 200
    assert [item["id"] for item in loaded.json()["portfolio"]["assets"]] == ["BTC", "ETH"]
    assert loaded.json()["selected_portfolio_id"] == saved["id"]


def test_policy_comparison_routes(session_runtime_test_harness):
    with TestClient(app) as client:
        client.post("/session")
        _seed_portfolio(client)
        first = client.post("/library/policies", json={"name": "A"}).json()
        client.post("/library/policies/new")
        second = client.post("/library/policies", json={"name": "B"}).json()

        result = client.post(
            "/comparisons", json={"policy_a_id": first["id"], "policy_b_id": second["id"]}
        )
        assert result.status_code == 200
        run_id = result.json()["runId"]
        listed = client.get("/comparisons").json()
        fetched = client.get(f"/comparisons/{run_id}")
        rows = client.get(f"/comparisons/{run_id}/rows").json()
        missing = client.get("/comparisons/ab_missing")
        ticks = client.get("/session/ticks").json()

    assert [item["runId"] for item in listed] == [run_id]
    assert fetched.status_code == 200
    assert set(rows) == {"a", "b"}
    assert [row["id"] for row in rows["a"]["rows"]] == ["BTC", "ETH"]
    assert missing.status_code == 404
    assert ticks == []
    created = session_runtime_test_harness.calls_named("create_scenario")
    assert len(created) == 3


def test_comparison_with_unknown_policy_is_404():
    with TestClient(app) as client:
        client.post("/session")
        response = client.post(
            "/comparisons", json={"policy_a_id": "nope", "policy_b_id": "nope"}
        )

    assert response.status_code == 404
