import argparse
from typing import Any

import httpx

DEMO_ASSETS = [
    {
        "id": "BTC",
        "name": "Bitcoin",
        "current_weight": 0.5,
        "expected_return": 0.2,
        "volatility": 0.6,
        "risk_class": "large_cap_crypto",
        "role": "core",
    },
    {
        "id": "ETH",
        "name": "Ethereum",
        "current_weight": 0.3,
        "expected_return": 0.22,
        "volatility": 0.7,
        "risk_class": "large_cap_crypto",
        "role": "core",
    },
    {
        "id": "USDC",
        "name": "USD Coin",
        "current_weight": 0.2,
        "expected_return": 0.04,
        "volatility": 0.01,
        "risk_class": "stablecoin",
        "role": "defensive",
    },
]


class DemoRunError(RuntimeError):
    pass


def _assert(condition: bool, message: str) -> None:
    if not condition:
        raise DemoRunError(message)


def _run_step(
    client: httpx.Client,
    *,
    name: str,
    method: str,
    path: str,
    expected_http: int = 200,
    payload: Any = None,
) -> Any:
    response = client.request(method, path, json=payload)
    _assert(
        response.status_code == expected_http,
        f"{name}: expected HTTP {expected_http}, got {response.status_code}, body={response.text}",
    )
    if response.content:
        return response.json()
    return {}


def run_session_demo(base_url: str) -> None:
    timeout = httpx.Timeout(60.0)
    with httpx.Client(base_url=base_url, timeout=timeout) as client:
        session = _run_step(
            client, name="create_session", method="POST", path="/session", expected_http=201
        )
        _assert(session["lifecycle"] == "READY", "create_session: session not ready")

        _run_step(client, name="clear_portfolio", method="DELETE", path="/session/drafts/portfolio")
        for asset in DEMO_ASSETS:
            _run_step(
                client,
                name=f"add_asset_{asset['id']}",
                method="POST",
                path="/session/drafts/assets",
                payload=asset,
            )
        _run_step(
            client,
            name="set_constraint",
            method="PUT",
            path="/session/drafts/constraints",
            payload={"field": "max_asset_weight", "value": 0.55},
        )
        _run_step(
            client,
            name="set_inflow",
            method="PUT",
            path="/session/drafts/inflow",
            payload={"amount": 25000},
        )
        flushed = _run_step(
            client, name="flush_autosave", method="POST", path="/session/drafts/flush"
        )
        for field in ("portfolio", "constraints", "inflow"):
            status = flushed["save_states"].get(field, {}).get("status")
            _assert(status == "SAVED", f"flush_autosave: {field} ended {status}")

        decided = _run_step(
            client, name="run_decision", method="POST", path="/session/decisions"
        )
        tick = decided.get("tick")
        _assert(tick is not None, "run_decision: no decision record returned")
        tick_id = tick["tick_id"]
        _assert(
            any(item["tick_id"] == tick_id for item in decided["session"]["ticks"]),
            "run_decision: new tick missing from the tick list",
        )

        details = _run_step(
            client, name="tick_details", method="GET", path=f"/session/ticks/{tick_id}"
        )
        _assert(
            details["allocator_version"]["missing"] is False,
            "tick_details: allocator version missing",
        )
        exported = _run_step(
            client, name="export_tick", method="GET", path=f"/session/ticks/{tick_id}/export"
        )
        _assert(exported["schema_version"] == "tick_export_v1", "export_tick: unexpected schema")

        policy_a = _run_step(
            client,
            name="save_policy_a",
            method="POST",
            path="/library/policies",
            payload={"name": "Demo A"},
        )
        _run_step(client, name="new_policy", method="POST", path="/library/policies/new")
        _run_step(
            client,
            name="set_allocator_version",
            method="PUT",
            path="/session/drafts/allocator-version",
            payload={"allocator_version": "v2"},
        )
        policy_b = _run_step(
            client,
            name="save_policy_b",
            method="POST",
            path="/library/policies",
            payload={"name": "Demo B"},
        )
        comparison = _run_step(
            client,
            name="run_comparison",
            method="POST",
            path="/comparisons",
            payload={"policy_a_id": policy_a["id"], "policy_b_id": policy_b["id"]},
        )
        rows = _run_step(
            client,
            name="comparison_rows",
            method="GET",
            path=f"/comparisons/{comparison['runId']}/rows",
        )
        _assert(set(rows) == {"a", "b"}, "comparison_rows: expected rows for both policies")

        ticks_after = _run_step(client, name="list_ticks", method="GET", path="/session/ticks")
        _assert(
            len(ticks_after) == len(decided["session"]["ticks"]),
            "run_comparison: live session ticks changed",
        )

    print(f"Session demo passed for {base_url}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Walk a live decision session through edit, autosave, decide and compare"
    )
    parser.add_argument(
        "--base-url", required=True, help="API base URL, for example http://127.0.0.1:8001"
    )
    args = parser.parse_args()
    run_session_demo(args.base_url)
