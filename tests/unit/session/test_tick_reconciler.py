from src.core.session.ticks import (
    DECISION_RAW_KEY,
    EPOCH_TIMESTAMP,
    UI_CONTEXT_KEY,
    TickReconciler,
    build_export_payload,
    make_synthetic_tick,
    merge,
    normalize_tick,
    tick_from_decision_response,
)
from tests.factories import tick


def test_normalize_drops_ticks_without_id_and_bad_narratives():
    assert normalize_tick({"timestamp": "2026-01-05T10:00:00Z"}) is None
    assert normalize_tick({"tick_id": ""}) is None

    normalized = normalize_tick({"tick_id": "t1", "narrative": "text", "ai_explanation": {"a": 1}})
    assert normalized["timestamp"] == EPOCH_TIMESTAMP
    assert "narrative" not in normalized
    assert normalized["ai_explanation"] == {"a": 1}


def test_merge_orders_newest_first_and_server_wins():
    server = [tick("t1", "2026-01-05T10:00:00Z", source="server")]
    local = [
        tick("t1", "2026-01-05T10:00:00Z", source="local", **{UI_CONTEXT_KEY: {"policyLabel": "A"}}),
        tick("t2", "2026-01-06T10:00:00Z", source="local"),
    ]

    merged = merge(server, local)

    assert [item["tick_id"] for item in merged] == ["t2", "t1"]
    assert merged[1]["source"] == "server"
    assert merged[1][UI_CONTEXT_KEY] == {"policyLabel": "A"}


def test_merge_keeps_server_ui_context_when_present():
    server = [tick("t1", **{UI_CONTEXT_KEY: {"policyLabel": "server"}})]
    local = [tick("t1", **{UI_CONTEXT_KEY: {"policyLabel": "local"}})]

    assert merge(server, local)[0][UI_CONTEXT_KEY] == {"policyLabel": "server"}


def test_merge_is_idempotent_and_skips_hidden_and_idless():
    server = [tick("t1"), tick(None), tick("t1", "2026-01-09T00:00:00Z"), tick("t3")]

    once = merge(server, [], {"t3"})
    twice = merge(once, [], {"t3"})

    assert [item["tick_id"] for item in once] == ["t1"]
    assert once == twice


def test_synthetic_tick_copies_decision_fields():
    decision = {
        "target_weights": {"BTC": 0.6, "ETH": 0.4},
        "allocator_version": "v2",
        "plan_id": "plan_1",
        "narrative": {"summary": "ok"},
        "unrelated": True,
    }

    synthetic = make_synthetic_tick(decision)

    assert synthetic["tick_id"].startswith("client_")
    assert synthetic["target_weights"] == {"BTC": 0.6, "ETH": 0.4}
    assert synthetic["allocator_version"] == "v2"
    assert synthetic["meta"] == {"plan_id": "plan_1"}
    assert synthetic["ai_explanation"] == {"summary": "ok"}
    assert synthetic["next_allocation_plan"] == {"allocations_usd": None}
    assert "unrelated" not in synthetic
    assert synthetic[DECISION_RAW_KEY] == decision


def test_synthetic_ids_are_unique():
    first = make_synthetic_tick({"target_weights": {"BTC": 1.0}})
    second = make_synthetic_tick({"target_weights": {"BTC": 1.0}})

    assert first["tick_id"] != second["tick_id"]


def test_decision_response_uses_server_tick_when_it_has_an_id():
    server = tick_from_decision_response({"tick_id": "t9", "timestamp": "2026-01-05T10:00:00Z"})

    assert server["tick_id"] == "t9"
    assert DECISION_RAW_KEY not in server
    assert tick_from_decision_response(None) is None
    assert tick_from_decision_response(["list"]) is None


def test_reconciler_replaces_local_with_server_copy():
    reconciler = TickReconciler()
    reconciler.add_local(tick("t1", source="local"))
    assert [item["source"] for item in reconciler.ticks] == ["local"]

    reconciler.apply_server_ticks([tick("t1", source="server")])

    assert [item["source"] for item in reconciler.ticks] == ["server"]


def test_reconciler_keeps_local_only_ticks_across_server_refresh():
    reconciler = TickReconciler()
    reconciler.add_local(tick("client_1", "2026-01-07T00:00:00Z"))

    reconciler.apply_server_ticks([tick("t1")])
    reconciler.apply_server_ticks("not a list")

    assert [item["tick_id"] for item in reconciler.ticks] == ["client_1"]


def test_reconciler_hide_and_clear_hidden():
    reconciler = TickReconciler()
    reconciler.apply_server_ticks([tick("t1"), tick("t2", "2026-01-06T00:00:00Z")])

    assert [item["tick_id"] for item in reconciler.hide("t2")] == ["t1"]
    assert reconciler.get("t2") is None
    reconciler.clear_hidden()
    assert reconciler.get("t2") is not None


def test_export_payload_labels_simulation_ticks():
    exported = build_export_payload(
        tick("t1", decision_type="simulation", risk_summary={"vol": 0.2})
    )

    assert exported["schema_version"] == "tick_export_v1"
    assert exported["export_label"] == "SIMULATION"
    assert exported["tick"]["schema_version"] == "tick_v1"
    assert exported["decision"]["risk_summary"] == {"vol": 0.2}
    assert exported["decision"]["warnings"] is None
    assert "export_label" not in build_export_payload(tick("t2"))
