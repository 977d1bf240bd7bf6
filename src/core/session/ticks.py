"""
Decision record (tick) reconciliation.

Server ticks are authoritative; locally synthesised ticks are shown only until a server copy with
the same id appears. Ticks without an id never enter the merged list.
"""

import logging
import secrets
from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

logger = logging.getLogger(__name__)

Tick = Dict[str, Any]

EPOCH_TIMESTAMP = "1970-01-01T00:00:00.000Z"
UI_CONTEXT_KEY = "_ui_context"
DECISION_RAW_KEY = "_decision_raw"
TICK_SCHEMA_VERSION = "tick_v1"
TICK_EXPORT_SCHEMA_VERSION = "tick_export_v1"

SYNTHETIC_DECISION_KEYS: tuple[str, ...] = (
    "allocator_version",
    "policy_id",
    "policy_name",
    "analysis_meta",
    "decision_type",
    "prior_tick_id",
    "prior_target_weights",
    "prior_source",
    "prior_portfolio_weights",
    "policy_snapshot",
    "risk_summary",
    "stability_metrics",
    "pruning_summary",
    "analysis_summary",
    "linkage_scope",
    "warnings",
)

EXPORT_DECISION_KEYS: tuple[str, ...] = (
    "policy_snapshot",
    "risk_summary",
    "stability_metrics",
    "pruning_summary",
    "role_effects",
    "role_constraints_summary",
    "analysis_summary",
    "policy_effects",
    "policy_sensitivity",
    "policy_equivalence",
    "linkage_scope",
    "warnings",
)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def tick_id_of(tick: Any) -> Optional[str]:
    if not isinstance(tick, Mapping):
        return None
    value = tick.get("tick_id")
    return value if isinstance(value, str) and value else None


def normalize_tick(tick: Any) -> Optional[Tick]:
    """Return a list-safe copy of a tick, or None when it has no usable id."""
    tick_id = tick_id_of(tick)
    if tick_id is None:
        return None
    normalized: Tick = dict(tick)
    timestamp = normalized.get("timestamp")
    normalized["timestamp"] = timestamp if isinstance(timestamp, str) and timestamp else EPOCH_TIMESTAMP
    for key in ("narrative", "ai_explanation"):
        if key in normalized and not isinstance(normalized[key], Mapping):
            normalized.pop(key)
    return normalized


def _sort_key(tick: Tick) -> str:
    return str(tick.get("timestamp") or "")


def merge(
    server_ticks: Iterable[Any],
    local_only_ticks: Iterable[Any] = (),
    hidden_ids: Optional[Set[str]] = None,
) -> List[Tick]:
    """Merge server and local ticks into one list, newest first.

    On an id collision the server copy wins; a local ``_ui_context`` annotation is carried over
    when the server copy has none.
    """
    hidden = hidden_ids or set()
    local: Dict[str, Tick] = {}
    for tick in local_only_ticks:
        normalized = normalize_tick(tick)
        if normalized is not None:
            local.setdefault(normalized["tick_id"], normalized)

    merged: Dict[str, Tick] = {}
    for tick in server_ticks:
        normalized = normalize_tick(tick)
        if normalized is None or normalized["tick_id"] in merged:
            continue
        tick_id = normalized["tick_id"]
        local_copy = local.get(tick_id)
        if (
            local_copy is not None
            and UI_CONTEXT_KEY not in normalized
            and UI_CONTEXT_KEY in local_copy
        ):
            normalized[UI_CONTEXT_KEY] = local_copy[UI_CONTEXT_KEY]
        merged[tick_id] = normalized

    for tick_id, tick in local.items():
        merged.setdefault(tick_id, tick)

    visible = [tick for tick_id, tick in merged.items() if tick_id not in hidden]
    return sorted(visible, key=_sort_key, reverse=True)


def make_synthetic_tick(decision: Mapping[str, Any]) -> Tick:
    """Fabricate a list-safe tick for a decision payload the service returned without an id."""
    now = utc_now_iso()
    supplied_id = decision.get("tick_id")
    tick_id = (
        supplied_id
        if isinstance(supplied_id, str) and supplied_id
        else f"client_{now}_{secrets.token_hex(6)}"
    )
    supplied_timestamp = decision.get("timestamp")
    timestamp = (
        supplied_timestamp if isinstance(supplied_timestamp, str) and supplied_timestamp else now
    )

    meta = {
        key: decision[key]
        for key in ("plan_id", "decision_window_start", "decision_window_end")
        if isinstance(decision.get(key), str)
    }
    explanation = decision.get("ai_explanation")
    if not isinstance(explanation, Mapping):
        explanation = decision.get("narrative")

    tick: Tick = {
        "tick_id": tick_id,
        "timestamp": timestamp,
        "schema_version": TICK_SCHEMA_VERSION,
        "next_allocation_plan": {"allocations_usd": None},
        "meta": meta,
    }
    if isinstance(explanation, Mapping):
        tick["ai_explanation"] = deepcopy(dict(explanation))
    for key in ("target_weights", "next_allocation_weights"):
        if key in decision:
            tick[key] = deepcopy(decision[key])
    for key in SYNTHETIC_DECISION_KEYS:
        if key in decision:
            tick[key] = deepcopy(decision[key])
    tick[DECISION_RAW_KEY] = deepcopy(dict(decision))

    logger.info(
        "tick.synthesized",
        extra={"extra_fields": {"tick_id": tick_id, "decision_keys": sorted(decision)}},
    )
    return tick


def tick_from_decision_response(response: Any) -> Optional[Tick]:
    """A usable tick for a run-tick response: the server tick when it has an id, else a synthetic one."""
    normalized = normalize_tick(response)
    if normalized is not None:
        return normalized
    if isinstance(response, Mapping):
        return make_synthetic_tick(response)
    return None


def build_export_payload(tick: Mapping[str, Any]) -> Dict[str, Any]:
    decision_type = tick.get("decision_type")
    exported_tick = dict(tick)
    if not isinstance(exported_tick.get("schema_version"), str):
        exported_tick["schema_version"] = TICK_SCHEMA_VERSION
    payload: Dict[str, Any] = {
        "schema_version": TICK_EXPORT_SCHEMA_VERSION,
        "exported_at": utc_now_iso(),
    }
    if decision_type == "simulation":
        payload["export_label"] = "SIMULATION"
    payload["tick"] = exported_tick
    payload["decision"] = {key: tick.get(key) for key in EXPORT_DECISION_KEYS}
    return payload


class TickReconciler:
    """Holds the last-known-good server ticks, optimistic local ticks and the hidden set."""

    def __init__(self) -> None:
        self._server: List[Tick] = []
        self._local: List[Tick] = []
        self._hidden: Set[str] = set()
        self._visible: List[Tick] = []

    @property
    def ticks(self) -> List[Tick]:
        return list(self._visible)

    @property
    def hidden_ids(self) -> Set[str]:
        return set(self._hidden)

    def get(self, tick_id: str) -> Optional[Tick]:
        for tick in self._visible:
            if tick["tick_id"] == tick_id:
                return tick
        return None

    def apply_server_ticks(self, server_ticks: Any) -> List[Tick]:
        # A non-list response is treated as an empty list, matching an empty history.
        self._server = list(server_ticks) if isinstance(server_ticks, list) else []
        return self._recompute()

    def add_local(self, tick: Tick) -> List[Tick]:
        normalized = normalize_tick(tick)
        if normalized is None:
            return self.ticks
        tick_id = normalized["tick_id"]
        self._local = [normalized, *[t for t in self._local if t["tick_id"] != tick_id]]
        return self._recompute()

    def hide(self, tick_id: str) -> List[Tick]:
        self._hidden.add(tick_id)
        return self._recompute()

    def clear_hidden(self) -> None:
        self._hidden.clear()
        self._recompute()

    def reset(self) -> None:
        self._server = []
        self._local = []
        self._hidden = set()
        self._visible = []

    def _recompute(self) -> List[Tick]:
        self._visible = merge(self._server, self._local, self._hidden)
        return self.ticks
