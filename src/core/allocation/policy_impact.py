import math
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field

POLICY_IMPACT_EPS = 1e-6

V1_IGNORED_KNOBS: tuple[str, ...] = (
    "confidence_level",
    "correlation_state",
    "liquidity_state",
    "risk_posture",
    "mission",
)


class ResolvedAllocatorVersion(BaseModel):
    value: str = Field(description="Allocator version that produced the decision.", examples=["v2"])
    missing: bool = Field(description="True when no source carried a version.")


class PolicyRef(BaseModel):
    policy_id: str = Field(examples=["pol_123"])
    policy_name: str = Field(examples=["Balanced"])
    label: str = Field(description="Name when known, otherwise the id.", examples=["Balanced"])


class PolicyImpactDetails(BaseModel):
    effects_available: bool = Field(description="False when the decision carries no policy effects.")
    inactive_knob_reasons: list[str] = Field(default_factory=list)
    divergence_conditions: list[str] = Field(default_factory=list)


def _as_mapping(value: Any) -> Optional[Mapping[str, Any]]:
    return value if isinstance(value, Mapping) else None


def _as_text(value: Any) -> Optional[str]:
    return value.strip() if isinstance(value, str) and value.strip() else None


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def resolve_allocator_version(result: Mapping[str, Any]) -> ResolvedAllocatorVersion:
    candidates = (
        result.get("allocator_version"),
        (_as_mapping(result.get("analysis_meta")) or {}).get("allocator_version"),
        (_as_mapping(result.get("raw_tick")) or {}).get("allocator_version"),
    )
    for candidate in candidates:
        text = _as_text(candidate)
        if text:
            return ResolvedAllocatorVersion(value=text, missing=False)
    return ResolvedAllocatorVersion(value="unknown", missing=True)


def resolve_policy_ref(result: Mapping[str, Any]) -> PolicyRef:
    policy_id = _as_text(result.get("policy_id"))
    policy_name = _as_text(result.get("policy_name"))
    if policy_id is None and policy_name is None:
        analysis_meta = _as_mapping(result.get("analysis_meta")) or {}
        policy_id = _as_text(analysis_meta.get("policy_id"))
        policy_name = _as_text(analysis_meta.get("policy_name"))
    policy_id = policy_id or "unknown"
    policy_name = policy_name or "unknown"
    label = policy_name if policy_name != "unknown" else policy_id
    return PolicyRef(policy_id=policy_id, policy_name=policy_name, label=label)


def resolve_analyzer_version(result: Mapping[str, Any]) -> Optional[str]:
    analysis_meta = _as_mapping(result.get("analysis_meta"))
    return _as_text(analysis_meta.get("analyzer_version")) if analysis_meta else None


def build_policy_impact_details(
    *,
    version: Optional[str],
    effects: Optional[Mapping[str, Any]],
    sensitivity: Optional[Mapping[str, Any]],
    policy_snapshot: Optional[Mapping[str, Any]],
) -> PolicyImpactDetails:
    """Explain which regime knobs had no effect on a decision and when they would have."""
    if not effects:
        return PolicyImpactDetails(effects_available=False)

    applied = _as_mapping(effects.get("applied_effects")) or {}
    er_mult = _as_number(applied.get("expected_return_multiplier"))
    corr_applied = applied.get("correlation_penalty_applied") is True
    liq_applied = applied.get("liquidity_penalty_applied") is True

    sensitivity = sensitivity or {}
    raw_binding = sensitivity.get("binding_factors")
    binding = set(raw_binding) if isinstance(raw_binding, list) else set()
    constraint_binding_changed = bool(sensitivity.get("constraint_binding_changed"))

    snapshot = policy_snapshot or {}

    def knob(name: str) -> str:
        return _as_text(snapshot.get(name)) or "unknown"

    is_v1 = str(version or "unknown").lower() == "v1"

    active = {
        "mission": "mission_profile" in binding,
        "risk_posture": "risk_posture" in binding,
        "confidence_level": (er_mult is not None and abs(er_mult - 1.0) > POLICY_IMPACT_EPS)
        or "confidence_scaling" in binding,
        "correlation_state": corr_applied or "correlation_tightening" in binding,
        "liquidity_state": liq_applied or "liquidity_penalty" in binding,
    }
    v2_messages = {
        "mission": "Mission did not change allocator inputs (mission={}).",
        "risk_posture": "Risk posture did not change allocator inputs (risk_posture={}).",
        "confidence_level": "Confidence scaling not applied (confidence_level={}).",
        "correlation_state": "Correlation tightening not applied (correlation_state={}).",
        "liquidity_state": "Liquidity penalty not applied (liquidity_state={}).",
    }

    reasons: list[str] = []
    for name in ("mission", "risk_posture", "confidence_level", "correlation_state", "liquidity_state"):
        if active[name]:
            continue
        if is_v1:
            reasons.append(f"Allocator v1 ignores {name}.")
        else:
            reasons.append(v2_messages[name].format(knob(name)))
    if not (constraint_binding_changed or "constraint_binding_changed" in binding):
        reasons.append("Constraints not binding in this run.")

    raw_conditions = sensitivity.get("divergence_conditions")
    conditions = [
        item for item in (raw_conditions if isinstance(raw_conditions, list) else []) if item
    ]
    if is_v1:
        conditions = [
            item
            for item in conditions
            if not any(key in str(item).lower() for key in V1_IGNORED_KNOBS)
        ]

    return PolicyImpactDetails(
        effects_available=True,
        inactive_knob_reasons=reasons,
        divergence_conditions=[str(item) for item in conditions],
    )
