"""
Version-scoped regime field catalogue.

Each allocator version declares which regime fields it understands. Only keys declared for the
active version, not marked local-only, and accepted by the decision service ever leave the
session; everything else stays in the local draft.
"""

import json
import math
from typing import Any, Literal, Mapping, Optional

from pydantic import BaseModel, Field

from src.core.common.errors import DraftValidationError

AllocatorVersion = Literal["default", "v1", "v2", "v3", "v4", "v5", "v6"]
SchemaVersion = Literal["v1", "v2", "v3", "v4", "v5", "v6"]
RegimeInputType = Literal["select", "number", "percent", "toggle", "json"]

ALLOCATOR_VERSIONS: tuple[str, ...] = ("default", "v1", "v2", "v3", "v4", "v5", "v6")

BACKEND_REGIME_KEYS: frozenset[str] = frozenset(
    {"mission", "risk_posture", "confidence_level", "correlation_state", "liquidity_state"}
)


class RegimeField(BaseModel):
    key: str = Field(description="Regime key sent to the decision service.", examples=["mission"])
    label: str = Field(description="Operator-facing label.", examples=["Mission"])
    description: str = Field(description="Operator-facing help text.")
    input: RegimeInputType = Field(description="Input kind used to sanitise raw values.")
    options: list[str] = Field(default_factory=list, description="Allowed values for selects.")
    min: Optional[float] = Field(default=None, description="Lower clamp for numeric inputs.")
    max: Optional[float] = Field(default=None, description="Upper clamp for numeric inputs.")
    step: Optional[float] = Field(default=None, description="Suggested input step.")
    default_value: Any = Field(description="Value used when the draft has none.")
    is_advanced: bool = Field(default=False, description="Rendered in the advanced section.")
    local_only: bool = Field(
        default=False,
        description="Kept in the draft but never sent unless the backend accepts the key.",
    )


def _select(key: str, label: str, description: str, options: list[str], default: str):
    return RegimeField(
        key=key,
        label=label,
        description=description,
        input="select",
        options=options,
        default_value=default,
    )


_BASE_FIELDS: list[RegimeField] = [
    _select(
        "mission",
        "Mission",
        "Primary objective for allocation decisions.",
        ["risk_adjusted_return", "capital_preservation"],
        "risk_adjusted_return",
    ),
    _select(
        "risk_posture",
        "Risk Posture",
        "High-level risk appetite for the allocator.",
        ["conservative", "neutral", "aggressive"],
        "neutral",
    ),
    _select(
        "confidence_level",
        "Confidence Level",
        "Allocator confidence in its current decision context.",
        ["low", "normal", "high"],
        "normal",
    ),
    _select(
        "correlation_state",
        "Correlation State",
        "Expected cross-asset correlation environment.",
        ["normal", "high", "crisis"],
        "normal",
    ),
    _select(
        "liquidity_state",
        "Liquidity State",
        "Market liquidity conditions relevant to execution risk.",
        ["normal", "tight", "severe"],
        "normal",
    ),
]

_V2_CANDIDATES: list[RegimeField] = [
    RegimeField(
        key="max_risk_scale",
        label="Max Risk Scale",
        description="Upper bound multiplier applied to risk targeting.",
        input="number",
        min=0.5,
        max=1.5,
        step=0.01,
        default_value=1.0,
        is_advanced=True,
        local_only=True,
    ),
    RegimeField(
        key="corr_tighten",
        label="Correlation Tightening",
        description="Sensitivity to correlation tightening in stress conditions.",
        input="number",
        min=0.5,
        max=1.0,
        step=0.01,
        default_value=0.85,
        is_advanced=True,
        local_only=True,
    ),
    RegimeField(
        key="liquidity_penalty_mult",
        label="Liquidity Penalty Multiplier",
        description="Multiplier for liquidity penalty applied in allocator scoring.",
        input="number",
        min=0.0,
        max=2.0,
        step=0.05,
        default_value=1.0,
        is_advanced=True,
        local_only=True,
    ),
]

REGIME_FIELDS_BY_VERSION: dict[str, list[RegimeField]] = {
    "v1": list(_BASE_FIELDS),
    "v2": [*_BASE_FIELDS, *_V2_CANDIDATES],
    "v3": list(_BASE_FIELDS),
    "v4": [],
    "v5": [],
    "v6": [],
}


def schema_version(version: Optional[str]) -> str:
    if not version or version == "default":
        return "v1"
    if version not in REGIME_FIELDS_BY_VERSION:
        raise ValueError(f"unknown allocator version '{version}'")
    return version


def regime_fields(version: Optional[str]) -> list[RegimeField]:
    return REGIME_FIELDS_BY_VERSION[schema_version(version)]


def regime_defaults(version: Optional[str]) -> dict[str, Any]:
    return {field.key: field.default_value for field in regime_fields(version)}


def apply_defaults_preserve_existing(
    version: Optional[str], current: Optional[Mapping[str, Any]]
) -> dict[str, Any]:
    regime = dict(current or {})
    for key, value in regime_defaults(version).items():
        regime.setdefault(key, value)
    return regime


def outgoing_regime_keys(version: Optional[str]) -> frozenset[str]:
    declared = {field.key for field in regime_fields(version) if not field.local_only}
    return frozenset(declared & BACKEND_REGIME_KEYS)


def pick_outgoing_regime(version: Optional[str], draft: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Filter a regime draft down to what the decision service may receive for a version."""
    source = draft or {}
    outgoing = {key: source[key] for key in sorted(outgoing_regime_keys(version)) if key in source}
    correlation = outgoing.get("correlation_state")
    # Saved policies from earlier releases used "elevated".
    if isinstance(correlation, str) and correlation.strip().lower() == "elevated":
        outgoing["correlation_state"] = "high"
    return outgoing


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def sanitize_number(
    value: Any, *, minimum: Optional[float], maximum: Optional[float], fallback: float
) -> float:
    number = _to_number(value)
    if number is None:
        return fallback
    if minimum is not None:
        number = max(minimum, number)
    if maximum is not None:
        number = min(maximum, number)
    return number


def parse_regime_input(version: Optional[str], key: str, raw: Any) -> Any:
    """Validate one operator edit against the version's field catalogue.

    Raises DraftValidationError instead of silently falling back, so the draft is left untouched
    when the edit is rejected.
    """
    fields = {field.key: field for field in regime_fields(version)}
    field = fields.get(key)
    if field is None:
        raise DraftValidationError(
            f"Regime field '{key}' is not defined for allocator version {schema_version(version)}.",
            field=key,
        )

    if field.input == "select":
        if not isinstance(raw, str) or raw not in field.options:
            raise DraftValidationError(
                f"{field.label} must be one of: {', '.join(field.options)}.", field=key
            )
        return raw

    if field.input in ("number", "percent"):
        number = _to_number(raw)
        if number is None:
            raise DraftValidationError(f"{field.label} must be a finite number.", field=key)
        return sanitize_number(number, minimum=field.min, maximum=field.max, fallback=number)

    if field.input == "toggle":
        if not isinstance(raw, bool):
            raise DraftValidationError(f"{field.label} must be true or false.", field=key)
        return raw

    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise DraftValidationError(f"{field.label} must be valid JSON.", field=key) from exc
    return raw
