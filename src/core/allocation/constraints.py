import math
from typing import Any, Optional

from src.core.allocation.models import Constraints

CONSTRAINT_FIELDS: tuple[str, ...] = ("min_asset_weight", "max_asset_weight", "max_concentration")

CONSTRAINT_DEFAULTS = Constraints(
    min_asset_weight=0.05,
    max_asset_weight=0.6,
    max_concentration=0.7,
)

CONSTRAINT_LABELS: dict[str, str] = {
    "min_asset_weight": "Minimum Asset Weight",
    "max_asset_weight": "Maximum Asset Weight",
    "max_concentration": "Maximum Concentration",
}


def clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))


def _finite_or(value: Any, fallback: float) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
        return float(value)
    return fallback


def apply_constraint_defaults(base: Optional[Constraints]) -> Constraints:
    """Fill absent bounds from the defaults and restore min <= max <= concentration."""
    min_value = clamp01(
        _finite_or(base.min_asset_weight if base else None, CONSTRAINT_DEFAULTS.min_asset_weight)
    )
    max_value = clamp01(
        _finite_or(base.max_asset_weight if base else None, CONSTRAINT_DEFAULTS.max_asset_weight)
    )
    concentration = clamp01(
        _finite_or(base.max_concentration if base else None, CONSTRAINT_DEFAULTS.max_concentration)
    )
    max_value = max(max_value, min_value)
    concentration = max(concentration, max_value)
    return Constraints(
        min_asset_weight=min_value,
        max_asset_weight=max_value,
        max_concentration=concentration,
    )


def normalize_constraints_after_edit(
    draft: Optional[Constraints], field: str, raw_value: float
) -> Constraints:
    """Apply one bound edit, pinning it between its neighbours instead of moving them."""
    if field not in CONSTRAINT_FIELDS:
        raise ValueError(f"unknown constraint field '{field}'")
    base = apply_constraint_defaults(draft)
    min_value = base.min_asset_weight
    max_value = base.max_asset_weight
    concentration = base.max_concentration
    next_value = clamp01(raw_value)

    if field == "min_asset_weight":
        min_value = min(next_value, max_value, concentration)
    elif field == "max_asset_weight":
        max_value = max(min_value, min(next_value, concentration))
    else:
        concentration = max(max_value, min(next_value, 1.0))

    return Constraints(
        min_asset_weight=min_value,
        max_asset_weight=max_value,
        max_concentration=concentration,
    )


def constraints_validation_error(constraints: Optional[Constraints]) -> Optional[str]:
    if constraints is None:
        return "Constraints not set."
    values: dict[str, float] = {}
    for field in CONSTRAINT_FIELDS:
        value = getattr(constraints, field)
        if value is None:
            continue
        label = CONSTRAINT_LABELS[field]
        if not math.isfinite(value):
            return f"{label} must be a number."
        if value < 0 or value > 1:
            return f"{label} must be between 0 and 1."
        values[field] = value

    ordered = [field for field in CONSTRAINT_FIELDS if field in values]
    for lower, upper in zip(ordered, ordered[1:]):
        if values[lower] > values[upper]:
            return f"{CONSTRAINT_LABELS[lower]} cannot exceed {CONSTRAINT_LABELS[upper]}."
    return None
