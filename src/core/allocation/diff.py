"""
Allocation diff engine.

Turns a current weight vector and a decision's target weight vector into per-asset rows and a
one-way turnover figure. Everything here is pure and deterministic.
"""

import math
from typing import Any, Mapping, Optional

from src.core.allocation.models import AllocationDiff, AllocationRow, Portfolio

# Ordered extraction attempts over a decision document. The first path that resolves to an
# object (not a list) wins.
TARGET_WEIGHT_PATHS: tuple[tuple[str, ...], ...] = (
    ("target_weights",),
    ("next_allocation_weights",),
    ("next_allocation_plan", "next_allocation_weights"),
    ("next_allocation_plan", "target_weights"),
)

PRIOR_WEIGHT_PATHS: tuple[tuple[str, ...], ...] = (
    ("prior_portfolio_weights",),
    ("prior_target_weights",),
)


def _coerce_weight(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _resolve_path(document: Mapping[str, Any], path: tuple[str, ...]) -> Any:
    node: Any = document
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def _first_mapping(
    document: Optional[Mapping[str, Any]], paths: tuple[tuple[str, ...], ...]
) -> Optional[Mapping[str, Any]]:
    if not isinstance(document, Mapping):
        return None
    for path in paths:
        candidate = _resolve_path(document, path)
        if isinstance(candidate, Mapping):
            return candidate
    return None


def numeric_weights(candidate: Optional[Mapping[str, Any]]) -> Optional[dict[str, float]]:
    if candidate is None:
        return None
    weights: dict[str, float] = {}
    for key, value in candidate.items():
        number = _coerce_weight(value)
        if number is not None:
            weights[str(key)] = number
    return weights or None


def extract_target_weights(tick: Optional[Mapping[str, Any]]) -> Optional[dict[str, float]]:
    """Return the decision's target weights, or None when the decision carries none.

    None is distinct from an all-zero mapping; callers render it as "no target weights",
    not as a full liquidation.
    """
    return numeric_weights(_first_mapping(tick, TARGET_WEIGHT_PATHS))


def extract_prior_weights(tick: Optional[Mapping[str, Any]]) -> Optional[dict[str, float]]:
    return numeric_weights(_first_mapping(tick, PRIOR_WEIGHT_PATHS))


def current_weights(portfolio: Optional[Portfolio]) -> dict[str, float]:
    weights: dict[str, float] = {}
    if portfolio is None:
        return weights
    for asset in portfolio.assets:
        asset_id = str(asset.id or "").strip()
        if not asset_id:
            continue
        weight = asset.current_weight
        weights[asset_id] = weight if math.isfinite(weight) else 0.0
    return weights


def diff(
    current: Mapping[str, float], target: Optional[Mapping[str, float]]
) -> AllocationDiff:
    target_weights = target or {}
    rows: list[AllocationRow] = []
    for asset_id in sorted(set(current) | set(target_weights)):
        cur = float(current.get(asset_id, 0.0))
        tgt = float(target_weights.get(asset_id, 0.0))
        rows.append(AllocationRow(id=asset_id, cur=cur, tgt=tgt, delta=tgt - cur))
    turnover = 0.5 * sum(abs(row.delta or 0.0) for row in rows)
    return AllocationDiff(rows=rows, turnover=turnover)


def diff_against_prior(
    prior: Optional[Mapping[str, float]], target: Optional[Mapping[str, float]]
) -> AllocationDiff:
    """Rows relative to the weights the decision itself started from.

    Without a prior the baseline columns are null and turnover is zero.
    """
    if not prior:
        target_weights = target or {}
        rows = [
            AllocationRow(id=asset_id, cur=None, tgt=float(target_weights[asset_id]), delta=None)
            for asset_id in sorted(target_weights)
        ]
        return AllocationDiff(rows=rows, turnover=0.0)
    return diff(prior, target)


def weight_delta_l1(
    left: Optional[Mapping[str, float]],
    right: Optional[Mapping[str, float]],
    eps: float = 1e-6,
) -> Optional[float]:
    if left is None or right is None:
        return None
    total = sum(
        abs(float(left.get(asset_id, 0.0)) - float(right.get(asset_id, 0.0)))
        for asset_id in set(left) | set(right)
    )
    delta = 0.5 * total
    return 0.0 if delta <= eps else delta
