import math
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from src.core.allocation.constraints import clamp01
from src.core.allocation.models import Asset, Portfolio
from src.core.common.errors import DraftValidationError

WEIGHTS_SUM_TOLERANCE = 0.01
DEFAULT_ASSET_ROLE = "satellite"


def _finite_weight(asset: Asset) -> float:
    return asset.current_weight if math.isfinite(asset.current_weight) else 0.0


def weights_sum(portfolio: Optional[Portfolio]) -> float:
    if portfolio is None:
        return 0.0
    return sum(_finite_weight(asset) for asset in portfolio.assets)


def weights_sum_warning(
    portfolio: Optional[Portfolio],
    *,
    label: str = "Portfolio weights",
    tolerance: float = WEIGHTS_SUM_TOLERANCE,
) -> Optional[str]:
    """Advisory message when current weights drift from 100%; None when within tolerance."""
    if portfolio is None or not portfolio.assets:
        return None
    total = weights_sum(portfolio)
    if abs(total - 1.0) > tolerance:
        return f"{label} sum to {total * 100:.2f}% (expected ~100%)."
    return None


def _build_asset(payload: Mapping[str, Any]) -> Asset:
    try:
        return Asset.model_validate(dict(payload))
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise DraftValidationError(
            f"Invalid asset {field or 'value'}: {first.get('msg')}", field=field
        ) from exc


def _check_numbers(asset: Asset) -> None:
    for field in ("current_weight", "expected_return", "volatility"):
        if not math.isfinite(getattr(asset, field)):
            raise DraftValidationError(
                "Invalid number in one of: weight, expected return, volatility.", field=field
            )


def _index_of(portfolio: Portfolio, asset_id: str) -> int:
    for idx, asset in enumerate(portfolio.assets):
        if str(asset.id).strip() == asset_id:
            return idx
    return -1


def add_asset(portfolio: Optional[Portfolio], payload: Mapping[str, Any]) -> Portfolio:
    base = portfolio or Portfolio()
    data = dict(payload)
    data["id"] = str(data.get("id") or "").strip()
    data["name"] = str(data.get("name") or "").strip()
    if not data["id"] or not data["name"]:
        raise DraftValidationError("Asset id and name are required.", field="id")
    data.setdefault("role", DEFAULT_ASSET_ROLE)
    asset = _build_asset(data)
    _check_numbers(asset)
    if _index_of(base, asset.id) >= 0:
        raise DraftValidationError(f"Asset id '{asset.id}' already exists.", field="id")

    asset = asset.model_copy(update={"current_weight": clamp01(asset.current_weight)})
    return base.model_copy(update={"assets": [*base.assets, asset]})


def update_asset(
    portfolio: Optional[Portfolio], asset_id: str, patch: Mapping[str, Any]
) -> Portfolio:
    base = portfolio or Portfolio()
    idx = _index_of(base, asset_id.strip())
    if idx < 0:
        raise DraftValidationError(f"Asset id '{asset_id}' is not in the portfolio.", field="id")

    merged = {**base.assets[idx].model_dump(), **dict(patch)}
    merged["id"] = str(merged.get("id") or "").strip()
    if not merged["id"]:
        raise DraftValidationError("Asset id is required.", field="id")
    other = _index_of(base, merged["id"])
    if other >= 0 and other != idx:
        raise DraftValidationError(f"Asset id '{merged['id']}' already exists.", field="id")

    asset = _build_asset(merged)
    _check_numbers(asset)
    if "current_weight" in patch:
        asset = asset.model_copy(update={"current_weight": clamp01(asset.current_weight)})

    assets = list(base.assets)
    assets[idx] = asset
    return base.model_copy(update={"assets": assets})


def remove_asset(portfolio: Optional[Portfolio], asset_id: str) -> Portfolio:
    base = portfolio or Portfolio()
    idx = _index_of(base, asset_id.strip())
    if idx < 0:
        raise DraftValidationError(f"Asset id '{asset_id}' is not in the portfolio.", field="id")
    return base.model_copy(update={"assets": [a for i, a in enumerate(base.assets) if i != idx]})


def load_allocation_into_portfolio(
    portfolio: Optional[Portfolio], target_weights: Mapping[str, float]
) -> tuple[Portfolio, Optional[str]]:
    """Overwrite current weights from a decision's targets, adding unknown ids as bare assets.

    Returns the new portfolio and the weights-sum warning for the loaded allocation, if any.
    """
    base = portfolio or Portfolio()
    by_id: dict[str, Asset] = {}
    for asset in base.assets:
        asset_id = str(asset.id).strip()
        if asset_id:
            by_id[asset_id] = asset

    for raw_id, weight in target_weights.items():
        asset_id = str(raw_id).strip()
        if not asset_id or not math.isfinite(weight):
            continue
        existing = by_id.get(asset_id)
        if existing is not None:
            by_id[asset_id] = existing.model_copy(update={"current_weight": float(weight)})
        else:
            by_id[asset_id] = Asset(id=asset_id, name=asset_id, current_weight=float(weight))

    loaded = base.model_copy(update={"assets": list(by_id.values())})
    return loaded, weights_sum_warning(loaded, label="Loaded target_weights")
