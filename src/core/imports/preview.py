import math
import re
from typing import Any, Optional

from src.core.imports.models import (
    ImportedRawPosition,
    ImportPreviewResult,
    ImportWarning,
    ProposedAsset,
)
from src.core.imports.risk_class_priors import apply_priors, infer_risk_class

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "symbol": ("symbol", "ticker", "asset", "token", "coin", "id"),
    "name": ("name", "assetname", "asset_name", "description"),
    "quantity": ("quantity", "qty", "amount", "balance", "units"),
    "price_usd": ("price", "priceusd", "price_usd", "price(usd)", "lastprice", "markprice"),
    "value_usd": (
        "value",
        "valueusd",
        "value_usd",
        "marketvalue",
        "market_value",
        "usdvalue",
        "usd_value",
        "notional",
    ),
    "currency": ("currency", "ccy", "denomination"),
    "role": ("role", "asset_role", "position_role", "classification", "intent"),
}

ROLE_ALIASES: dict[str, str] = {
    "core": "core",
    "core exposure": "core",
    "primary": "core",
    "satellite": "satellite",
    "alpha": "satellite",
    "growth": "satellite",
    "tactical": "satellite",
    "defensive": "defensive",
    "hedge": "defensive",
    "protection": "defensive",
    "liquidity": "liquidity",
    "cash": "liquidity",
    "stable": "liquidity",
    "buffer": "liquidity",
    "carry": "carry",
    "yield": "carry",
    "income": "carry",
    "speculative": "speculative",
    "moonshot": "speculative",
    "high risk": "speculative",
}

_NUMBER_NOISE = re.compile(r"[^0-9.+\-eE]")


def normalize_role(raw: Optional[str]) -> str:
    value = " ".join(str(raw or "").strip().lower().replace("_", " ").split())
    return ROLE_ALIASES.get(value, "satellite")


def sanitize_symbol(raw: Any) -> str:
    return str(raw or "").strip().upper()[:32]


def parse_number(raw: Any) -> Optional[float]:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw) if math.isfinite(raw) else None
    if isinstance(raw, str):
        cleaned = _NUMBER_NOISE.sub("", raw)
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def derive_value_usd(
    value_usd: Optional[float], quantity: Optional[float], price_usd: Optional[float]
) -> Optional[float]:
    if value_usd is None and quantity is not None and price_usd is not None:
        return quantity * price_usd
    return value_usd


def build_preview_from_raw(
    raw_positions: list[ImportedRawPosition], *, source_label: str
) -> ImportPreviewResult:
    """Turn parsed positions into proposed portfolio assets with weights and priors.

    Weights come from USD values when any row is priced, otherwise every row gets an equal
    weight. Non-USD rows are kept but never priced.
    """
    if not raw_positions:
        return ImportPreviewResult(
            ok=False,
            summary="No positions found.",
            errors=[f"No positions could be parsed from the {source_label}."],
        )

    warnings: list[ImportWarning] = []
    missing_values = 0
    non_usd = 0
    proposed: list[ProposedAsset] = []

    for position in raw_positions:
        symbol = sanitize_symbol(position.symbol)
        name = position.name or symbol
        value_usd = position.value_usd
        if value_usd is not None and not math.isfinite(value_usd):
            value_usd = None
        if position.currency and position.currency.strip().upper() != "USD":
            value_usd = None
            non_usd += 1
        if value_usd is None:
            missing_values += 1

        risk_class = infer_risk_class(symbol, name, position.meta)
        priors = apply_priors(risk_class)
        proposed.append(
            ProposedAsset(
                id=symbol,
                name=name,
                risk_class=risk_class,
                role=normalize_role(position.role),
                current_weight=0.0,
                expected_return=priors["expected_return"],
                volatility=priors["volatility"],
                source_value_usd=value_usd,
            )
        )

    total_value = sum(asset.source_value_usd or 0.0 for asset in proposed)
    if total_value > 0:
        for asset in proposed:
            asset.current_weight = (asset.source_value_usd or 0.0) / total_value
        if missing_values:
            warnings.append(
                ImportWarning(
                    code="MISSING_VALUES",
                    detail="Some rows were missing value_usd; weights use priced rows only.",
                )
            )
    else:
        equal_weight = 1.0 / len(proposed)
        for asset in proposed:
            asset.current_weight = equal_weight
        warnings.append(
            ImportWarning(
                code="EQUAL_WEIGHT_FALLBACK",
                detail="No value_usd found; applied equal weights.",
            )
        )

    if non_usd:
        warnings.append(
            ImportWarning(
                code="NON_USD_UNSUPPORTED",
                detail=f"{non_usd} row(s) had non-USD currency; value_usd left null.",
            )
        )

    weight_sum = sum(asset.current_weight for asset in proposed)
    if weight_sum > 0 and abs(weight_sum - 1.0) > 1e-6:
        for asset in proposed:
            asset.current_weight = asset.current_weight / weight_sum

    return ImportPreviewResult(
        ok=True,
        summary=f"Parsed {len(raw_positions)} position(s) from {source_label}.",
        warnings=warnings,
        raw_positions=raw_positions,
        proposed_assets=proposed,
    )


def reclassify_preview_asset(asset: ProposedAsset, risk_class: str) -> ProposedAsset:
    priors = apply_priors(risk_class)
    return asset.model_copy(
        update={
            "risk_class": risk_class,
            "expected_return": priors["expected_return"],
            "volatility": priors["volatility"],
        }
    )
