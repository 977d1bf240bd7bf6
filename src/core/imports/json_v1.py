import json
from typing import Any, Mapping

from src.core.imports.models import ImportedRawPosition, ImportPreviewResult
from src.core.imports.preview import (
    FIELD_ALIASES,
    build_preview_from_raw,
    derive_value_usd,
    parse_number,
    sanitize_symbol,
)

ROW_CONTAINER_KEYS: tuple[str, ...] = ("positions", "rows", "assets", "data")


def pick_field(record: Mapping[str, Any], key: str) -> Any:
    if key in record:
        return record[key]
    lowered = {str(name).lower(): name for name in record}
    for alias in FIELD_ALIASES.get(key, ()):
        found = lowered.get(alias.lower())
        if found is not None:
            return record[found]
    return None


def _rows(parsed: Any) -> list[Any]:
    if isinstance(parsed, list) and parsed:
        return parsed
    if isinstance(parsed, Mapping):
        for key in ROW_CONTAINER_KEYS:
            candidate = parsed.get(key)
            if isinstance(candidate, list):
                return candidate
    return []


def parse_json_to_raw_positions(json_text: str) -> list[ImportedRawPosition]:
    """Raises json.JSONDecodeError on malformed input."""
    positions: list[ImportedRawPosition] = []
    for row in _rows(json.loads(json_text)):
        if not isinstance(row, Mapping):
            continue
        symbol = sanitize_symbol(pick_field(row, "symbol"))
        if not symbol:
            continue
        quantity = parse_number(pick_field(row, "quantity"))
        price_usd = parse_number(pick_field(row, "price_usd"))
        currency = pick_field(row, "currency")
        role = pick_field(row, "role")
        positions.append(
            ImportedRawPosition(
                symbol=symbol,
                name=str(pick_field(row, "name") or symbol),
                quantity=quantity,
                price_usd=price_usd,
                value_usd=derive_value_usd(
                    parse_number(pick_field(row, "value_usd")), quantity, price_usd
                ),
                currency=str(currency) if currency else None,
                role=str(role) if role else None,
                meta={"source": "json_v1"},
            )
        )
    return positions


class JsonConnector:
    id = "json_v1"
    version = "v1"
    display_name = "JSON (Positions)"

    def preview(self, payload: dict[str, Any]) -> ImportPreviewResult:
        json_text = str(payload.get("json_text") or "")
        if not json_text.strip():
            return ImportPreviewResult(
                ok=False, summary="JSON text is empty.", errors=["JSON text is empty."]
            )
        try:
            positions = parse_json_to_raw_positions(json_text)
        except json.JSONDecodeError as exc:
            return ImportPreviewResult(ok=False, summary="Invalid JSON.", errors=[str(exc)])
        return build_preview_from_raw(positions, source_label="JSON")
