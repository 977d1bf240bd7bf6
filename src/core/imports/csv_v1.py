import csv
import re
from typing import Any, Optional

from src.core.imports.models import ImportedRawPosition, ImportPreviewResult
from src.core.imports.preview import (
    FIELD_ALIASES,
    build_preview_from_raw,
    derive_value_usd,
    normalize_role,
    parse_number,
    sanitize_symbol,
)

_HEADER_NOISE = re.compile(r"[^a-z0-9]+")


def normalize_header(raw: str) -> str:
    return _HEADER_NOISE.sub("", str(raw or "").lower())


def parse_csv_rows(text: str) -> list[list[str]]:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return [[cell.strip() for cell in row] for row in csv.reader(lines)]


def _header_index(header: list[str]) -> dict[str, int]:
    normalized = [normalize_header(cell) for cell in header]
    index: dict[str, int] = {}
    for key, aliases in FIELD_ALIASES.items():
        for alias in aliases:
            target = normalize_header(alias)
            if target in normalized:
                index[key] = normalized.index(target)
                break
    return index


def _cell(row: list[str], index: dict[str, int], key: str) -> Optional[str]:
    position = index.get(key)
    if position is None or position >= len(row):
        return None
    return row[position] or None


def parse_csv_to_raw_positions(csv_text: str) -> list[ImportedRawPosition]:
    rows = parse_csv_rows(csv_text)
    if not rows:
        return []
    index = _header_index(rows[0])

    positions: list[ImportedRawPosition] = []
    for row in rows[1:]:
        symbol = sanitize_symbol(_cell(row, index, "symbol"))
        if not symbol:
            continue
        quantity = parse_number(_cell(row, index, "quantity"))
        price_usd = parse_number(_cell(row, index, "price_usd"))
        raw_role = _cell(row, index, "role")
        positions.append(
            ImportedRawPosition(
                symbol=symbol,
                name=_cell(row, index, "name") or symbol,
                quantity=quantity,
                price_usd=price_usd,
                value_usd=derive_value_usd(
                    parse_number(_cell(row, index, "value_usd")), quantity, price_usd
                ),
                currency=_cell(row, index, "currency"),
                role=normalize_role(raw_role) if raw_role else None,
                meta={"header_map": dict(index)},
            )
        )
    return positions


class CsvConnector:
    id = "csv_v1"
    version = "v1"
    display_name = "CSV (Brokerage Export)"

    def preview(self, payload: dict[str, Any]) -> ImportPreviewResult:
        csv_text = str(payload.get("csv_text") or "")
        if not csv_text.strip():
            return ImportPreviewResult(
                ok=False, summary="CSV text is empty.", errors=["CSV text is empty."]
            )
        return build_preview_from_raw(parse_csv_to_raw_positions(csv_text), source_label="CSV")
