from typing import Optional

from src.core.imports.csv_v1 import CsvConnector
from src.core.imports.json_v1 import JsonConnector
from src.core.imports.models import ImportConnector

CONNECTORS: tuple[ImportConnector, ...] = (CsvConnector(), JsonConnector())


def list_connectors() -> list[ImportConnector]:
    return list(CONNECTORS)


def get_connector(connector_id: Optional[str]) -> Optional[ImportConnector]:
    key = str(connector_id or "").strip()
    for connector in CONNECTORS:
        if connector.id == key:
            return connector
    return None
