import json
import logging
from typing import Any, List, Optional, Type

from pydantic import ValidationError

from src.core.session.models import AllocationPolicy, SavedPortfolio
from src.core.session.repository import LibraryRepository, LocalStore, RecordT, SelectionRepository

logger = logging.getLogger(__name__)

STORAGE_PREFIX = "sagitta.aaa.v0.0.1"
POLICIES_KEY = f"{STORAGE_PREFIX}.policies"
SAVED_PORTFOLIOS_KEY = f"{STORAGE_PREFIX}.savedPortfolios"
SELECTION_KEYS = {
    "policy": f"{STORAGE_PREFIX}.selectedPolicyId",
    "portfolio": f"{STORAGE_PREFIX}.selectedPortfolioId",
    "policy_a": f"{STORAGE_PREFIX}.selectedPolicyAId",
    "policy_b": f"{STORAGE_PREFIX}.selectedPolicyBId",
}


class KeyValueLibraryRepository(LibraryRepository[RecordT]):
    """A record library serialised as one JSON array under a single versioned key.

    Newly inserted records go first; saving an existing id replaces it in place.
    """

    def __init__(self, *, store: LocalStore, key: str, model: Type[RecordT]) -> None:
        self._store = store
        self._key = key
        self._model = model

    def list(self) -> List[RecordT]:
        return self._read()

    def get(self, *, item_id: str) -> Optional[RecordT]:
        for record in self._read():
            if record.id == item_id:
                return record
        return None

    def put(self, record: RecordT) -> None:
        records = self._read()
        for index, existing in enumerate(records):
            if existing.id == record.id:
                records[index] = record
                break
        else:
            records.insert(0, record)
        self._write(records)

    def delete(self, *, item_id: str) -> bool:
        records = self._read()
        remaining = [record for record in records if record.id != item_id]
        if len(remaining) == len(records):
            return False
        self._write(remaining)
        return True

    def _read(self) -> List[RecordT]:
        raw = self._store.get(self._key)
        if not raw:
            return []
        try:
            payload: Any = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(
                "local_store.malformed",
                extra={"extra_fields": {"key": self._key}},
            )
            return []
        if not isinstance(payload, list):
            return []
        records: List[RecordT] = []
        for item in payload:
            try:
                records.append(self._model.model_validate(item))
            except ValidationError:
                logger.warning(
                    "local_store.record_skipped",
                    extra={"extra_fields": {"key": self._key}},
                )
        return records

    def _write(self, records: List[RecordT]) -> None:
        self._store.set(
            self._key,
            json.dumps([record.to_record() for record in records], separators=(",", ":")),
        )


class KeyValueSelectionRepository(SelectionRepository):
    def __init__(self, *, store: LocalStore) -> None:
        self._store = store

    def get_selection(self, name: str) -> Optional[str]:
        value = self._store.get(SELECTION_KEYS[name])
        return value or None

    def set_selection(self, name: str, item_id: Optional[str]) -> None:
        key = SELECTION_KEYS[name]
        if item_id:
            self._store.set(key, item_id)
        else:
            self._store.remove(key)


def build_policy_repository(store: LocalStore) -> KeyValueLibraryRepository[AllocationPolicy]:
    return KeyValueLibraryRepository(store=store, key=POLICIES_KEY, model=AllocationPolicy)


def build_portfolio_repository(store: LocalStore) -> KeyValueLibraryRepository[SavedPortfolio]:
    return KeyValueLibraryRepository(store=store, key=SAVED_PORTFOLIOS_KEY, model=SavedPortfolio)
