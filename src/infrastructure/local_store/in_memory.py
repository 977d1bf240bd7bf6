from threading import Lock
from typing import Optional

from src.core.session.repository import LocalStore


class InMemoryLocalStore(LocalStore):
    def __init__(self) -> None:
        self._lock = Lock()
        self._values: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._values[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)
