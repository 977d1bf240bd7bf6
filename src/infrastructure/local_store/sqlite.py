import sqlite3
from contextlib import closing
from pathlib import Path
from threading import Lock
from typing import Optional

from src.core.session.repository import LocalStore


class SqliteLocalStore(LocalStore):
    def __init__(self, *, database_path: str) -> None:
        self._lock = Lock()
        self._database_path = database_path
        self._init_db()

    def get(self, key: str) -> Optional[str]:
        query = "SELECT store_value FROM local_store WHERE store_key = ?"
        with closing(self._connect()) as connection:
            row = connection.execute(query, (key,)).fetchone()
        if row is None:
            return None
        return str(row["store_value"])

    def set(self, key: str, value: str) -> None:
        query = """
            INSERT INTO local_store (store_key, store_value)
            VALUES (?, ?)
            ON CONFLICT(store_key) DO UPDATE SET
                store_value=excluded.store_value
        """
        with self._lock, closing(self._connect()) as connection:
            connection.execute(query, (key, value))
            connection.commit()

    def remove(self, key: str) -> None:
        with self._lock, closing(self._connect()) as connection:
            connection.execute("DELETE FROM local_store WHERE store_key = ?", (key,))
            connection.commit()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._database_path)
        connection.row_factory = sqlite3.Row
        return connection

    def _init_db(self) -> None:
        Path(self._database_path).parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as connection:
            connection.executescript(
                """
                CREATE TABLE IF NOT EXISTS local_store (
                    store_key TEXT PRIMARY KEY,
                    store_value TEXT NOT NULL
                );
                """
            )
            connection.commit()
