from src.infrastructure.local_store.in_memory import InMemoryLocalStore
from src.infrastructure.local_store.library import (
    POLICIES_KEY,
    SAVED_PORTFOLIOS_KEY,
    SELECTION_KEYS,
    KeyValueLibraryRepository,
    KeyValueSelectionRepository,
    build_policy_repository,
    build_portfolio_repository,
)
from src.infrastructure.local_store.sqlite import SqliteLocalStore

__all__ = [
    "InMemoryLocalStore",
    "KeyValueLibraryRepository",
    "KeyValueSelectionRepository",
    "POLICIES_KEY",
    "SAVED_PORTFOLIOS_KEY",
    "SELECTION_KEYS",
    "SqliteLocalStore",
    "build_policy_repository",
    "build_portfolio_repository",
]
