import os
from typing import Optional

from src.core.session import SessionOrchestrator
from src.core.session.repository import DecisionService, LocalStore
from src.infrastructure.decision_service import HttpDecisionService
from src.infrastructure.local_store import (
    InMemoryLocalStore,
    KeyValueSelectionRepository,
    SqliteLocalStore,
    build_policy_repository,
    build_portfolio_repository,
)

_ORCHESTRATOR: Optional[SessionOrchestrator] = None
_SERVICE: Optional[DecisionService] = None


def env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def decision_service_base_url() -> str:
    return os.getenv("DECISION_SERVICE_BASE_URL", "http://localhost:8000").strip()


def decision_service_timeout_seconds() -> float:
    return env_float("DECISION_SERVICE_TIMEOUT_SECONDS", 30.0)


def local_store_backend_name() -> str:
    backend = os.getenv("LOCAL_STORE_BACKEND", "IN_MEMORY").strip().upper()
    return "SQLITE" if backend in {"SQL", "SQLITE"} else "IN_MEMORY"


def local_store_sqlite_path() -> str:
    return os.getenv("LOCAL_STORE_SQLITE_PATH", ".data/decision_session.db")


def session_auto_create_enabled() -> bool:
    return env_flag("SESSION_AUTO_CREATE_ENABLED", False)


def build_local_store() -> LocalStore:
    if local_store_backend_name() == "SQLITE":
        return SqliteLocalStore(database_path=local_store_sqlite_path())
    return InMemoryLocalStore()


def build_decision_service() -> DecisionService:
    return HttpDecisionService(
        base_url=decision_service_base_url(),
        timeout_seconds=decision_service_timeout_seconds(),
    )


def build_orchestrator(
    *,
    service: Optional[DecisionService] = None,
    store: Optional[LocalStore] = None,
) -> SessionOrchestrator:
    local_store = store if store is not None else build_local_store()
    return SessionOrchestrator(
        service=service if service is not None else build_decision_service(),
        policies=build_policy_repository(local_store),
        portfolios=build_portfolio_repository(local_store),
        selections=KeyValueSelectionRepository(store=local_store),
    )


def get_orchestrator() -> SessionOrchestrator:
    global _ORCHESTRATOR
    global _SERVICE
    if _ORCHESTRATOR is None:
        if _SERVICE is None:
            _SERVICE = build_decision_service()
        _ORCHESTRATOR = build_orchestrator(service=_SERVICE)
    return _ORCHESTRATOR


def get_decision_service() -> Optional[DecisionService]:
    return _SERVICE


def configure_decision_service_for_tests(service: DecisionService) -> None:
    global _ORCHESTRATOR
    global _SERVICE
    _SERVICE = service
    _ORCHESTRATOR = None


def reset_orchestrator_for_tests() -> None:
    global _ORCHESTRATOR
    global _SERVICE
    _ORCHESTRATOR = None
    _SERVICE = None
