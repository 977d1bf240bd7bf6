"""
FILE: tests/conftest.py
Shared fixtures for session, allocation and API tests.
"""

from pathlib import Path

import pytest

from src.api.routers.session_config import (
    build_orchestrator,
    configure_decision_service_for_tests,
    reset_orchestrator_for_tests,
)
from src.infrastructure.local_store import InMemoryLocalStore
from tests.factories import FakeDecisionService


def _has_marker(item: pytest.Item, name: str) -> bool:
    return item.get_closest_marker(name) is not None


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if _has_marker(item, "unit") or _has_marker(item, "integration"):
            continue

        path = Path(str(item.fspath)).as_posix().lower()
        if "/tests/integration/" in path or "_integration.py" in path:
            item.add_marker(pytest.mark.integration)
            continue
        item.add_marker(pytest.mark.unit)


@pytest.fixture
def fake_service() -> FakeDecisionService:
    return FakeDecisionService()


@pytest.fixture
def local_store() -> InMemoryLocalStore:
    return InMemoryLocalStore()


@pytest.fixture
def orchestrator(fake_service, local_store):
    return build_orchestrator(service=fake_service, store=local_store)


@pytest.fixture(autouse=True)
def session_runtime_test_harness(monkeypatch: pytest.MonkeyPatch):
    """Point the API at an in-memory store and a fake decision service for every test."""

    monkeypatch.setenv("LOCAL_STORE_BACKEND", "IN_MEMORY")
    monkeypatch.setenv("SESSION_AUTO_CREATE_ENABLED", "false")
    monkeypatch.delenv("DECISION_SERVICE_BASE_URL", raising=False)

    service = FakeDecisionService()
    configure_decision_service_for_tests(service)
    yield service
    reset_orchestrator_for_tests()
