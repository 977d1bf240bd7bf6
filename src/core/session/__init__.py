from src.core.session.autosave import AUTOSAVE_DELAYS, AutosaveScheduler
from src.core.session.drafts import ScopedDraft
from src.core.session.lifecycle import SessionLifecycle, SessionLifecycleError
from src.core.session.models import (
    AbPolicySnapshot,
    AbResult,
    AllocationPolicy,
    FieldSaveState,
    SavedPortfolio,
    ScenarioTime,
    SessionSnapshot,
)
from src.core.session.repository import (
    DecisionService,
    LibraryRepository,
    LocalStore,
    SelectionRepository,
)
from src.core.session.ticks import (
    TickReconciler,
    build_export_payload,
    make_synthetic_tick,
    merge,
    normalize_tick,
)
from src.core.session.comparison import run_one_off_policy_tick, run_policy_comparison
from src.core.session.orchestrator import SessionOrchestrator

__all__ = [
    "AUTOSAVE_DELAYS",
    "AbPolicySnapshot",
    "AbResult",
    "AllocationPolicy",
    "AutosaveScheduler",
    "DecisionService",
    "FieldSaveState",
    "LibraryRepository",
    "LocalStore",
    "SavedPortfolio",
    "ScenarioTime",
    "ScopedDraft",
    "SelectionRepository",
    "SessionLifecycle",
    "SessionLifecycleError",
    "SessionOrchestrator",
    "SessionSnapshot",
    "TickReconciler",
    "build_export_payload",
    "make_synthetic_tick",
    "merge",
    "normalize_tick",
    "run_one_off_policy_tick",
    "run_policy_comparison",
]
