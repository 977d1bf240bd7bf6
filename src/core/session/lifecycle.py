import logging
from typing import Optional

from src.core.session.models import SessionLifecycleState

logger = logging.getLogger(__name__)

TRANSITION_MAP: dict[tuple[SessionLifecycleState, str], SessionLifecycleState] = {
    ("ABSENT", "CREATE_REQUESTED"): "CREATING",
    ("REPLACED", "CREATE_REQUESTED"): "CREATING",
    ("CREATING", "CREATE_FAILED"): "ABSENT",
    ("CREATING", "CREATED"): "READY",
    ("ABSENT", "LOADED"): "READY",
    ("READY", "LOADED"): "READY",
    ("REPLACED", "LOADED"): "READY",
    ("READY", "RELOAD_STARTED"): "RELOADING",
    ("RELOADING", "RELOAD_STARTED"): "RELOADING",
    ("RELOADING", "RELOADED"): "READY",
    ("RELOADING", "RELOAD_FAILED"): "READY",
    ("READY", "RELOADED"): "READY",
    ("READY", "REPLACED"): "REPLACED",
    ("RELOADING", "REPLACED"): "REPLACED",
}


class SessionLifecycleError(Exception):
    pass


class SessionLifecycle:
    def __init__(self) -> None:
        self.state: SessionLifecycleState = "ABSENT"

    @property
    def creating(self) -> bool:
        return self.state == "CREATING"

    def apply(self, event: str, *, session_id: Optional[str] = None) -> SessionLifecycleState:
        next_state = TRANSITION_MAP.get((self.state, event))
        if next_state is None:
            raise SessionLifecycleError("INVALID_SESSION_TRANSITION")
        previous = self.state
        self.state = next_state
        if previous != next_state:
            logger.info(
                "session.lifecycle",
                extra={
                    "extra_fields": {
                        "session_id": session_id,
                        "event": event,
                        "from_state": previous,
                        "to_state": next_state,
                    }
                },
            )
        return next_state
