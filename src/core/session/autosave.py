"""
Debounced autosave for one draft field.

Every operator edit restarts the field's timer; when it expires the scheduler re-checks that the
session is unchanged, the draft is still touched and the value is valid, then commits the latest
value exactly once. Loads never schedule a commit.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from src.core.common.errors import DecisionServiceError
from src.core.session.drafts import ScopedDraft
from src.core.session.models import FieldSaveState, SaveStatus

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Seconds between the last edit and the commit, per field.
AUTOSAVE_DELAYS: dict[str, float] = {
    "portfolio": 0.8,
    "constraints": 0.8,
    "inflow": 0.8,
    "risk_posture": 0.0,
    "sector_sentiment": 1.0,
    "regime": 0.4,
}

CommitFn = Callable[[str, Any], Awaitable[Any]]
ValidateFn = Callable[[Any], Optional[str]]
SavedFn = Callable[[str], Awaitable[None]]
ErrorFn = Callable[[str, DecisionServiceError], None]


class AutosaveScheduler(Generic[T]):
    def __init__(
        self,
        *,
        draft: ScopedDraft[T],
        commit: CommitFn,
        session_id: Callable[[], Optional[str]],
        delay_seconds: Optional[float] = None,
        validate: Optional[ValidateFn] = None,
        on_saved: Optional[SavedFn] = None,
        on_error: Optional[ErrorFn] = None,
    ) -> None:
        self.field = draft.name
        self._draft = draft
        self._commit = commit
        self._session_id = session_id
        self._delay = AUTOSAVE_DELAYS.get(draft.name, 0.8) if delay_seconds is None else delay_seconds
        self._validate = validate
        self._on_saved = on_saved
        self._on_error = on_error

        self._generation = 0
        self._timer: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None
        self._scheduled_session_id: Optional[str] = None
        self._closed = False

        self.status: SaveStatus = "IDLE"
        self.error_message: Optional[str] = None
        self.saved_at: Optional[datetime] = None

        self._unsubscribe = draft.subscribe(self._on_draft_change)

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def state(self) -> FieldSaveState:
        return FieldSaveState(
            status=self.status, touched=self._draft.touched, error_message=self.error_message
        )

    def _on_draft_change(self, draft: ScopedDraft[T]) -> None:
        self.schedule(draft.value, draft.touched)

    def schedule(self, value: Optional[T], touched: bool) -> None:
        """(Re)start the debounce timer for the current draft value."""
        if self._closed:
            return
        self._cancel_timer()
        self._generation += 1
        if not touched:
            return

        validation_error = self._validation_error(value)
        session_id = self._session_id()
        if validation_error is not None or not session_id:
            self.status = "INVALID"
            self.error_message = validation_error or "SESSION_NOT_READY"
            return

        self._scheduled_session_id = session_id
        generation = self._generation
        self._timer = asyncio.get_running_loop().create_task(self._run_timer(generation))

    def cancel(self) -> None:
        """Drop the pending timer without committing."""
        self._cancel_timer()
        self._generation += 1
        self._scheduled_session_id = None

    def close(self) -> None:
        self.cancel()
        self._closed = True
        self._unsubscribe()

    async def save_now(self) -> None:
        """Commit the current value immediately, bypassing the timer."""
        self._cancel_timer()
        self._generation += 1
        session_id = self._session_id()
        value = self._draft.value
        validation_error = self._validation_error(value)
        if validation_error is not None or not session_id:
            self.status = "INVALID"
            self.error_message = validation_error or "SESSION_NOT_READY"
            return
        await self._commit_value(session_id, self._generation)

    async def flush(self) -> None:
        """Fire a pending timer now and wait for the resulting commit."""
        if self.pending:
            self._cancel_timer()
            await self._fire(self._generation)
        await self._await_inflight()

    async def drain(self) -> None:
        """Wait for the pending timer and any in-flight commit without forcing them."""
        timer = self._timer
        if timer is not None and not timer.done():
            await asyncio.wait({timer})
        await self._await_inflight()

    async def _await_inflight(self) -> None:
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            await asyncio.shield(inflight)

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def _validation_error(self, value: Any) -> Optional[str]:
        if value is None:
            return f"{self.field} is not loaded."
        return self._validate(value) if self._validate else None

    async def _run_timer(self, generation: int) -> None:
        if self._delay > 0:
            await asyncio.sleep(self._delay)
        await self._fire(generation)

    async def _fire(self, generation: int) -> None:
        session_id = self._session_id()
        if generation != self._generation or not session_id:
            return
        if session_id != self._scheduled_session_id:
            logger.info(
                "autosave.discarded",
                extra={
                    "extra_fields": {
                        "field": self.field,
                        "scheduled_session_id": self._scheduled_session_id,
                        "session_id": session_id,
                    }
                },
            )
            return
        if not self._draft.touched:
            return
        validation_error = self._validation_error(self._draft.value)
        if validation_error is not None:
            self.status = "INVALID"
            self.error_message = validation_error
            return
        task = asyncio.get_running_loop().create_task(self._commit_value(session_id, generation))
        self._inflight = task
        await asyncio.shield(task)

    async def _commit_value(self, session_id: str, generation: int) -> None:
        revision = self._draft.revision
        value = self._draft.value
        self.status = "SAVING"
        self.error_message = None
        try:
            await self._commit(session_id, value)
        except DecisionServiceError as exc:
            if generation == self._generation:
                self.status = "ERROR"
                self.error_message = str(exc)
            logger.warning(
                "autosave.failed",
                extra={
                    "extra_fields": {
                        "field": self.field,
                        "session_id": session_id,
                        "status_code": exc.status_code,
                        "error": str(exc),
                    }
                },
            )
            if self._on_error is not None:
                self._on_error(self.field, exc)
            return

        if self._session_id() != session_id:
            return
        cleared = self._draft.mark_saved(revision)
        if generation == self._generation:
            self.status = "SAVED"
            self.saved_at = datetime.now(timezone.utc)
        logger.info(
            "autosave.committed",
            extra={
                "extra_fields": {
                    "field": self.field,
                    "session_id": session_id,
                    "revision": revision,
                    "touched_cleared": cleared,
                }
            },
        )
        if self._on_saved is not None:
            await self._on_saved(self.field)
