from typing import NoReturn

from fastapi import HTTPException, status

from src.core.common.errors import (
    DecisionServiceError,
    DraftValidationError,
    LibraryItemNotFoundError,
    SessionInvalidatedError,
    SessionNotReadyError,
    TickNotFoundError,
)
from src.core.session import SessionLifecycleError

HTTP_422_UNPROCESSABLE = getattr(
    status, "HTTP_422_UNPROCESSABLE_CONTENT", status.HTTP_422_UNPROCESSABLE_ENTITY
)


def raise_session_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, (TickNotFoundError, LibraryItemNotFoundError)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, DraftValidationError):
        raise HTTPException(status_code=HTTP_422_UNPROCESSABLE, detail=str(exc)) from exc
    if isinstance(exc, (SessionNotReadyError, SessionLifecycleError)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, SessionInvalidatedError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    if isinstance(exc, DecisionServiceError):
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    raise exc
