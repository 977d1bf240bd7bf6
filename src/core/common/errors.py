from typing import Optional


class DecisionSessionError(Exception):
    pass


class DraftValidationError(DecisionSessionError):
    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class SessionNotReadyError(DecisionSessionError):
    pass


class TickNotFoundError(DecisionSessionError):
    pass


class LibraryItemNotFoundError(DecisionSessionError):
    pass


class DecisionServiceError(DecisionSessionError):
    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SessionInvalidatedError(DecisionServiceError):
    pass
