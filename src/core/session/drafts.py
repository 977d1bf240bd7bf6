from typing import Callable, Generic, List, Optional, TypeVar

T = TypeVar("T")

DraftListener = Callable[["ScopedDraft[T]"], None]


class ScopedDraft(Generic[T]):
    """Local value of one editable remote field plus who produced it.

    ``touched`` is True only after an operator edit; loads and default completion leave it False
    so a reload from the server is never mistaken for a change that needs saving.
    """

    def __init__(self, name: str, value: Optional[T] = None) -> None:
        self.name = name
        self._value: Optional[T] = value
        self._touched = False
        self._revision = 0
        self._listeners: List[DraftListener] = []

    @property
    def value(self) -> Optional[T]:
        return self._value

    @property
    def touched(self) -> bool:
        return self._touched

    @property
    def revision(self) -> int:
        return self._revision

    def subscribe(self, listener: DraftListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def edit(self, value: Optional[T]) -> None:
        self._value = value
        self._touched = True
        self._revision += 1
        self._notify()

    def load(self, value: Optional[T], *, force: bool = False) -> bool:
        """Replace the value from canonical state. A pending operator edit wins unless forced."""
        if self._touched and not force:
            return False
        self._value = value
        self._touched = False
        self._revision += 1
        self._notify()
        return True

    def complete(self, value: Optional[T]) -> None:
        # Internal completion (e.g. filling defaults) keeps the current touched flag.
        self._value = value

    def mark_saved(self, revision: int) -> bool:
        if revision != self._revision:
            return False
        self._touched = False
        return True

    def reset(self) -> None:
        self._value = None
        self._touched = False
        self._revision += 1
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
