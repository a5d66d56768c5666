"""Observable view-state container shared by the screen-level components."""
from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from jobmatch.log import get_logger

log = get_logger(__name__)


class ViewKind(str, Enum):
    LOADING = "loading"
    LOADED = "loaded"
    EMPTY = "empty"
    ERROR = "error"
    SIGN_IN_REQUIRED = "sign_in_required"


@dataclass(frozen=True)
class ViewState:
    kind: ViewKind
    message: str | None = None

    @classmethod
    def loading(cls) -> "ViewState":
        return cls(ViewKind.LOADING)

    @classmethod
    def loaded(cls) -> "ViewState":
        return cls(ViewKind.LOADED)

    @classmethod
    def empty(cls) -> "ViewState":
        return cls(ViewKind.EMPTY)

    @classmethod
    def error(cls, message: str) -> "ViewState":
        return cls(ViewKind.ERROR, message)

    @classmethod
    def sign_in_required(cls, message: str) -> "ViewState":
        return cls(ViewKind.SIGN_IN_REQUIRED, message)


class Observable:
    """Callback registry; subscribers receive the component after each change."""

    def __init__(self) -> None:
        self._subscribers: list[Callable] = []
        self._subscribers_lock = threading.Lock()

    def subscribe(self, callback: Callable) -> Callable[[], None]:
        with self._subscribers_lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._subscribers_lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, payload=None, *, current: Callable[[], bool] | None = None) -> None:
        """Call subscribers in order; stop early once ``current()`` turns false."""
        with self._subscribers_lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            if current is not None and not current():
                return
            try:
                callback(self if payload is None else payload)
            except Exception:
                log.exception("%s subscriber failed", type(self).__name__)
