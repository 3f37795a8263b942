"""Published overlay state and the observable holder for it."""
import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List

from ..utils.log_config import get_component_logger
from .constants import (
    INITIAL_ANSWER, NO_QUESTION_FOUND, CAPTURE_FAILED, NO_ANSWER,
    ERROR_PREFIX, API_ERROR_PREFIX
)


@dataclass(frozen=True)
class OverlayState:
    """Immutable snapshot rendered by the overlay."""
    answer: str = INITIAL_ANSWER
    is_loading: bool = False
    status_text: str = ""

    def to_payload(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "isLoading": self.is_loading,
            "statusText": self.status_text,
        }


def is_error_answer(answer: str) -> bool:
    return answer.startswith(ERROR_PREFIX) or answer.startswith(API_ERROR_PREFIX)


def is_placeholder_answer(answer: str) -> bool:
    """True for texts that are not real answers and must never be redisplayed as one."""
    if not answer.strip():
        return True
    if answer in (INITIAL_ANSWER, NO_QUESTION_FOUND, CAPTURE_FAILED, NO_ANSWER):
        return True
    return is_error_answer(answer)


StateListener = Callable[[OverlayState], None]


class OverlayStateStore:
    """Holds the current OverlayState and notifies listeners on every change.

    States are replaced wholesale, so readers never see a half-updated snapshot.
    """

    def __init__(self, initial: OverlayState = None):
        self._state = initial or OverlayState()
        self._listeners: List[StateListener] = []
        self._lock = threading.RLock()
        self.logger = get_component_logger("State")

    @property
    def value(self) -> OverlayState:
        return self._state

    def publish(self, state: OverlayState) -> None:
        with self._lock:
            self._state = state
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(state)
            except Exception as e:
                self.logger.warning(f"State listener failed: {e}", exc_info=True)

    def update(self, **changes) -> OverlayState:
        """Publish a copy of the current state with the given fields replaced."""
        with self._lock:
            state = replace(self._state, **changes)
        self.publish(state)
        return state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it again."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe
