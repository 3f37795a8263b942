"""Small atomic state cells shared between the capture thread and the event loop."""
import threading
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class AtomicReference(Generic[T]):
    """A reference cell with exchange and compare-and-set operations."""

    def __init__(self, value: Optional[T] = None):
        self._value = value
        self._lock = threading.Lock()

    def get(self) -> Optional[T]:
        return self._value

    def set(self, value: Optional[T]) -> None:
        with self._lock:
            self._value = value

    def get_and_set(self, value: Optional[T]) -> Optional[T]:
        """Store value and return the previous one in a single step."""
        with self._lock:
            previous = self._value
            self._value = value
            return previous

    def compare_and_set(self, expected: Optional[T], value: Optional[T]) -> bool:
        """Store value only if the current value is `expected` (identity check)."""
        with self._lock:
            if self._value is not expected:
                return False
            self._value = value
            return True


class AtomicBoolean:
    """Boolean flag with compare-and-set, used for single-flight guards."""

    def __init__(self, value: bool = False):
        self._value = value
        self._lock = threading.Lock()

    def get(self) -> bool:
        return self._value

    def set(self, value: bool) -> None:
        with self._lock:
            self._value = value

    def compare_and_set(self, expected: bool, value: bool) -> bool:
        with self._lock:
            if self._value != expected:
                return False
            self._value = value
            return True
