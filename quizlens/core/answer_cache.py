"""Bounded least-recently-used cache of answers keyed by normalized question."""
import threading
from collections import OrderedDict
from typing import List, Optional

from .constants import ANSWER_CACHE_CAPACITY


class AnswerCache:
    """LRU map from normalized question text to final answer text.

    Reads and writes both refresh recency. There is no time-based expiry; entries
    leave only when capacity forces the least recently used one out.
    """

    def __init__(self, capacity: int = ANSWER_CACHE_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: "OrderedDict[str, str]" = OrderedDict()
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            answer = self._entries.get(key)
            if answer is not None:
                self._entries.move_to_end(key)
            return answer

    def put(self, key: str, answer: str) -> None:
        with self._lock:
            self._entries[key] = answer
            self._entries.move_to_end(key)
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)

    def keys(self) -> List[str]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
