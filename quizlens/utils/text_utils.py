"""Text helpers shared by the scan pipeline."""
import re
from typing import FrozenSet, Optional

_WHITESPACE = re.compile(r"\s+")


def normalize_question(text: str) -> str:
    """Lowercase, collapse runs of whitespace and trim. Used as the cache key."""
    return _WHITESPACE.sub(" ", text.lower()).strip()


def word_set(text: str) -> FrozenSet[str]:
    """Case-insensitive set of whitespace separated words."""
    return frozenset(text.lower().split())


def jaccard_similarity(a: str, b: str) -> Optional[float]:
    """Shared words divided by the size of the larger word set.

    Returns None when either text has no words, since similarity is undefined then.
    """
    words_a = word_set(a)
    words_b = word_set(b)
    if not words_a or not words_b:
        return None
    overlap = len(words_a & words_b)
    return overlap / max(len(words_a), len(words_b))


def is_similar(a: str, b: str, threshold: float) -> bool:
    similarity = jaccard_similarity(a, b)
    return similarity is not None and similarity >= threshold


def clean_ocr_text(raw_text: str, max_chars: int) -> str:
    """Drop blank lines and fragments of two characters or fewer, then truncate."""
    lines = (line.strip() for line in raw_text.splitlines())
    return "\n".join(line for line in lines if len(line) > 2)[:max_chars]


def truncate(message: str, limit: int) -> str:
    return message if len(message) <= limit else message[:limit]
