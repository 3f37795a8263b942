"""Speculative background OCR.

Every PREFETCH_INTERVAL_MS the loop copies the latest frame (never waiting for
one), recognizes it and keeps the text if it is long enough to be a question.
A scan that starts shortly afterwards can then skip capture and OCR entirely.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..utils.log_config import get_component_logger
from .constants import MIN_QUESTION_LENGTH, PREFETCH_FRESHNESS_MS, PREFETCH_INTERVAL_MS


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


@dataclass(frozen=True)
class PrefetchedText:
    text: str
    captured_at_ms: int

    def is_usable(self, now_ms: int, freshness_ms: int = PREFETCH_FRESHNESS_MS) -> bool:
        """Long enough and captured less than `freshness_ms` ago."""
        if len(self.text) < MIN_QUESTION_LENGTH:
            return False
        return now_ms - self.captured_at_ms < freshness_ms


class PreFetchLoop:
    def __init__(self, frame_buffer, recognizer,
                 interval_ms: int = PREFETCH_INTERVAL_MS,
                 clock: Callable[[], int] = monotonic_ms):
        self.frame_buffer = frame_buffer
        self.recognizer = recognizer
        self.interval_ms = interval_ms
        self.clock = clock
        self.logger = get_component_logger("Prefetch")

        self._latest: Optional[PrefetchedText] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def latest(self) -> Optional[PrefetchedText]:
        return self._latest

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> bool:
        """One prefetch iteration. Returns True if new text was stored."""
        frame = self.frame_buffer.capture_frame()
        if frame is None:
            return False
        try:
            text = await self.recognizer.recognize(frame)
        finally:
            frame.release()

        if len(text) < MIN_QUESTION_LENGTH:
            # Keep whatever was prefetched before
            return False
        self._latest = PrefetchedText(text, self.clock())
        self.logger.debug(f"Prefetched {len(text)} chars")
        return True

    async def _run(self):
        self.logger.info("Prefetch loop started")
        try:
            while True:
                try:
                    await self.run_once()
                except Exception as e:
                    self.logger.warning(f"Prefetch iteration failed: {e}")
                await asyncio.sleep(self.interval_ms / 1000)
        finally:
            self.logger.info("Prefetch loop stopped")

    def start(self) -> None:
        """Start the loop on the running event loop. No-op if already running."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        """Cancel the loop without waiting for it. Safe to call repeatedly."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
