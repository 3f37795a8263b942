"""Scan orchestration: from a scan request to a published answer.

One scan runs at a time. A scan resolves the question text (prefetched text when
it is fresh, otherwise a captured frame run through OCR), then tries the exact
answer cache, then a fuzzy match against the previous question, and only then
asks the LLM backend, publishing each partial answer as it streams in.

    Idle -> Resolving -> CacheCheck -> Querying -> Idle
                 \\___________\\____________\\______ Error -> Idle

Requests that arrive while a scan is running are dropped, not queued.
"""
import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

from ..utils.atomic import AtomicBoolean
from ..utils.log_config import get_component_logger
from ..utils.text_utils import is_similar, normalize_question, truncate
from .answer_cache import AnswerCache
from .constants import (
    CAPTURE_FAILED, ERROR_PREFIX, FRAME_WAIT_TIMEOUT_MS, MAX_ERROR_CHARS,
    MIN_QUESTION_LENGTH, NO_ANSWER, NO_QUESTION_FOUND, PREFETCH_FRESHNESS_MS,
    SIMILARITY_THRESHOLD, STATUS_SCANNING, STATUS_THINKING
)
from .errors import CaptureFailure, NoQuestionDetected, QuizLensError, UnexpectedFailure
from .overlay_state import OverlayState, OverlayStateStore, is_error_answer, is_placeholder_answer
from .prefetch import monotonic_ms


@dataclass
class ScanSession:
    """Per-scan context. Lives only for the duration of one scan."""
    question_text: str = ""
    source: str = ""

    @property
    def cache_key(self) -> str:
        return normalize_question(self.question_text)


def format_error(error: BaseException) -> str:
    message = str(error) or type(error).__name__
    return f"{ERROR_PREFIX}{truncate(message, MAX_ERROR_CHARS)}"


class ScanOrchestrator:
    def __init__(self, frame_buffer, recognizer, answer_client,
                 prefetch_loop=None,
                 cache: Optional[AnswerCache] = None,
                 state: Optional[OverlayStateStore] = None,
                 streaming: bool = True,
                 clock: Callable[[], int] = monotonic_ms):
        self.frame_buffer = frame_buffer
        self.recognizer = recognizer
        self.answer_client = answer_client
        self.prefetch_loop = prefetch_loop
        self.cache = cache if cache is not None else AnswerCache()
        self.state = state if state is not None else OverlayStateStore()
        self.streaming = streaming
        self.clock = clock
        self.logger = get_component_logger("Scan")

        self.last_question_text = ""
        self._in_flight = AtomicBoolean(False)
        self._scan_task: Optional[asyncio.Task] = None
        self._stopped = AtomicBoolean(False)

    @property
    def is_scanning(self) -> bool:
        return self._in_flight.get()

    def scan_once(self) -> Optional[asyncio.Task]:
        """Start a scan in the background.

        Returns the scan task, or None when the request was dropped because a scan
        is already running or the orchestrator was stopped.
        """
        if self._stopped.get():
            self.logger.debug("Scan requested after stop, ignoring")
            return None
        if not self._in_flight.compare_and_set(False, True):
            self.logger.debug("Scan already in progress, ignoring")
            return None

        self.logger.info("Scan triggered")
        task = asyncio.get_running_loop().create_task(self._run_scan())
        self._scan_task = task
        # Runs even when the task is cancelled before its first step
        task.add_done_callback(self._on_scan_done)
        return task

    def _on_scan_done(self, task: asyncio.Task) -> None:
        self._in_flight.set(False)
        if self._scan_task is task:
            self._scan_task = None

    async def _run_scan(self) -> None:
        try:
            self.state.update(is_loading=True, status_text=STATUS_SCANNING)
            await self._scan(ScanSession())
        except asyncio.CancelledError:
            self.logger.info("Scan cancelled")
            self.state.update(is_loading=False, status_text="")
            raise
        except CaptureFailure as e:
            self.logger.warning(f"Capture failed: {e}")
            self.state.publish(OverlayState(answer=CAPTURE_FAILED, is_loading=False))
        except NoQuestionDetected as e:
            self.logger.warning(f"No question detected: {e}")
            self.state.publish(OverlayState(answer=NO_QUESTION_FOUND, is_loading=False))
        except QuizLensError as e:
            self.logger.error(f"Scan error: {e}")
            self.state.publish(OverlayState(answer=format_error(e), is_loading=False))
        except Exception as e:
            self.logger.error(f"Unexpected scan error: {e}", exc_info=True)
            error = UnexpectedFailure(str(e) or type(e).__name__)
            self.state.publish(OverlayState(answer=format_error(error), is_loading=False))

    async def _scan(self, session: ScanSession) -> None:
        text = await self._resolve_text(session)
        if text is None:
            raise CaptureFailure("no frame available")
        session.question_text = text

        if len(text) < MIN_QUESTION_LENGTH:
            raise NoQuestionDetected(f"text too short ({len(text)} < {MIN_QUESTION_LENGTH})")

        cached = self.cache.get(session.cache_key)
        if cached is not None:
            self.logger.info(f"Cache hit: {cached}")
            self.last_question_text = session.question_text
            self.state.publish(OverlayState(answer=cached, is_loading=False))
            return

        displayed = self.state.value.answer
        if (not is_placeholder_answer(displayed)
                and is_similar(text, self.last_question_text, SIMILARITY_THRESHOLD)):
            self.logger.info("Same question as last scan, keeping answer")
            self.state.publish(OverlayState(answer=displayed, is_loading=False))
            return

        await self._query(session)

    async def _resolve_text(self, session: ScanSession) -> Optional[str]:
        """Question text for this scan, or None when no frame could be captured."""
        prefetched = self.prefetch_loop.latest if self.prefetch_loop is not None else None
        if prefetched is not None and prefetched.is_usable(self.clock(), PREFETCH_FRESHNESS_MS):
            self.logger.debug("Using prefetched text")
            session.source = "prefetch"
            return prefetched.text

        frame = self.frame_buffer.capture_frame()
        if frame is None:
            self.logger.debug("No cached frame, waiting for next frame")
            frame = await self.frame_buffer.capture_next_frame(FRAME_WAIT_TIMEOUT_MS / 1000)
        if frame is None:
            return None

        session.source = "capture"
        try:
            text = await self.recognizer.recognize(frame)
        finally:
            frame.release()
        self.logger.debug(f"OCR result ({len(text)} chars): {text[:100]}")
        return text

    async def _query(self, session: ScanSession) -> None:
        self.last_question_text = session.question_text
        self.state.update(status_text=STATUS_THINKING)
        self.logger.info("Querying answer backend")

        answer = ""
        if self.streaming:
            stream = self.answer_client.stream_answer(session.question_text)
            try:
                async for partial in stream:
                    answer = partial
                    self.state.publish(OverlayState(answer=partial, is_loading=True, status_text=""))
            finally:
                await stream.aclose()
        else:
            answer = await self.answer_client.get_answer(session.question_text)

        if answer and not is_error_answer(answer):
            self.cache.put(session.cache_key, answer)
        self.state.publish(OverlayState(answer=answer or NO_ANSWER, is_loading=False))
        self.logger.info(f"Answer displayed: {answer}")

    def stop(self) -> None:
        """Cancel the running scan and prefetch loop and release the frame buffer.

        Safe to call more than once.
        """
        if not self._stopped.compare_and_set(False, True):
            return
        self.logger.info("Stopping scan orchestrator")
        task, self._scan_task = self._scan_task, None
        if task is not None and not task.done():
            task.cancel()
        if self.prefetch_loop is not None:
            self.prefetch_loop.stop()
        self.frame_buffer.release()
