"""Tests for the scan state machine."""
import asyncio
import pytest

from quizlens.core.answer_cache import AnswerCache
from quizlens.core.constants import API_KEY_MISSING
from quizlens.core.errors import CaptureFailure, NetworkFailure
from quizlens.core.overlay_state import OverlayState
from quizlens.core.prefetch import PrefetchedText
from quizlens.core.scan_orchestrator import ScanOrchestrator, format_error
from quizlens.utils.text_utils import normalize_question

from conftest import FakeAnswerClient, FakeFrameBuffer, FakeRecognizer, make_frame, wait_until

QUESTION = "What is the capital of France? Paris London Berlin Madrid"
QUESTION_OCR_NOISE = "What is the capitol of France? Paris London Berlin Madrid"


class FakePrefetch:
    def __init__(self, latest=None):
        self.latest = latest
        self.stop_calls = 0

    def stop(self):
        self.stop_calls += 1


def make_orchestrator(state_store, text=QUESTION, frame=None, next_frame=None,
                      client=None, prefetch=None, streaming=True, now=100_000):
    frame_buffer = FakeFrameBuffer(frame=frame if frame is not None else make_frame(), next_frame=next_frame)
    orchestrator = ScanOrchestrator(
        frame_buffer,
        FakeRecognizer(text),
        client or FakeAnswerClient(),
        prefetch_loop=prefetch,
        cache=AnswerCache(),
        state=state_store,
        streaming=streaming,
        clock=lambda: now
    )
    return orchestrator


async def scan(orchestrator):
    task = orchestrator.scan_once()
    assert task is not None
    await task


@pytest.mark.asyncio
async def test_streams_answer_and_caches_it(state_store, recorded_states):
    orchestrator = make_orchestrator(state_store)

    await scan(orchestrator)

    assert recorded_states == [
        OverlayState("Waiting...", True, "Scanning..."),
        OverlayState("Waiting...", True, "Thinking..."),
        OverlayState("Par", True, ""),
        OverlayState("Paris", True, ""),
        OverlayState("Paris", False, ""),
    ]
    assert orchestrator.cache.get(normalize_question(QUESTION)) == "Paris"
    assert orchestrator.answer_client.stream_calls == [QUESTION]
    assert orchestrator.last_question_text == QUESTION
    assert not orchestrator.is_scanning
    assert all(frame.released for frame in orchestrator.frame_buffer.handed_out)


@pytest.mark.asyncio
async def test_cache_hit_skips_backend(state_store, recorded_states):
    orchestrator = make_orchestrator(state_store)
    await scan(orchestrator)

    orchestrator.recognizer.text = "  WHAT is the capital of france?   Paris London Berlin Madrid "
    recorded_states.clear()
    await scan(orchestrator)

    assert len(orchestrator.answer_client.stream_calls) == 1
    assert recorded_states[-1] == OverlayState("Paris", False, "")


@pytest.mark.asyncio
async def test_short_text_is_not_a_question(state_store, recorded_states):
    orchestrator = make_orchestrator(state_store, text="Hello")

    await scan(orchestrator)

    assert recorded_states[-1] == OverlayState("No question found", False, "")
    assert orchestrator.answer_client.stream_calls == []


@pytest.mark.asyncio
async def test_no_frame_reports_capture_failure(state_store, recorded_states):
    orchestrator = make_orchestrator(state_store)
    orchestrator.frame_buffer.frame = None

    await scan(orchestrator)

    assert orchestrator.frame_buffer.next_frame_calls == 1
    assert orchestrator.recognizer.calls == 0
    assert recorded_states[-1] == OverlayState("Capture failed", False, "")


@pytest.mark.asyncio
async def test_waits_for_next_frame_when_none_cached(state_store, recorded_states):
    orchestrator = make_orchestrator(state_store, next_frame=make_frame())
    orchestrator.frame_buffer.frame = None

    await scan(orchestrator)

    assert orchestrator.recognizer.calls == 1
    assert recorded_states[-1] == OverlayState("Paris", False, "")
    assert orchestrator.frame_buffer.handed_out[0].released


@pytest.mark.asyncio
async def test_cancelled_stream_is_not_cached(state_store, recorded_states):
    hold = asyncio.Event()
    client = FakeAnswerClient(partials=("Par", "Paris"), hold=hold)
    orchestrator = make_orchestrator(state_store, client=client)

    task = orchestrator.scan_once()
    await wait_until(lambda: state_store.value.answer == "Paris")
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert client.stream_closed
    assert len(orchestrator.cache) == 0
    assert recorded_states[-1] == OverlayState("Paris", False, "")
    assert not orchestrator.is_scanning


@pytest.mark.asyncio
async def test_overlapping_scan_is_dropped(state_store, recorded_states):
    hold = asyncio.Event()
    client = FakeAnswerClient(hold=hold)
    orchestrator = make_orchestrator(state_store, client=client)

    first = orchestrator.scan_once()
    await wait_until(lambda: state_store.value.answer == "Paris")
    published = len(recorded_states)

    assert orchestrator.scan_once() is None
    assert len(recorded_states) == published
    assert orchestrator.is_scanning

    hold.set()
    await first
    assert not orchestrator.is_scanning
    assert len(client.stream_calls) == 1

    # The next request is accepted again
    orchestrator.recognizer.text = "Which planet is the largest? Mars Jupiter Venus"
    await scan(orchestrator)
    assert len(client.stream_calls) == 2


@pytest.mark.asyncio
async def test_similar_question_keeps_displayed_answer(state_store, recorded_states):
    orchestrator = make_orchestrator(state_store)
    await scan(orchestrator)

    orchestrator.recognizer.text = QUESTION_OCR_NOISE
    recorded_states.clear()
    await scan(orchestrator)

    assert len(orchestrator.answer_client.stream_calls) == 1
    assert recorded_states[-1] == OverlayState("Paris", False, "")


@pytest.mark.asyncio
async def test_similar_question_after_placeholder_queries_again(state_store):
    orchestrator = make_orchestrator(state_store)
    await scan(orchestrator)

    orchestrator.recognizer.text = "blank"
    await scan(orchestrator)
    assert state_store.value.answer == "No question found"

    orchestrator.recognizer.text = QUESTION_OCR_NOISE
    await scan(orchestrator)

    assert orchestrator.answer_client.stream_calls == [QUESTION, QUESTION_OCR_NOISE]


@pytest.mark.asyncio
async def test_fresh_prefetched_text_skips_capture(state_store):
    prefetch = FakePrefetch(PrefetchedText(QUESTION, captured_at_ms=99_000))
    orchestrator = make_orchestrator(state_store, prefetch=prefetch, now=100_000)

    await scan(orchestrator)

    assert orchestrator.frame_buffer.capture_calls == 0
    assert orchestrator.recognizer.calls == 0
    assert orchestrator.answer_client.stream_calls == [QUESTION]


@pytest.mark.asyncio
async def test_stale_prefetched_text_is_ignored(state_store):
    prefetch = FakePrefetch(PrefetchedText("An old question on screen", captured_at_ms=90_000))
    orchestrator = make_orchestrator(state_store, prefetch=prefetch, now=100_000)

    await scan(orchestrator)

    assert orchestrator.frame_buffer.capture_calls == 1
    assert orchestrator.answer_client.stream_calls == [QUESTION]


@pytest.mark.asyncio
async def test_backend_error_is_published(state_store, recorded_states):
    client = FakeAnswerClient(partials=(), error=NetworkFailure("API error: 500", status=500))
    orchestrator = make_orchestrator(state_store, client=client)

    await scan(orchestrator)

    assert recorded_states[-1] == OverlayState("Error: API error: 500", False, "")
    assert len(orchestrator.cache) == 0
    assert not orchestrator.is_scanning


@pytest.mark.asyncio
async def test_missing_api_key_is_shown_not_cached(state_store):
    client = FakeAnswerClient(partials=(API_KEY_MISSING,))
    orchestrator = make_orchestrator(state_store, client=client)

    await scan(orchestrator)

    assert state_store.value == OverlayState(API_KEY_MISSING, False, "")
    assert len(orchestrator.cache) == 0


@pytest.mark.asyncio
async def test_empty_stream_shows_no_answer(state_store):
    orchestrator = make_orchestrator(state_store, client=FakeAnswerClient(partials=()))

    await scan(orchestrator)

    assert state_store.value == OverlayState("No answer", False, "")
    assert len(orchestrator.cache) == 0


@pytest.mark.asyncio
async def test_single_shot_mode(state_store, recorded_states):
    client = FakeAnswerClient(answer="Paris")
    orchestrator = make_orchestrator(state_store, client=client, streaming=False)

    await scan(orchestrator)

    assert client.get_calls == [QUESTION]
    assert client.stream_calls == []
    assert [state.answer for state in recorded_states if state.status_text == ""] == ["Paris"]
    assert orchestrator.cache.get(normalize_question(QUESTION)) == "Paris"


def test_format_error_truncates_message():
    assert format_error(RuntimeError("x" * 100)) == "Error: " + "x" * 40
    assert format_error(RuntimeError()) == "Error: RuntimeError"


@pytest.mark.asyncio
async def test_stop_is_idempotent(state_store):
    hold = asyncio.Event()
    prefetch = FakePrefetch()
    orchestrator = make_orchestrator(state_store, client=FakeAnswerClient(hold=hold), prefetch=prefetch)
    task = orchestrator.scan_once()
    await wait_until(lambda: state_store.value.answer == "Paris")

    orchestrator.stop()
    orchestrator.stop()
    await asyncio.gather(task, return_exceptions=True)

    assert task.cancelled()
    assert prefetch.stop_calls == 1
    assert orchestrator.frame_buffer.release_calls == 1
    assert orchestrator.scan_once() is None
    assert not state_store.value.is_loading


@pytest.mark.asyncio
async def test_scan_cancelled_before_start_accepts_next(state_store, recorded_states):
    orchestrator = make_orchestrator(state_store)

    task = orchestrator.scan_once()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert not orchestrator.is_scanning
    assert recorded_states == []

    await scan(orchestrator)
    assert state_store.value == OverlayState("Paris", False, "")


@pytest.mark.asyncio
async def test_unexpected_error_is_published(state_store):
    orchestrator = make_orchestrator(state_store)
    orchestrator.recognizer.text = ValueError("tesseract exploded")

    await scan(orchestrator)

    assert state_store.value == OverlayState("Error: tesseract exploded", False, "")
    assert not orchestrator.is_scanning


@pytest.mark.asyncio
async def test_capture_failure_from_recognizer_maps_to_placeholder(state_store):
    orchestrator = make_orchestrator(state_store)
    orchestrator.recognizer.text = CaptureFailure("surface lost")

    await scan(orchestrator)

    assert state_store.value == OverlayState("Capture failed", False, "")
