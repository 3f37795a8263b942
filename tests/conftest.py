"""Test configuration and fixtures for QuizLens tests."""
import os
import tempfile

# Keep config and log files out of the source tree during tests
os.environ.setdefault("QUIZLENS_HOME", tempfile.mkdtemp(prefix="quizlens-test-"))

import asyncio
import pytest
import pytest_asyncio
import numpy as np
from aiohttp import web
from unittest.mock import Mock

from quizlens.core.frames import DecodedFrame, ImageProducer, RawImage
from quizlens.core.overlay_state import OverlayStateStore


def make_raw_image(width=8, height=4, row_padding=0, value=None, on_close=None):
    """Build an RGBA RawImage; padding bytes are filled with 0xEE."""
    row_stride = width * 4 + row_padding
    buffer = np.full((height, row_stride), 0xEE, dtype=np.uint8)
    if value is None:
        pixels = (np.arange(width * height * 4) % 200).astype(np.uint8)
    else:
        pixels = np.full(width * height * 4, value, dtype=np.uint8)
    buffer[:, : width * 4] = pixels.reshape(height, width * 4)
    return RawImage(buffer.tobytes(), width, height, row_stride=row_stride, on_close=on_close)


def make_frame(value=100, width=4, height=2):
    return DecodedFrame(np.full((height, width, 4), value, dtype=np.uint8))


class FakeProducer(ImageProducer):
    """Producer that records its listener and lets tests push frames by hand."""

    def __init__(self):
        self.listener = None
        self.executor = None
        self.started = False
        self.close_calls = 0

    def set_listener(self, listener, executor):
        self.listener = listener
        self.executor = executor

    def start(self):
        self.started = True

    def close(self):
        self.close_calls += 1

    def push(self, raw):
        """Deliver a frame through the dedicated executor, like a real producer."""
        return self.executor.submit(self.listener, raw)


class FakeFrameBuffer:
    def __init__(self, frame=None, next_frame=None):
        self.frame = frame
        self.next_frame = next_frame
        self.capture_calls = 0
        self.next_frame_calls = 0
        self.release_calls = 0
        self.handed_out = []

    def capture_frame(self):
        self.capture_calls += 1
        copy = self.frame.copy() if self.frame is not None else None
        if copy is not None:
            self.handed_out.append(copy)
        return copy

    async def capture_next_frame(self, timeout=2.0):
        self.next_frame_calls += 1
        copy = self.next_frame.copy() if self.next_frame is not None else None
        if copy is not None:
            self.handed_out.append(copy)
        return copy

    def release(self):
        self.release_calls += 1


class FakeRecognizer:
    def __init__(self, text=""):
        self.text = text
        self.calls = 0

    async def recognize(self, frame):
        self.calls += 1
        if isinstance(self.text, Exception):
            raise self.text
        return self.text


class FakeAnswerClient:
    """Answer client whose stream yields preset partials.

    If `hold` is set, the stream waits on it after yielding every partial.
    """

    def __init__(self, partials=("Par", "Paris"), error=None, hold=None, answer="Paris"):
        self.partials = list(partials)
        self.error = error
        self.hold = hold
        self.answer = answer
        self.stream_calls = []
        self.get_calls = []
        self.stream_closed = False

    async def stream_answer(self, question_text):
        self.stream_calls.append(question_text)
        try:
            for partial in self.partials:
                yield partial
            if self.error is not None:
                raise self.error
            if self.hold is not None:
                await self.hold.wait()
        finally:
            self.stream_closed = True

    async def get_answer(self, question_text):
        self.get_calls.append(question_text)
        if self.error is not None:
            raise self.error
        return self.answer

    async def close(self):
        pass


@pytest.fixture
def fake_producer():
    return FakeProducer()


@pytest.fixture
def state_store():
    return OverlayStateStore()


@pytest.fixture
def recorded_states(state_store):
    """Every state published to `state_store`, in order."""
    states = []
    state_store.subscribe(states.append)
    return states


@pytest_asyncio.fixture
async def sse_backend():
    """In-process chat completions backend.

    Yields (base_url, control). Set control.handler to an aiohttp handler
    coroutine before making requests; control.requests collects request bodies.
    """
    control = Mock()
    control.requests = []
    control.handler = None

    async def completions(request):
        control.requests.append({
            "body": await request.json(),
            "headers": dict(request.headers)
        })
        return await control.handler(request)

    app = web.Application()
    app.router.add_post("/v1/chat/completions", completions)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    host, port = runner.addresses[0][:2]
    try:
        yield f"http://{host}:{port}/v1", control
    finally:
        await runner.cleanup()


async def wait_until(predicate, timeout=2.0, interval=0.01):
    """Poll predicate until it is true or fail after timeout."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(interval)
