"""Latest-frame buffer between the screen producer and the scan pipeline.

The producer pushes RawImage buffers from a small fixed pool. Each buffer is
decoded and closed inside the callback, so the pool never runs dry, and the
decoded result becomes the single "latest frame" that consumers copy from.

All producer callbacks and every mutation of the cached frame run on one
dedicated thread. Consumers on the event loop only read the cached reference
(no lock) or register a single waiter for the next frame.
"""
import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import cv2
import numpy as np

from ..utils.atomic import AtomicBoolean, AtomicReference
from ..utils.log_config import get_component_logger
from .constants import FRAME_SCALE, FRAME_WAIT_TIMEOUT_MS
from .frames import DecodedFrame, ImageProducer, RawImage


def decode_raw_image(raw: RawImage, scale: float = FRAME_SCALE) -> np.ndarray:
    """Decode a padded RGBA buffer into an owned, downscaled pixel array.

    Rows may carry padding (row_stride > width * pixel_stride); the padding is
    cropped before scaling. Nearest-neighbour sampling is enough for OCR.
    """
    flat = rows = visible = None
    try:
        flat = np.frombuffer(raw.buffer, dtype=np.uint8)
        rows = flat[: raw.row_stride * raw.height].reshape(raw.height, raw.row_stride)
        row_padding = raw.row_stride - raw.pixel_stride * raw.width
        if row_padding:
            visible = np.ascontiguousarray(rows[:, : raw.width * raw.pixel_stride])
        else:
            visible = rows
        visible = visible.reshape(raw.height, raw.width, raw.pixel_stride)

        target_size = (max(1, int(raw.width * scale)), max(1, int(raw.height * scale)))
        return cv2.resize(visible, target_size, interpolation=cv2.INTER_NEAREST)
    finally:
        # Views into the producer's slot must not outlive it
        del flat, rows, visible


class _PendingFrameRequest:
    """A single waiter for the next frame, resolved from the producer thread."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self.future = loop.create_future()

    def deliver(self, frame: DecodedFrame) -> None:
        try:
            self.loop.call_soon_threadsafe(self._resolve, frame)
        except RuntimeError:
            # Event loop already closed
            frame.release()

    def abandon(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self._resolve, None)
        except RuntimeError:
            pass

    def _resolve(self, frame: Optional[DecodedFrame]) -> None:
        if self.future.done():
            # Waiter timed out or was cancelled before delivery
            if frame is not None:
                frame.release()
            return
        self.future.set_result(frame)


class FrameBuffer:
    """Turns a push-based producer into a pull-based latest-frame source."""

    def __init__(self, producer: ImageProducer, scale: float = FRAME_SCALE):
        self.logger = get_component_logger("FrameBuffer")
        self._producer = producer
        self._scale = scale

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="QuizLensImageReader")
        self._latest: Optional[DecodedFrame] = None
        self._pending: AtomicReference[_PendingFrameRequest] = AtomicReference()
        self._released = AtomicBoolean(False)

        producer.set_listener(self.on_frame_arrived, self._executor)

    def start(self) -> None:
        """Start the producer."""
        self._producer.start()
        self.logger.info("Frame producer started")

    @property
    def has_pending_request(self) -> bool:
        return self._pending.get() is not None

    @property
    def is_released(self) -> bool:
        return self._released.get()

    def on_frame_arrived(self, raw_image: RawImage) -> None:
        """Producer callback. The raw buffer is always closed before this returns."""
        frame = None
        with raw_image:
            if self._released.get():
                return
            try:
                frame = DecodedFrame(decode_raw_image(raw_image, self._scale))
            except (ValueError, TypeError, cv2.error) as e:
                self.logger.error(f"Frame decode failed: {e}")
                return

        waiter = self._pending.get_and_set(None)
        if waiter is not None:
            waiter.deliver(frame)
            return

        previous = self._latest
        self._latest = frame
        if previous is not None:
            previous.release()

        # release() may have run while this frame was decoding
        if self._released.get():
            self._drop_latest()

    def capture_frame(self) -> Optional[DecodedFrame]:
        """Copy of the latest frame without waiting; None before the first frame."""
        for _ in range(2):
            latest = self._latest
            if latest is None:
                return None
            copy = latest.copy()
            if copy is not None:
                return copy
            # Replaced and released between the read and the copy; read again
        return None

    async def capture_next_frame(self, timeout: float = FRAME_WAIT_TIMEOUT_MS / 1000) -> Optional[DecodedFrame]:
        """Wait for the next decoded frame.

        On timeout this falls back to a copy of the cached latest frame, which may
        still be None.
        """
        if self._released.get():
            return None

        request = _PendingFrameRequest(asyncio.get_running_loop())
        replaced = self._pending.get_and_set(request)
        if replaced is not None:
            replaced.abandon()

        try:
            return await asyncio.wait_for(request.future, timeout)
        except asyncio.TimeoutError:
            self.logger.warning("Timed out waiting for next frame, using cached frame")
            return self.capture_frame()
        finally:
            self._pending.compare_and_set(request, None)

    def _drop_latest(self) -> None:
        latest = self._latest
        self._latest = None
        if latest is not None:
            latest.release()

    def release(self) -> None:
        """Tear down the producer and drop every held frame. Idempotent."""
        if not self._released.compare_and_set(False, True):
            return
        self.logger.info("Releasing frame buffer")

        waiter = self._pending.get_and_set(None)
        if waiter is not None:
            waiter.abandon()

        self._drop_latest()
        try:
            self._producer.close()
        except Exception as e:
            self.logger.warning(f"Producer close failed: {e}", exc_info=True)
        self._executor.shutdown(wait=False)
        self.logger.info("Frame buffer released")
