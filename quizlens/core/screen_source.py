"""Screen capture producer for QuizLens.

Grabs the desktop on a dedicated thread at a fixed interval and pushes each grab
as a RawImage. Buffers come from a pool of `max_images` slots; a slot is only
returned when the consumer closes the RawImage. When every slot is still held
the grab is skipped, the same way a hardware image reader stalls.
"""
import threading
import time
from typing import Callable, Optional

from PIL import ImageGrab

from ..utils.log_config import get_component_logger
from .constants import BYTES_PER_PIXEL, MAX_IMAGES
from .frames import ImageProducer, RawImage


class ScreenGrabSource(ImageProducer):
    """Pushes screen grabs to a listener through the listener's executor."""

    def __init__(self, interval: float = 0.5, max_images: int = MAX_IMAGES,
                 grab: Callable = None):
        self.logger = get_component_logger("Capture")
        self.interval = interval
        self._grab = grab or ImageGrab.grab
        self._slots = threading.BoundedSemaphore(max_images)

        self._listener: Optional[Callable[[RawImage], None]] = None
        self._executor = None

        self.capturing = False
        self.capture_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self.dropped_frames = 0

    def set_listener(self, listener, executor) -> None:
        self._listener = listener
        self._executor = executor

    def grab_once(self) -> bool:
        """Grab one frame and hand it to the listener. Returns False if skipped."""
        if self._listener is None or self._executor is None:
            return False
        if not self._slots.acquire(blocking=False):
            self.dropped_frames += 1
            self.logger.warning("All image buffer slots in use, skipping frame")
            return False

        try:
            screenshot = self._grab().convert("RGBA")
            raw = RawImage(
                screenshot.tobytes(),
                screenshot.width,
                screenshot.height,
                row_stride=screenshot.width * BYTES_PER_PIXEL,
                on_close=self._slots.release,
            )
        except Exception as e:
            self._slots.release()
            self.logger.error(f"Screen grab failed: {e}")
            return False

        try:
            future = self._executor.submit(self._listener, raw)
        except RuntimeError:
            # Executor shut down while grabbing
            raw.close()
            return False
        future.add_done_callback(self._log_listener_failure)
        return True

    def _log_listener_failure(self, future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self.logger.error(f"Frame listener raised: {error}")

    def _capture_loop(self):
        """Main screen capture loop."""
        self.logger.info("Starting screen capture loop")
        while not self._stop_event.is_set():
            started = time.monotonic()
            self.grab_once()
            elapsed = time.monotonic() - started
            self._stop_event.wait(max(0.0, self.interval - elapsed))
        self.logger.info("Screen capture loop exited")

    def start(self) -> None:
        """Start the capture thread."""
        if self.capturing:
            return
        self.capturing = True
        self._stop_event.clear()
        self.capture_thread = threading.Thread(target=self._capture_loop, name="QuizLensCapture")
        self.capture_thread.daemon = True  # Thread will exit when main process exits
        self.capture_thread.start()
        self.logger.info("Screen capture started")

    def close(self) -> None:
        """Stop the capture thread. Does not wait for an in-flight grab."""
        if not self.capturing:
            return
        self.capturing = False
        self._stop_event.set()
        self.capture_thread = None
        self.logger.info("Screen capture stopped")

    def is_capturing(self):
        """Check if screen capture is active."""
        return self.capturing
