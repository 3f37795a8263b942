"""Raw producer buffers and decoded frames.

A RawImage belongs to the producer's buffer pool and must be closed as soon as
its pixels have been decoded. A DecodedFrame owns its pixel array outright.
"""
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

import numpy as np
from PIL import Image

from .constants import BYTES_PER_PIXEL


class FrameReleasedError(RuntimeError):
    """Raised when the pixels of a released frame are accessed."""


class RawImage:
    """Producer-owned pixel buffer handle.

    `row_stride` is the number of bytes per row in `buffer`, which can exceed
    `width * pixel_stride` when the producer pads rows.
    """

    def __init__(self, buffer, width: int, height: int, row_stride: int = None,
                 pixel_stride: int = BYTES_PER_PIXEL,
                 on_close: Optional[Callable[[], None]] = None):
        self.buffer = buffer
        self.width = width
        self.height = height
        self.pixel_stride = pixel_stride
        self.row_stride = row_stride if row_stride is not None else width * pixel_stride
        self._on_close = on_close
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Return the buffer slot to the producer. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            on_close, self._on_close = self._on_close, None
            self.buffer = None
        if on_close is not None:
            on_close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class DecodedFrame:
    """An owned RGBA pixel array (height x width x 4)."""

    __slots__ = ("_pixels", "captured_at")

    def __init__(self, pixels: np.ndarray, captured_at: float = None):
        self._pixels = pixels
        self.captured_at = captured_at if captured_at is not None else time.time()

    @property
    def released(self) -> bool:
        return self._pixels is None

    @property
    def pixels(self) -> np.ndarray:
        pixels = self._pixels
        if pixels is None:
            raise FrameReleasedError("frame has been released")
        return pixels

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    def copy(self) -> Optional["DecodedFrame"]:
        """Independent copy, or None if this frame was released meanwhile."""
        pixels = self._pixels
        if pixels is None:
            return None
        return DecodedFrame(pixels.copy(), self.captured_at)

    def to_image(self) -> Image.Image:
        """RGB Pillow image for the OCR engine."""
        return Image.fromarray(np.ascontiguousarray(self.pixels[:, :, :3]))

    def release(self) -> None:
        self._pixels = None


class ImageProducer(ABC):
    """Push source of RawImage buffers.

    Implementations call the listener once per frame through the executor given to
    `set_listener`; the listener is responsible for closing the RawImage.
    """

    @abstractmethod
    def set_listener(self, listener: Callable[[RawImage], None], executor) -> None:
        pass

    @abstractmethod
    def start(self) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass
