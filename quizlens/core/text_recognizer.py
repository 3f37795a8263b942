"""OCR processing module for QuizLens."""
import asyncio
from typing import Callable, Optional

import pytesseract

from ..utils.log_config import get_component_logger
from .errors import RecognitionFailure
from .frames import DecodedFrame


class TextRecognizer:
    """Runs an OCR engine over decoded frames.

    The engine takes a Pillow image and returns text; it runs in the default
    thread pool so the event loop is never blocked. Any failure yields an empty
    string, since a frame without readable text is a normal outcome.
    """

    def __init__(self, engine: Optional[Callable] = None):
        self.engine = engine or pytesseract.image_to_string
        self.logger = get_component_logger("OCR")

    def _run_engine(self, frame: DecodedFrame) -> str:
        try:
            return self.engine(frame.to_image())
        except Exception as e:
            raise RecognitionFailure(str(e) or type(e).__name__) from e

    async def recognize(self, frame: DecodedFrame) -> str:
        """Extract text from a frame, or '' on failure."""
        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, self._run_engine, frame)
        except RecognitionFailure as e:
            self.logger.warning(f"OCR processing failed: {e}")
            return ""

        if not text or not text.strip():
            self.logger.debug("No text found in frame")
            return ""

        # Trim excessive whitespace while preserving newlines
        text = '\n'.join(line.strip() for line in text.splitlines()).strip()
        self.logger.debug(f"OCR extracted {len(text)} characters")
        return text
