"""Service wiring for QuizLens.

Builds the capture/OCR/answer pipeline, starts screen capture and the prefetch
loop, and tears everything down again on stop.
"""
from typing import Optional

from ..utils.config_loader import config as config_manager
from ..utils.log_config import get_component_logger
from .answer_cache import AnswerCache
from .answer_client import StreamingAnswerClient
from .frame_buffer import FrameBuffer
from .frames import ImageProducer
from .overlay_state import OverlayStateStore
from .prefetch import PreFetchLoop
from .scan_orchestrator import ScanOrchestrator
from .screen_source import ScreenGrabSource
from .text_recognizer import TextRecognizer


class OverlayService:
    """Owns the pipeline components for the lifetime of one overlay session."""

    def __init__(self,
                 producer: Optional[ImageProducer] = None,
                 recognizer: Optional[TextRecognizer] = None,
                 answer_client: Optional[StreamingAnswerClient] = None,
                 streaming: Optional[bool] = None):
        self.logger = get_component_logger("Service")

        if producer is None:
            producer = ScreenGrabSource(
                interval=config_manager.get('capture', 'grab_interval', 0.5),
                max_images=config_manager.get('capture', 'max_images', 2)
            )
        if streaming is None:
            streaming = config_manager.get('llm', 'streaming', True)

        self.frame_buffer = FrameBuffer(producer)
        self.recognizer = recognizer or TextRecognizer()
        self.answer_client = answer_client or StreamingAnswerClient()
        self.prefetch_loop = PreFetchLoop(self.frame_buffer, self.recognizer)
        self.state = OverlayStateStore()
        self.orchestrator = ScanOrchestrator(
            self.frame_buffer,
            self.recognizer,
            self.answer_client,
            prefetch_loop=self.prefetch_loop,
            cache=AnswerCache(),
            state=self.state,
            streaming=streaming
        )

        self._started = False
        self._stopped = False

    def start(self) -> None:
        """Start capturing and prefetching. Must run inside the event loop."""
        if self._started:
            return
        self._started = True
        self.frame_buffer.start()
        self.prefetch_loop.start()
        self.logger.info("Overlay service started")

    def scan_once(self):
        return self.orchestrator.scan_once()

    async def stop(self) -> None:
        """Stop every task, release the frame buffer and close the HTTP client."""
        if self._stopped:
            return
        self._stopped = True
        self.logger.info("Overlay service stopping")
        self.orchestrator.stop()
        try:
            await self.answer_client.close()
        except Exception as e:
            self.logger.warning(f"Answer client close failed: {e}", exc_info=True)
        self.logger.info("Overlay service stopped")

    @property
    def stopped(self) -> bool:
        return self._stopped
