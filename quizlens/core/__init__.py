"""Core functionality for the QuizLens application.

Components:
- FrameBuffer: latest-frame buffer fed by the screen producer
- TextRecognizer: OCR over decoded frames
- PreFetchLoop: speculative background OCR
- AnswerCache: LRU answer cache
- StreamingAnswerClient: LLM backend client with SSE streaming
- ScanOrchestrator: scan state machine publishing OverlayState
- OverlayService: wires the pipeline together
"""

from .answer_cache import AnswerCache
from .answer_client import StreamingAnswerClient
from .frame_buffer import FrameBuffer
from .frames import DecodedFrame, ImageProducer, RawImage
from .overlay_service import OverlayService
from .overlay_state import OverlayState, OverlayStateStore
from .prefetch import PreFetchLoop, PrefetchedText
from .scan_orchestrator import ScanOrchestrator
from .screen_source import ScreenGrabSource
from .text_recognizer import TextRecognizer

__all__ = [
    'AnswerCache',
    'StreamingAnswerClient',
    'FrameBuffer',
    'DecodedFrame',
    'ImageProducer',
    'RawImage',
    'OverlayService',
    'OverlayState',
    'OverlayStateStore',
    'PreFetchLoop',
    'PrefetchedText',
    'ScanOrchestrator',
    'ScreenGrabSource',
    'TextRecognizer'
]
