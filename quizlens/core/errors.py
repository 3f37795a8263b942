"""Exception taxonomy for the scan pipeline.

Every failure that reaches ScanOrchestrator is turned into a terminal overlay
state; none of these stop the process.
"""


class QuizLensError(Exception):
    """Base class for pipeline errors."""


class CaptureFailure(QuizLensError):
    """No frame could be obtained from the capture surface."""


class NoQuestionDetected(QuizLensError):
    """Recognized text is too short to be a question."""


class RecognitionFailure(QuizLensError):
    """The OCR engine failed. TextRecognizer converts this to empty text."""


class CredentialMissing(QuizLensError):
    """No API key is configured for the LLM backend."""


class NetworkFailure(QuizLensError):
    """Connect/read timeout, transport error or non-2xx response."""

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status


class StreamParseFailure(QuizLensError):
    """A single SSE frame could not be parsed. Never aborts the stream."""


class UnexpectedFailure(QuizLensError):
    """Anything else."""
