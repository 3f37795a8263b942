"""QuizLens Python Application

This package answers on-screen quiz questions: it captures the screen, extracts the
question with OCR, asks an LLM backend for the answer and publishes the result to
overlay renderers over Socket.IO.
"""

__version__ = "0.1.0"
