# pdf_chat/errors.py
"""
Exception taxonomy for the chat service and ingestion worker.

    PdfChatError
    +-- ChatValidationError  (malformed / oversized chat request, HTTP 400)
    +-- LoadError            (missing, unreadable or invalid PDF)
    +-- ProcessingError      (any ingestion job failure)
    +-- GenerationError      (upstream completion call failed)

Retrieval failures have no dedicated type: the orchestrator recovers
from them locally and never surfaces them.
"""

from typing import Any, Dict, Optional


class PdfChatError(Exception):
    """Base exception for the service."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(message)


class ChatValidationError(PdfChatError):
    """
    Chat request rejected before any stream is opened.

    `extra` is merged into the JSON error body, e.g. the list of
    available models when an unknown model is requested.
    """

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.extra = extra or {}

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


class LoadError(PdfChatError):
    """Raised when a PDF cannot be turned into page texts."""


class ProcessingError(PdfChatError):
    """Raised by the ingestion worker when a job fails at any step."""

    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message)
        self.job_id = job_id


class GenerationError(PdfChatError):
    """Raised when the streaming completion call fails."""

    def __init__(self, message: str, model: Optional[str] = None):
        super().__init__(message)
        self.model = model
