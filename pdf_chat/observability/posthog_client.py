# pdf_chat/observability/posthog_client.py

"""
Product analytics events.

Tracking is best effort: a missing key disables it, and a failing
capture only logs a warning. Request ids stand in for user ids.
"""

import logging
from typing import Any, Dict, Optional

from posthog import Posthog

from pdf_chat.config import POSTHOG_API_KEY, POSTHOG_HOST

logger = logging.getLogger(__name__)


class PostHogClient:

    def __init__(
        self,
        api_key: Optional[str] = POSTHOG_API_KEY,
        host: str = POSTHOG_HOST,
        client: Optional[Posthog] = None,
    ):

        self._client = client

        if self._client is not None:
            return

        if not api_key:
            logger.warning("PostHog disabled: POSTHOG_API_KEY not set")
            return

        try:

            self._client = Posthog(
                project_api_key=api_key,
                host=host,
                timeout=5,
                flush_interval=1,
            )

            logger.info("PostHog client initialized", extra={"host": host})

        except Exception as e:

            logger.error(
                "PostHog initialization failed",
                extra={"error": str(e)},
            )

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def _track(
        self,
        distinct_id: str,
        event: str,
        properties: Optional[Dict[str, Any]] = None,
    ):

        if not self._client:
            return

        try:

            self._client.capture(
                distinct_id=distinct_id,
                event=event,
                properties=properties or {},
            )

        except Exception as e:

            logger.warning(
                "PostHog tracking failed",
                extra={"event": event, "error": str(e)},
            )

    def identify_user(
        self,
        distinct_id: str,
        properties: Optional[Dict[str, Any]] = None,
    ):

        if not self._client:
            return

        try:

            self._client.identify(
                distinct_id=distinct_id,
                properties=properties or {},
            )

        except Exception as e:

            logger.warning(
                "PostHog identify failed",
                extra={"error": str(e)},
            )

    # ==========================================================
    # EVENTS
    # ==========================================================

    def track_document_upload(
        self,
        distinct_id: str,
        filename: str,
        size_bytes: int,
        job_id: Optional[str] = None,
    ):

        self._track(
            distinct_id,
            "pdf_uploaded",
            {
                "filename": filename,
                "size_bytes": size_bytes,
                "job_id": job_id,
            },
        )

    def track_chat(
        self,
        distinct_id: str,
        model: str,
        documents_used: int,
        response_length: int,
        latency: float,
    ):

        self._track(
            distinct_id,
            "chat_completed",
            {
                "model": model,
                "documents_used": documents_used,
                "response_length": response_length,
                "latency_seconds": latency,
            },
        )

    def track_retrieval(
        self,
        distinct_id: str,
        chunks_retrieved: int,
        top_score: Optional[float],
    ):

        self._track(
            distinct_id,
            "retrieval_completed",
            {
                "chunks_retrieved": chunks_retrieved,
                "top_score": top_score,
            },
        )

    def track_error(
        self,
        distinct_id: str,
        error_type: str,
        error_message: str,
        endpoint: str,
    ):

        self._track(
            distinct_id,
            "system_error",
            {
                "error_type": error_type,
                "error_message": error_message,
                "endpoint": endpoint,
            },
        )

    def shutdown(self):

        if not self._client:
            return

        try:
            self._client.shutdown()
        except Exception as e:
            logger.warning("PostHog shutdown failed", extra={"error": str(e)})
