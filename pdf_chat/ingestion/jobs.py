# pdf_chat/ingestion/jobs.py
import json
import time
import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from pdf_chat.config import (
    INGESTION_BACKOFF_SECONDS,
    INGESTION_MAX_ATTEMPTS,
)


class IngestionJob(BaseModel):
    """A PDF waiting to be chunked and embedded."""

    model_config = ConfigDict(frozen=True)

    id: str
    filename: str
    path: str
    destination: Optional[str] = None

    @property
    def source_path(self) -> str:
        return self.path


class QueuePolicy(BaseModel):
    """
    Retry policy owned by the queue, not the worker.

    A failed job is re-delivered after `backoff_seconds * 2 ** (attempt - 1)`
    until it has been attempted `max_attempts` times, then dead-lettered.
    """

    max_attempts: int = Field(default=INGESTION_MAX_ATTEMPTS, ge=1)
    backoff_seconds: float = Field(default=INGESTION_BACKOFF_SECONDS, ge=0)

    def backoff_for(self, attempts: int) -> float:
        return self.backoff_seconds * (2 ** max(attempts - 1, 0))


class JobRecord(BaseModel):
    """Queue envelope around a job payload."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str
    data: Dict[str, Any]
    attempts: int = 0
    created_at: float = Field(default_factory=time.time)
    last_error: Optional[str] = None

    def to_job(self) -> IngestionJob:
        return IngestionJob(id=self.id, **self.data)

    def encode(self) -> str:
        return self.model_dump_json()

    @classmethod
    def decode(cls, raw) -> "JobRecord":
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode()
        try:
            return cls.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValueError) as e:
            raise ValueError(f"Malformed job record: {e}") from e
