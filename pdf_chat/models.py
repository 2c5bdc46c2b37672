# pdf_chat/models.py
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


# ============================================================
# DOCUMENTS
# ============================================================

class DocumentChunk(BaseModel):
    """A span of page text ready to be embedded."""

    model_config = ConfigDict(frozen=True)

    text: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RetrievedChunk(BaseModel):
    """A stored chunk returned by similarity search, with its score."""

    model_config = ConfigDict(frozen=True)

    text: str
    score: float
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ============================================================
# CHAT REQUEST
# ============================================================

class ChatMessage(BaseModel):
    """One prior turn of the conversation."""

    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(WireModel):
    """
    Raw body of POST /chat.

    Fields are typed loosely on purpose: shape checks happen in the
    orchestrator so every rejection maps to the same 400 response.
    """

    message: Any = None
    conversation_history: Any = Field(default_factory=list)
    model: Optional[str] = None


# ============================================================
# STREAM EVENTS
# ============================================================

class DocsEvent(WireModel):
    type: Literal["docs"] = "docs"
    documents: List[RetrievedChunk]


class ModelInfoEvent(WireModel):
    type: Literal["model_info"] = "model_info"
    model: str
    model_name: str
    provider: str
    cost: str


class StreamChunkEvent(WireModel):
    type: Literal["stream"] = "stream"
    content: str


class DoneMetadata(WireModel):
    model: str
    documents_used: int
    response_length: int


class DoneEvent(WireModel):
    type: Literal["done"] = "done"
    metadata: DoneMetadata


class ErrorEvent(WireModel):
    type: Literal["error"] = "error"
    error: str


StreamEvent = Union[DocsEvent, ModelInfoEvent, StreamChunkEvent, DoneEvent, ErrorEvent]

TERMINAL_EVENT_TYPES = ("done", "error")


# ============================================================
# HTTP RESPONSES
# ============================================================

class UploadResponse(BaseModel):
    """Response after a PDF has been queued for ingestion."""
    message: str = "uploaded"


class ModelDescriptor(BaseModel):
    name: str
    provider: str
    cost: str
    description: str


class ModelsResponse(BaseModel):
    """Selectable chat models and the default."""
    models: Dict[str, ModelDescriptor]
    default: str


class HealthResponse(BaseModel):
    """Liveness probe response."""
    status: str
