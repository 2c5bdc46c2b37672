# pdf_chat/workflow/chat_orchestrator.py

"""
Retrieval-augmented chat orchestration.

One request moves through VALIDATING → RETRIEVING → STREAMING → TERMINATED.
Validation happens synchronously (before the HTTP stream exists); the rest
runs inside `ChatOrchestrator.handle`, an async generator of StreamEvents
that never raises: every failure becomes a terminal `error` event, and a
client disconnect ends the sequence silently.
"""

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from pdf_chat.config import (
    CHAT_TIMEOUT_MS,
    HISTORY_CONTEXT_MESSAGES,
    LEGACY_CHAT_MODEL,
    MAX_HISTORY_MESSAGES,
    MAX_MESSAGE_LENGTH,
    SIMILARITY_THRESHOLD,
    TOP_K,
)
from pdf_chat.errors import ChatValidationError
from pdf_chat.llm.models import AVAILABLE_MODELS, DEFAULT_MODEL
from pdf_chat.memory.retriever import retrieve
from pdf_chat.models import (
    ChatMessage,
    ChatRequest,
    DocsEvent,
    DoneEvent,
    DoneMetadata,
    ErrorEvent,
    ModelInfoEvent,
    StreamChunkEvent,
    StreamEvent,
)
from pdf_chat.prompts.prompt_builder import build_messages, build_system_prompt

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = (
    "An error occurred while processing your request. Please try again."
)
TIMEOUT_ERROR_MESSAGE = "Request timeout"


class RequestState(str, enum.Enum):
    VALIDATING = "VALIDATING"
    RETRIEVING = "RETRIEVING"
    STREAMING = "STREAMING"
    TERMINATED = "TERMINATED"


class Outcome(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


# ============================================================
# VALIDATION
# ============================================================

@dataclass(frozen=True)
class ValidatedChat:
    """A chat request that passed validation, with its message sanitized."""

    message: str
    model: str
    history: List[ChatMessage] = field(default_factory=list)
    # legacy fixed-model requests go straight to OpenAI
    direct: bool = False


def validate_chat_request(
    request: ChatRequest,
    default_model: str = DEFAULT_MODEL,
    allowed_models: Optional[Dict[str, Any]] = None,
) -> ValidatedChat:
    """
    Reject malformed or oversized requests with ChatValidationError.

    The message is trimmed and capped at MAX_MESSAGE_LENGTH; only the
    checks below reject.
    """

    allowed_models = AVAILABLE_MODELS if allowed_models is None else allowed_models

    message = request.message

    if not isinstance(message, str) or not message.strip():
        raise ChatValidationError(
            "Message is required and must be a non-empty string"
        )

    if len(message) > MAX_MESSAGE_LENGTH:
        raise ChatValidationError(
            f"Message too long. Maximum {MAX_MESSAGE_LENGTH} characters allowed."
        )

    # an absent key defaults to []; an explicit null is rejected
    raw_history = request.conversation_history

    if not isinstance(raw_history, list) or len(raw_history) > MAX_HISTORY_MESSAGES:
        raise ChatValidationError(
            f"Invalid conversation history. Maximum {MAX_HISTORY_MESSAGES} messages allowed."
        )

    try:
        history = [ChatMessage.model_validate(turn) for turn in raw_history]
    except ValidationError:
        raise ChatValidationError(
            "Invalid conversation history. Each message needs a role "
            "(system, user or assistant) and string content."
        )

    model = default_model if request.model is None else request.model

    if model not in allowed_models:
        raise ChatValidationError(
            "Invalid model selection",
            extra={"availableModels": list(allowed_models)},
        )

    return ValidatedChat(
        message=message.strip()[:MAX_MESSAGE_LENGTH],
        model=model,
        history=history,
    )


def validate_legacy_chat_request(message: Any) -> ValidatedChat:
    """Single-turn request for the fixed legacy model (GET /chat)."""

    chat = validate_chat_request(
        ChatRequest(message=message),
        default_model=LEGACY_CHAT_MODEL,
        allowed_models={LEGACY_CHAT_MODEL: None},
    )

    return replace(chat, direct=True)


# ============================================================
# DEADLINE
# ============================================================

class RequestTimeout(Exception):
    pass


class Deadline:
    """
    Wall-clock budget for one request, started at acceptance.

    `run` races an awaitable against the remaining budget. When the budget
    wins, the awaitable is abandoned (its task is cancelled in the
    background, never awaited) and RequestTimeout is raised.
    """

    def __init__(self, seconds: float):
        self._loop = asyncio.get_running_loop()
        self._expires_at = self._loop.time() + seconds
        self.abandoned = False

    def remaining(self) -> float:
        return self._expires_at - self._loop.time()

    async def run(self, awaitable: Awaitable):

        task = asyncio.ensure_future(awaitable)

        remaining = self.remaining()

        if remaining <= 0:
            self._abandon(task)
            raise RequestTimeout()

        try:
            done, _ = await asyncio.wait({task}, timeout=remaining)
        except asyncio.CancelledError:
            self._abandon(task)
            raise

        if not done:
            self._abandon(task)
            raise RequestTimeout()

        return task.result()

    def _abandon(self, task: asyncio.Future):
        task.cancel()
        self.abandoned = True


_END = object()


async def _next_fragment(fragments: AsyncIterator[str]):
    try:
        return await fragments.__anext__()
    except StopAsyncIteration:
        return _END


async def _never_disconnected() -> bool:
    return False


async def _close_quietly(fragments: AsyncIterator[str], request_id: str):

    aclose = getattr(fragments, "aclose", None)

    if aclose is None:
        return

    try:
        await aclose()
    except Exception as e:
        logger.warning(
            "Closing upstream stream failed",
            extra={"request_id": request_id, "error": str(e)},
        )


# ============================================================
# ORCHESTRATOR
# ============================================================

class ChatOrchestrator:
    """
    Per-request RAG pipeline.

    Stateless across requests: everything request-specific lives in the
    `handle` generator, so one instance serves all concurrent requests.
    """

    def __init__(
        self,
        store,
        llm_client,
        top_k: int = TOP_K,
        score_threshold: float = SIMILARITY_THRESHOLD,
        timeout_ms: int = CHAT_TIMEOUT_MS,
        history_limit: int = HISTORY_CONTEXT_MESSAGES,
        metrics=None,
        analytics=None,
    ):
        self._store = store
        self._llm = llm_client
        self._top_k = top_k
        self._score_threshold = score_threshold
        self._timeout_seconds = timeout_ms / 1000
        self._history_limit = history_limit
        self._metrics = metrics
        self._analytics = analytics

    async def handle(
        self,
        chat: ValidatedChat,
        is_disconnected: Callable[[], Awaitable[bool]] = _never_disconnected,
        request_id: str = "unknown",
    ) -> AsyncIterator[StreamEvent]:
        """
        Yield the event sequence for one validated request:
        [docs] [model_info] stream* (done | error), or a prefix of it
        when the client goes away.
        """

        start = time.time()
        deadline = Deadline(self._timeout_seconds)
        outcome = Outcome.CANCELLED
        documents_used = 0
        response_length = 0
        fragments: Optional[AsyncIterator[str]] = None
        state = RequestState.RETRIEVING

        logger.info(
            "Processing query",
            extra={
                "request_id": request_id,
                "model": chat.model,
                "preview": chat.message[:30],
                "history": len(chat.history),
            },
        )

        try:

            if await is_disconnected():
                return

            # ---------------- RETRIEVING ----------------

            try:
                chunks = await deadline.run(
                    retrieve(
                        chat.message,
                        self._store,
                        top_k=self._top_k,
                        score_threshold=self._score_threshold,
                    )
                )
            except RequestTimeout:
                if not await is_disconnected():
                    outcome = Outcome.TIMEOUT
                    yield ErrorEvent(error=TIMEOUT_ERROR_MESSAGE)
                return

            documents_used = len(chunks)

            if self._analytics:
                self._analytics.track_retrieval(
                    distinct_id=request_id,
                    chunks_retrieved=documents_used,
                    top_score=chunks[0].score if chunks else None,
                )

            if await is_disconnected():
                return

            messages = build_messages(
                build_system_prompt(chunks),
                chat.history,
                chat.message,
                history_limit=self._history_limit,
            )

            if chunks:
                yield DocsEvent(documents=chunks)

            descriptor = AVAILABLE_MODELS.get(chat.model)

            if descriptor:
                yield ModelInfoEvent(
                    model=chat.model,
                    model_name=descriptor["name"],
                    provider=descriptor["provider"],
                    cost=descriptor["cost"],
                )

            # ---------------- STREAMING ----------------

            state = RequestState.STREAMING

            try:

                fragments = self._llm.stream(chat.model, messages, direct=chat.direct)

                while True:

                    fragment = await deadline.run(_next_fragment(fragments))

                    if fragment is _END:
                        break

                    if await is_disconnected():
                        return

                    response_length += len(fragment)

                    yield StreamChunkEvent(content=fragment)

            except RequestTimeout:
                if not await is_disconnected():
                    outcome = Outcome.TIMEOUT
                    logger.warning(
                        "Request timeout",
                        extra={"request_id": request_id, "model": chat.model},
                    )
                    yield ErrorEvent(error=TIMEOUT_ERROR_MESSAGE)
                return

            except Exception as e:
                logger.error(
                    "Chat error",
                    extra={
                        "request_id": request_id,
                        "model": chat.model,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                    exc_info=True,
                )
                if self._analytics:
                    self._analytics.track_error(
                        distinct_id=request_id,
                        error_type=type(e).__name__,
                        error_message=str(e),
                        endpoint="/chat",
                    )
                if not await is_disconnected():
                    outcome = Outcome.FAILED
                    yield ErrorEvent(error=GENERIC_ERROR_MESSAGE)
                return

            if await is_disconnected():
                return

            outcome = Outcome.COMPLETED

            yield DoneEvent(
                metadata=DoneMetadata(
                    model=chat.model,
                    documents_used=documents_used,
                    response_length=response_length,
                )
            )

        finally:

            if fragments is not None and not deadline.abandoned:
                await _close_quietly(fragments, request_id)

            self._finish(chat, request_id, state, outcome, start, documents_used, response_length)

    def _finish(self, chat, request_id, state, outcome, start, documents_used, response_length):

        latency = time.time() - start

        logger.info(
            "Chat request terminated",
            extra={
                "request_id": request_id,
                "model": chat.model,
                "last_state": state.value,
                "outcome": outcome.value,
                "documents_used": documents_used,
                "response_length": response_length,
                "latency_seconds": round(latency, 3),
            },
        )

        if self._metrics:
            self._metrics.record_chat(outcome.value, latency)

        if self._analytics and outcome is Outcome.COMPLETED:
            self._analytics.track_chat(
                distinct_id=request_id,
                model=chat.model,
                documents_used=documents_used,
                response_length=response_length,
                latency=latency,
            )
