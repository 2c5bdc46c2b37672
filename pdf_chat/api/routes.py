# pdf_chat/api/routes.py

import logging
import os
import random
import time
from typing import Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse

from pdf_chat.api.dependencies import (
    enforce_chat_rate_limit,
    get_analytics,
    get_job_queue,
    get_metrics,
    get_orchestrator,
)
from pdf_chat.api.rate_limit import RateLimitDecision
from pdf_chat.api.sse import SSE_HEADERS, SSE_MEDIA_TYPE, event_stream
from pdf_chat.config import INGESTION_JOB_NAME, UPLOAD_DIR
from pdf_chat.llm.models import AVAILABLE_MODELS, DEFAULT_MODEL
from pdf_chat.models import ChatRequest, HealthResponse, ModelsResponse, UploadResponse
from pdf_chat.workflow.chat_orchestrator import (
    ChatOrchestrator,
    ValidatedChat,
    validate_chat_request,
    validate_legacy_chat_request,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================
# HELPERS
# ============================================================

def unique_upload_name(original: str) -> str:
    """`{epoch_ms}-{random 9 digits}-{original}`; directory parts are dropped."""

    base = os.path.basename(original or "") or "upload.pdf"

    return f"{int(time.time() * 1000)}-{random.randint(0, 999_999_999)}-{base}"


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _chat_stream(
    chat: ValidatedChat,
    request: Request,
    orchestrator: ChatOrchestrator,
    decision: RateLimitDecision,
) -> StreamingResponse:

    request_id = _request_id(request)

    events = orchestrator.handle(
        chat,
        is_disconnected=request.is_disconnected,
        request_id=request_id,
    )

    return StreamingResponse(
        event_stream(events, request.is_disconnected, request_id),
        media_type=SSE_MEDIA_TYPE,
        headers={**SSE_HEADERS, **decision.headers()},
    )


# ============================================================
# HEALTH
# ============================================================

@router.get("/health", response_model=HealthResponse)
def health_check():

    return HealthResponse(status="healthy")


# ============================================================
# UPLOAD PDF
# ============================================================

@router.post("/upload/pdf", response_model=UploadResponse)
async def upload_pdf(
    request: Request,
    pdf: Optional[UploadFile] = File(None),
    job_queue=Depends(get_job_queue),
    analytics=Depends(get_analytics),
):

    if pdf is None or not pdf.filename:
        return JSONResponse(status_code=400, content={"message": "No file uploaded"})

    content = await pdf.read()

    os.makedirs(UPLOAD_DIR, exist_ok=True)

    path = os.path.join(UPLOAD_DIR, unique_upload_name(pdf.filename))

    with open(path, "wb") as buffer:
        buffer.write(content)

    record = await job_queue.add(
        INGESTION_JOB_NAME,
        {
            "filename": pdf.filename,
            "destination": UPLOAD_DIR,
            "path": path,
        },
    )

    logger.info(
        "PDF queued for ingestion",
        extra={
            "request_id": _request_id(request),
            "job_id": record.id,
            "filename": pdf.filename,
            "size_bytes": len(content),
        },
    )

    analytics.track_document_upload(
        distinct_id=_request_id(request),
        filename=pdf.filename,
        size_bytes=len(content),
        job_id=record.id,
    )

    return UploadResponse()


# ============================================================
# CHAT
# ============================================================

@router.post("/chat")
async def chat(
    payload: ChatRequest,
    request: Request,
    decision: RateLimitDecision = Depends(enforce_chat_rate_limit),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):

    return _chat_stream(validate_chat_request(payload), request, orchestrator, decision)


@router.get("/chat")
async def legacy_chat(
    request: Request,
    message: Optional[str] = None,
    decision: RateLimitDecision = Depends(enforce_chat_rate_limit),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):

    if not message:
        return JSONResponse(
            status_code=400, content={"message": "Missing message in query params"}
        )

    return _chat_stream(validate_legacy_chat_request(message), request, orchestrator, decision)


# ============================================================
# MODELS
# ============================================================

@router.get("/models", response_model=ModelsResponse)
def list_models():

    return ModelsResponse(models=AVAILABLE_MODELS, default=DEFAULT_MODEL)


# ============================================================
# METRICS ENDPOINT
# ============================================================

@router.get("/metrics")
def get_metrics_snapshot(metrics=Depends(get_metrics)):

    snapshot = metrics.get_metrics()
    snapshot["p95_latency"] = metrics.get_latency_percentile(95)

    return snapshot
