# pdf_chat/api/dependencies.py

"""
Service wiring for the API process.

Everything the routes need is built once at startup into a `Services`
bundle stored on `app.state`. Routes reach it through the accessors
below, which tests replace with `app.dependency_overrides` or bypass by
handing `create_app` a ready-made bundle.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request

from pdf_chat.api.rate_limit import RateLimitDecision, RateLimiter
from pdf_chat.config import (
    INGESTION_BACKOFF_SECONDS,
    INGESTION_MAX_ATTEMPTS,
    OPENAI_API_KEY,
    OPENROUTER_API_KEY,
    QDRANT_AUTO_CREATE_COLLECTION,
    STORAGE_DIR,
)
from pdf_chat.ingestion.jobs import QueuePolicy
from pdf_chat.ingestion.queue import RedisJobQueue
from pdf_chat.llm.multi_model_client import MultiModelLLMClient
from pdf_chat.memory.embedder import Embedder
from pdf_chat.memory.qdrant_client import QdrantVectorDB
from pdf_chat.memory.store import VectorStore
from pdf_chat.observability.metrics import MetricsTracker
from pdf_chat.observability.posthog_client import PostHogClient
from pdf_chat.workflow.chat_orchestrator import ChatOrchestrator

logger = logging.getLogger(__name__)


class RateLimitExceeded(Exception):

    def __init__(self, decision: RateLimitDecision):
        super().__init__("Too many chat requests, please try again later.")
        self.decision = decision


@dataclass
class Services:
    orchestrator: ChatOrchestrator
    job_queue: object
    rate_limiter: RateLimiter
    metrics: MetricsTracker
    analytics: PostHogClient
    qdrant: Optional[QdrantVectorDB] = None


def build_services() -> Services:

    for name, value in (
        ("OPENAI_API_KEY", OPENAI_API_KEY),
        ("OPENROUTER_API_KEY", OPENROUTER_API_KEY),
    ):
        if not value:
            logger.warning(
                "missing_api_key",
                extra={"warning_detail": f"{name} not set. Dependent calls will fail."},
            )

    metrics = MetricsTracker(os.path.join(STORAGE_DIR, "metrics.json"))
    analytics = PostHogClient()

    embedder = Embedder()
    qdrant = QdrantVectorDB(dim=embedder.get_dimension())
    store = VectorStore(embedder, qdrant)

    orchestrator = ChatOrchestrator(
        store,
        MultiModelLLMClient(),
        metrics=metrics,
        analytics=analytics,
    )

    job_queue = RedisJobQueue(
        policy=QueuePolicy(
            max_attempts=INGESTION_MAX_ATTEMPTS,
            backoff_seconds=INGESTION_BACKOFF_SECONDS,
        )
    )

    return Services(
        orchestrator=orchestrator,
        job_queue=job_queue,
        rate_limiter=RateLimiter(),
        metrics=metrics,
        analytics=analytics,
        qdrant=qdrant,
    )


async def prepare_services(services: Services):

    if services.qdrant is None:
        return

    if QDRANT_AUTO_CREATE_COLLECTION:
        await services.qdrant.ensure_collection()
        return

    try:
        exists = await services.qdrant.collection_exists()
    except Exception as e:
        logger.warning(
            "Qdrant unreachable at startup",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return

    if not exists:
        logger.warning(
            "Qdrant collection missing",
            extra={"collection": services.qdrant.collection},
        )


async def close_services(services: Services):

    try:
        await services.job_queue.close()
    except Exception as e:
        logger.warning("Job queue close failed", extra={"error": str(e)})

    if services.qdrant is not None:
        try:
            await services.qdrant.close()
        except Exception as e:
            logger.warning("Qdrant close failed", extra={"error": str(e)})

    services.analytics.shutdown()


# ============================================================
# ACCESSORS
# ============================================================

def get_services(request: Request) -> Services:
    return request.app.state.services


def get_orchestrator(services: Services = Depends(get_services)) -> ChatOrchestrator:
    return services.orchestrator


def get_job_queue(services: Services = Depends(get_services)):
    return services.job_queue


def get_rate_limiter(services: Services = Depends(get_services)) -> RateLimiter:
    return services.rate_limiter


def get_metrics(services: Services = Depends(get_services)) -> MetricsTracker:
    return services.metrics


def get_analytics(services: Services = Depends(get_services)) -> PostHogClient:
    return services.analytics


def enforce_chat_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> RateLimitDecision:
    """Count the request against its client address; raise once over the limit."""

    key = request.client.host if request.client else "unknown"

    decision = limiter.hit(key)

    if not decision.allowed:

        logger.warning(
            "Rate limit exceeded",
            extra={
                "request_id": getattr(request.state, "request_id", "unknown"),
                "client_ip": key,
            },
        )

        raise RateLimitExceeded(decision)

    return decision
