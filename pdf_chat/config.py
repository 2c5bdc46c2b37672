# pdf_chat/config.py
"""
Configuration for the PDF Chat service and ingestion worker.

This file centralizes all tunable parameters for the RAG pipeline.
Every value can be overridden through an environment variable of the
same name; changes here affect system behavior without code modifications.
"""

import os


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ========== SERVER ==========

PORT = _env_int("PORT", 8000)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Uploaded PDFs are written here before the worker picks them up
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")

STORAGE_DIR = os.getenv("STORAGE_DIR", "storage")


# ========== PROVIDER CREDENTIALS ==========

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
OPENROUTER_BASE_URL = os.getenv(
    "OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"
)

# Attribution headers expected by OpenRouter
SITE_URL = os.getenv("SITE_URL", "http://localhost:3000")
APP_TITLE = os.getenv("APP_TITLE", "PDF Chat Assistant")


# ========== DOCUMENT PROCESSING ==========

# Character window per chunk and overlap between consecutive chunks.
# Larger windows mean fewer embedding calls but blurrier retrieval;
# the overlap keeps sentences that straddle a boundary retrievable.
CHUNK_SIZE = _env_int("CHUNK_SIZE", 1000)
CHUNK_OVERLAP = _env_int("CHUNK_OVERLAP", 200)


# ========== EMBEDDING CONFIGURATION ==========

EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")

EMBEDDING_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

EMBED_BATCH_SIZE = _env_int("EMBED_BATCH_SIZE", 64)


# ========== VECTOR STORE ==========

QDRANT_URL = os.getenv("QDRANT_URL", "http://localhost:6333")
QDRANT_API_KEY = os.getenv("QDRANT_API_KEY")
QDRANT_COLLECTION = os.getenv("QDRANT_COLLECTION_NAME", "pdf-documents")

# The collection is normally provisioned out-of-band
QDRANT_AUTO_CREATE_COLLECTION = _env_bool("QDRANT_AUTO_CREATE_COLLECTION", False)


# ========== RETRIEVAL CONFIGURATION ==========

TOP_K = _env_int("TOP_K", 5)

# Chunks scoring below this are dropped before prompt assembly
SIMILARITY_THRESHOLD = _env_float("SIMILARITY_THRESHOLD", 0.7)


# ========== CHAT CONFIGURATION ==========

MAX_MESSAGE_LENGTH = _env_int("MAX_MESSAGE_LENGTH", 4000)
MAX_HISTORY_MESSAGES = _env_int("MAX_HISTORY_MESSAGES", 20)

# Only the most recent turns are forwarded to the model
HISTORY_CONTEXT_MESSAGES = _env_int("HISTORY_CONTEXT_MESSAGES", 10)

CHAT_TIMEOUT_MS = _env_int("CHAT_TIMEOUT_MS", 60000)

LLM_MAX_TOKENS = _env_int("LLM_MAX_TOKENS", 1000)
LLM_TEMPERATURE = _env_float("LLM_TEMPERATURE", 0.7)

# Model used by the legacy GET /chat endpoint (served by OpenAI directly)
LEGACY_CHAT_MODEL = os.getenv("LEGACY_CHAT_MODEL", "gpt-4o")


# ========== RATE LIMITING ==========

RATE_LIMIT_WINDOW_SECONDS = _env_int("RATE_LIMIT_WINDOW_SECONDS", 15 * 60)
RATE_LIMIT_MAX_REQUESTS = _env_int("RATE_LIMIT_MAX_REQUESTS", 50)


# ========== INGESTION QUEUE ==========

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = _env_int("REDIS_PORT", 6379)
REDIS_URL = os.getenv("REDIS_URL", f"redis://{REDIS_HOST}:{REDIS_PORT}/0")

INGESTION_QUEUE_NAME = os.getenv("INGESTION_QUEUE_NAME", "file-upload-queue")
INGESTION_JOB_NAME = "process-file"

# Attempts before a job is dead-lettered; delay doubles after each failure
INGESTION_MAX_ATTEMPTS = _env_int("INGESTION_MAX_ATTEMPTS", 3)
INGESTION_BACKOFF_SECONDS = _env_float("INGESTION_BACKOFF_SECONDS", 2.0)

WORKER_CONCURRENCY = _env_int("WORKER_CONCURRENCY", 5)
WORKER_POLL_TIMEOUT_SECONDS = _env_float("WORKER_POLL_TIMEOUT_SECONDS", 1.0)


# ========== OBSERVABILITY ==========

POSTHOG_API_KEY = os.getenv("POSTHOG_API_KEY")
POSTHOG_HOST = os.getenv("POSTHOG_HOST", "https://app.posthog.com")


# ========== DESIGN TRADE-OFFS (DOCUMENTED) ==========

"""
TRADE-OFF DECISIONS:

1. CHUNK_SIZE = 1000 characters, CHUNK_OVERLAP = 200:
   - Smaller windows → sharper retrieval, many more embedding calls
   - Larger windows → cheaper ingestion, diluted similarity scores

2. SIMILARITY_THRESHOLD = 0.7:
   - Lower → more context, more distracting matches
   - Higher → cleaner prompts, more "no context" answers

3. Retrieval is fail-open:
   - A vector store outage degrades to a generic answer instead of an error

4. Ingestion is at-least-once:
   - A retried job can insert duplicate chunks; no dedup key exists
"""
