# pdf_chat/worker_main.py

"""
Ingestion worker process.

    pdf-chat-worker

Consumes `process-file` jobs from the Redis queue until SIGINT/SIGTERM,
then finishes the jobs already in flight before exiting.
"""

import asyncio
import logging
import os
import signal

from pdf_chat.config import (
    INGESTION_BACKOFF_SECONDS,
    INGESTION_MAX_ATTEMPTS,
    LOG_LEVEL,
    QDRANT_AUTO_CREATE_COLLECTION,
    STORAGE_DIR,
    WORKER_CONCURRENCY,
)
from pdf_chat.ingestion.jobs import QueuePolicy
from pdf_chat.ingestion.queue import RedisJobQueue
from pdf_chat.ingestion.worker import IngestionWorker
from pdf_chat.memory.embedder import Embedder
from pdf_chat.memory.qdrant_client import QdrantVectorDB
from pdf_chat.memory.store import VectorStore
from pdf_chat.observability.logger import setup_logging
from pdf_chat.observability.metrics import MetricsTracker

logger = logging.getLogger(__name__)


async def run_worker():

    embedder = Embedder()
    qdrant = QdrantVectorDB(dim=embedder.get_dimension())

    queue = RedisJobQueue(
        policy=QueuePolicy(
            max_attempts=INGESTION_MAX_ATTEMPTS,
            backoff_seconds=INGESTION_BACKOFF_SECONDS,
        )
    )

    worker = IngestionWorker(
        queue,
        VectorStore(embedder, qdrant),
        concurrency=WORKER_CONCURRENCY,
        metrics=MetricsTracker(os.path.join(STORAGE_DIR, "worker_metrics.json")),
    )

    loop = asyncio.get_running_loop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.stop)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(worker.stop))

    try:

        if QDRANT_AUTO_CREATE_COLLECTION:
            await qdrant.ensure_collection()

        # Jobs left active by a previous crash are delivered again
        await queue.recover_stalled()

        await worker.run()

    finally:

        await queue.close()
        await qdrant.close()


def main():

    setup_logging(log_level=LOG_LEVEL, log_file="logs/worker.log", service="worker")

    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
