# pdf_chat/ingestion/worker.py

"""
Ingestion worker.

Architecture contract:
queue → loader → chunker → vector_store

The worker runs a pull loop: it takes a permit from a semaphore sized to
the concurrency ceiling, reserves one job per free permit and gives the
permit back when that job finishes. Retries and dead-lettering belong to
the queue; the worker only reports success or failure per job.
"""

import asyncio
import logging
import time
from typing import Callable, Optional, Set

from pdf_chat.config import WORKER_CONCURRENCY, WORKER_POLL_TIMEOUT_SECONDS
from pdf_chat.errors import ProcessingError
from pdf_chat.ingestion.jobs import IngestionJob, JobRecord
from pdf_chat.memory.chunker import split_pages
from pdf_chat.memory.loader import load_pdf_pages

logger = logging.getLogger(__name__)


class IngestionWorker:

    def __init__(
        self,
        queue,
        store,
        concurrency: int = WORKER_CONCURRENCY,
        poll_timeout: float = WORKER_POLL_TIMEOUT_SECONDS,
        loader: Callable = load_pdf_pages,
        splitter: Callable = split_pages,
        metrics=None,
    ):

        if concurrency <= 0:
            raise ValueError(f"Invalid worker concurrency: {concurrency}")

        self._queue = queue
        self._store = store
        self._concurrency = concurrency
        self._poll_timeout = poll_timeout
        self._loader = loader
        self._splitter = splitter
        self._metrics = metrics

        self._permits: Optional[asyncio.Semaphore] = None
        self._stopping = asyncio.Event()
        self._tasks: Set[asyncio.Task] = set()

    # ============================================================
    # SINGLE JOB
    # ============================================================

    async def process(self, job: IngestionJob) -> int:
        """
        Load, split and store one PDF. Returns the number of chunks stored.

        Any failure is raised as ProcessingError. Chunks already written
        before a failure stay in the store.
        """

        logger.info(
            "Processing job",
            extra={"job_id": job.id, "path": job.source_path},
        )

        try:

            pages = await asyncio.to_thread(self._loader, job.source_path)

            chunks = self._splitter(pages)

            logger.info(
                "Split document into chunks",
                extra={"job_id": job.id, "pages": len(pages), "chunks": len(chunks)},
            )

            stored = await self._store.add_documents(chunks)

        except Exception as e:

            raise ProcessingError(
                f"Failed to process job {job.id} for file {job.source_path}: {e}",
                job_id=job.id,
            ) from e

        logger.info(
            "Successfully added chunks to vector store",
            extra={"job_id": job.id, "path": job.source_path, "chunks": stored},
        )

        return stored

    # ============================================================
    # PULL LOOP
    # ============================================================

    async def run(self):
        """
        Consume jobs until `stop()` is called, then drain in-flight jobs.

        A `stop()` that arrives before `run()` starts makes it return at once.
        """

        self._permits = asyncio.Semaphore(self._concurrency)

        logger.info(
            "File processing worker started",
            extra={"queue": self._queue.name, "concurrency": self._concurrency},
        )

        try:

            while not self._stopping.is_set():

                await self._permits.acquire()

                try:
                    record = await self._queue.reserve(timeout=self._poll_timeout)
                except Exception as e:
                    self._permits.release()
                    logger.error(
                        "Queue reserve failed",
                        extra={"queue": self._queue.name, "error": str(e)},
                        exc_info=True,
                    )
                    await asyncio.sleep(self._poll_timeout)
                    continue

                if record is None:
                    self._permits.release()
                    continue

                task = asyncio.create_task(self._handle(record))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

        finally:

            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)

            logger.info("File processing worker stopped")

    def stop(self):

        self._stopping.set()

    async def _handle(self, record: JobRecord):

        start = time.time()

        try:

            job = record.to_job()

            await self.process(job)

            await self._queue.ack(record)

            logger.info(
                "Job completed",
                extra={
                    "job_id": record.id,
                    "filename": record.data.get("filename"),
                    "latency_seconds": round(time.time() - start, 3),
                },
            )

            if self._metrics:
                self._metrics.record_ingestion(success=True)

        except Exception as e:

            logger.error(
                "Job failed",
                extra={
                    "job_id": record.id,
                    "attempt": record.attempts + 1,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )

            if self._metrics:
                self._metrics.record_ingestion(success=False)

            await self._report_failure(record, e)

        finally:

            self._permits.release()

    async def _report_failure(self, record: JobRecord, error: Exception):

        try:

            retried = await self._queue.fail(record, str(error))

        except Exception as e:
            logger.error(
                "Could not report job failure to queue",
                extra={"job_id": record.id, "error": str(e)},
                exc_info=True,
            )
            return

        if not retried:
            logger.error(
                "Job moved to failed list",
                extra={"job_id": record.id, "attempts": record.attempts + 1},
            )
