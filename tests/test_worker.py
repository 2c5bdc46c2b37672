# tests/test_worker.py
import asyncio
import threading
import time
from unittest.mock import MagicMock

import pytest

from pdf_chat.errors import LoadError, ProcessingError
from pdf_chat.ingestion.jobs import IngestionJob, QueuePolicy
from pdf_chat.ingestion.queue import InMemoryJobQueue
from pdf_chat.ingestion.worker import IngestionWorker
from pdf_chat.memory.chunker import split_pages
from pdf_chat.memory.loader import PdfPage

from conftest import FakeStore


def pages_for(path, texts=("x" * 2600,)):
    return [
        PdfPage(text=text, page_number=i + 1, total_pages=len(texts), source=path)
        for i, text in enumerate(texts)
    ]


def pages_chunks(path):
    return split_pages(pages_for(path))


async def run_until(worker, condition, timeout=3.0):
    """Run the worker loop until `condition()` holds, then stop it."""

    runner = asyncio.create_task(worker.run())
    deadline = time.monotonic() + timeout

    while not condition():
        if time.monotonic() > deadline:
            worker.stop()
            await runner
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)

    worker.stop()
    await runner


class TestProcess:
    """A single job: load, split, store."""

    @pytest.mark.asyncio()
    async def test_real_pdf_stored(self, sample_pdf_path):
        store = FakeStore()
        worker = IngestionWorker(InMemoryJobQueue(), store)

        stored = await worker.process(
            IngestionJob(id="j1", filename="sample.pdf", path=sample_pdf_path)
        )

        assert stored == len(store.added) == 2
        assert [c.metadata["page"] for c in store.added] == [1, 2]
        assert store.added[0].metadata["filename"] == "sample.pdf"

    @pytest.mark.asyncio()
    async def test_chunk_count_from_page_text(self):
        store = FakeStore()
        worker = IngestionWorker(InMemoryJobQueue(), store, loader=pages_for)

        stored = await worker.process(IngestionJob(id="j1", filename="a.pdf", path="/a.pdf"))

        # 2600 characters with 1000/200 windows
        assert stored == 3

    @pytest.mark.asyncio()
    async def test_missing_file_wrapped(self, tmp_path):
        worker = IngestionWorker(InMemoryJobQueue(), FakeStore())

        with pytest.raises(ProcessingError) as exc:
            await worker.process(
                IngestionJob(id="j1", filename="gone.pdf", path=str(tmp_path / "gone.pdf"))
            )

        assert exc.value.job_id == "j1"
        assert isinstance(exc.value.__cause__, LoadError)

    @pytest.mark.asyncio()
    async def test_store_failure_wrapped(self):

        class BrokenStore(FakeStore):
            async def add_documents(self, chunks):
                raise ConnectionError("qdrant unreachable")

        worker = IngestionWorker(InMemoryJobQueue(), BrokenStore(), loader=pages_for)

        with pytest.raises(ProcessingError, match="qdrant unreachable"):
            await worker.process(IngestionJob(id="j1", filename="a.pdf", path="/a.pdf"))


class TestRunLoop:
    """Pull loop, acknowledgement and failure reporting."""

    @pytest.mark.asyncio()
    async def test_successful_job_acknowledged(self):
        queue = InMemoryJobQueue()
        store = FakeStore()
        metrics = MagicMock()
        worker = IngestionWorker(queue, store, loader=pages_for, poll_timeout=0.01, metrics=metrics)

        await queue.add("process-file", {"filename": "a.pdf", "path": "/a.pdf"})

        await run_until(worker, lambda: len(store.added) == 3)

        counts = await queue.counts()
        assert counts["active"] == 0
        assert counts["waiting"] == 0
        metrics.record_ingestion.assert_called_with(success=True)

    @pytest.mark.asyncio()
    async def test_failing_job_retried_then_dead_lettered(self):
        queue = InMemoryJobQueue(policy=QueuePolicy(max_attempts=3, backoff_seconds=0))
        calls = []

        def broken_loader(path):
            calls.append(path)
            raise LoadError("corrupt")

        worker = IngestionWorker(queue, FakeStore(), loader=broken_loader, poll_timeout=0.01)

        await queue.add("process-file", {"filename": "bad.pdf", "path": "/bad.pdf"})

        await run_until(worker, lambda: len(queue.failed) == 1)

        assert len(calls) == 3
        assert queue.failed[0].attempts == 3
        assert "corrupt" in queue.failed[0].last_error

    @pytest.mark.asyncio()
    async def test_transient_store_outage_recovers_on_retry(self):
        queue = InMemoryJobQueue(policy=QueuePolicy(max_attempts=3, backoff_seconds=0))
        store = FakeStore()
        attempts = []

        class FlakyStore(FakeStore):
            async def add_documents(self, chunks):
                attempts.append(len(chunks))
                if len(attempts) == 1:
                    raise ConnectionError("qdrant unreachable")
                return await store.add_documents(chunks)

        worker = IngestionWorker(queue, FlakyStore(), loader=pages_for, poll_timeout=0.01)

        await queue.add("process-file", {"filename": "a.pdf", "path": "/a.pdf"})

        await run_until(worker, lambda: len(store.added) == 3)

        assert attempts == [3, 3]
        assert queue.failed == []
        assert await queue.counts() == {"waiting": 0, "active": 0, "delayed": 0, "failed": 0}
        assert [c.text for c in store.added] == [c.text for c in pages_chunks("/a.pdf")]

    @pytest.mark.asyncio()
    async def test_failure_does_not_affect_other_jobs(self):
        queue = InMemoryJobQueue(policy=QueuePolicy(max_attempts=1, backoff_seconds=0))
        store = FakeStore()

        def loader(path):
            if path == "/bad.pdf":
                raise LoadError("corrupt")
            return pages_for(path, texts=("short text",))

        worker = IngestionWorker(queue, store, loader=loader, poll_timeout=0.01)

        await queue.add("process-file", {"filename": "bad.pdf", "path": "/bad.pdf"})
        await queue.add("process-file", {"filename": "good.pdf", "path": "/good.pdf"})

        await run_until(worker, lambda: len(store.added) == 1 and len(queue.failed) == 1)

        assert store.added[0].metadata["source"] == "/good.pdf"

    @pytest.mark.asyncio()
    async def test_concurrency_ceiling(self):
        queue = InMemoryJobQueue()
        lock = threading.Lock()
        state = {"running": 0, "peak": 0, "done": 0}

        def slow_loader(path):
            with lock:
                state["running"] += 1
                state["peak"] = max(state["peak"], state["running"])
            time.sleep(0.05)
            with lock:
                state["running"] -= 1
                state["done"] += 1
            return pages_for(path, texts=("text",))

        worker = IngestionWorker(
            queue, FakeStore(), concurrency=2, loader=slow_loader, poll_timeout=0.01
        )

        for i in range(6):
            await queue.add("process-file", {"filename": f"{i}.pdf", "path": f"/{i}.pdf"})

        await run_until(worker, lambda: state["done"] == 6)

        assert state["peak"] == 2

    @pytest.mark.asyncio()
    async def test_stop_drains_in_flight_jobs(self):
        queue = InMemoryJobQueue()
        store = FakeStore()
        started = asyncio.Event()

        class SlowStore(FakeStore):
            async def add_documents(self, chunks):
                started.set()
                await asyncio.sleep(0.1)
                return await store.add_documents(chunks)

        worker = IngestionWorker(queue, SlowStore(), loader=pages_for, poll_timeout=0.01)

        await queue.add("process-file", {"filename": "a.pdf", "path": "/a.pdf"})

        runner = asyncio.create_task(worker.run())
        await asyncio.wait_for(started.wait(), timeout=2)
        worker.stop()
        await runner

        assert len(store.added) == 3
        assert (await queue.counts())["active"] == 0

    @pytest.mark.asyncio()
    async def test_stop_before_run_is_honoured(self):
        queue = InMemoryJobQueue()
        store = FakeStore()
        worker = IngestionWorker(queue, store, loader=pages_for, poll_timeout=0.01)

        await queue.add("process-file", {"filename": "a.pdf", "path": "/a.pdf"})

        worker.stop()
        await asyncio.wait_for(worker.run(), timeout=1)

        assert store.added == []
        assert (await queue.counts())["waiting"] == 1

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            IngestionWorker(InMemoryJobQueue(), FakeStore(), concurrency=0)
