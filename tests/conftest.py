# tests/conftest.py
import asyncio
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from pdf_chat.api.dependencies import Services
from pdf_chat.api.rate_limit import RateLimiter
from pdf_chat.ingestion.jobs import QueuePolicy
from pdf_chat.ingestion.queue import InMemoryJobQueue
from pdf_chat.main import create_app
from pdf_chat.models import RetrievedChunk
from pdf_chat.observability.metrics import MetricsTracker
from pdf_chat.observability.posthog_client import PostHogClient
from pdf_chat.workflow.chat_orchestrator import ChatOrchestrator


def make_pdf(page_texts: List[str]) -> bytes:
    """
    Build a small but well-formed PDF with one Helvetica text line per page.

    Offsets in the xref table are computed, so any PDF parser reads it
    without falling back to recovery mode.
    """

    count = len(page_texts)
    kids = " ".join(f"{4 + 2 * i} 0 R" for i in range(count))

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        f"<< /Type /Pages /Kids [{kids}] /Count {count} >>".encode(),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    for i, text in enumerate(page_texts):
        stream = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode()
        objects.append(
            (
                "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
                f"/Contents {5 + 2 * i} 0 R "
                "/Resources << /Font << /F1 3 0 R >> >> >>"
            ).encode()
        )
        objects.append(
            f"<< /Length {len(stream)} >>\nstream\n".encode()
            + stream
            + b"\nendstream"
        )

    out = b"%PDF-1.4\n"
    offsets = []

    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode() + body + b"\nendobj\n"

    xref_at = len(out)

    out += f"xref\n0 {len(objects) + 1}\n".encode()
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode()

    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref_at}\n%%EOF\n"
    ).encode()

    return out


# ============================================================
# FAKES
# ============================================================

class FakeStore:
    """Vector store stand-in: canned search results, recorded writes."""

    def __init__(self, results: Optional[List[RetrievedChunk]] = None, error: Exception = None):
        self.results = results or []
        self.error = error
        self.queries = []
        self.added = []

    async def similarity_search(self, query, k, score_threshold):
        self.queries.append((query, k, score_threshold))
        if self.error:
            raise self.error
        return self.results[:k]

    async def add_documents(self, chunks):
        self.added.extend(chunks)
        return len(chunks)


class FakeLLM:
    """Streams fixed fragments; optionally slow or failing."""

    def __init__(self, fragments=("Hello", " world"), delay: float = 0.0, error: Exception = None):
        self.fragments = list(fragments)
        self.delay = delay
        self.error = error
        self.calls = []
        self.closed = False

    def stream(self, model, messages, direct=False):
        self.calls.append({"model": model, "messages": messages, "direct": direct})
        return self._generate()

    async def _generate(self):
        try:
            if self.error:
                raise self.error
            for fragment in self.fragments:
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield fragment
        finally:
            self.closed = True


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def sample_chunks():
    return [
        RetrievedChunk(
            text="Invoices are due within 30 days.",
            score=0.91,
            metadata={"filename": "terms.pdf", "page": 2},
        ),
        RetrievedChunk(
            text="Late payments incur a 2% fee.",
            score=0.84,
            metadata={"filename": "terms.pdf", "page": 3},
        ),
    ]


@pytest.fixture
def fake_store(sample_chunks):
    return FakeStore(results=sample_chunks)


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def job_queue():
    return InMemoryJobQueue(policy=QueuePolicy(max_attempts=3, backoff_seconds=0))


@pytest.fixture
def services(fake_store, fake_llm, job_queue):
    metrics = MetricsTracker()
    return Services(
        orchestrator=ChatOrchestrator(fake_store, fake_llm, metrics=metrics),
        job_queue=job_queue,
        rate_limiter=RateLimiter(max_requests=50, window_seconds=900),
        metrics=metrics,
        analytics=PostHogClient(api_key=None),
    )


@pytest.fixture
def client(services, tmp_path, monkeypatch):
    """
    FastAPI test client wired to in-process fakes.

    Uploads land in a temporary directory.
    """
    monkeypatch.setattr("pdf_chat.api.routes.UPLOAD_DIR", str(tmp_path / "uploads"))

    with TestClient(create_app(services)) as test_client:
        yield test_client


@pytest.fixture
def sample_pdf_content():
    """Two-page PDF whose text pypdf can extract."""
    return make_pdf(["Hello world from page one", "Second page text"])


@pytest.fixture
def sample_pdf_path(tmp_path, sample_pdf_content):
    path = tmp_path / "sample.pdf"
    path.write_bytes(sample_pdf_content)
    return str(path)


@pytest.fixture
def pdf_factory():
    return make_pdf
