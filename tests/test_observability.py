# tests/test_observability.py
import json
import logging
from unittest.mock import MagicMock

from pdf_chat.observability.logger import JSONFormatter
from pdf_chat.observability.metrics import MetricsTracker
from pdf_chat.observability.posthog_client import PostHogClient


class TestMetricsTracker:

    def test_outcomes_counted(self):
        metrics = MetricsTracker()

        metrics.record_chat("completed", 1.0)
        metrics.record_chat("completed", 3.0)
        metrics.record_chat("failed", 0.5)
        metrics.record_chat("timeout", 60.0)
        metrics.record_chat("cancelled", 0.2)

        data = metrics.get_metrics()
        assert data["total_requests"] == 5
        assert data["successful_requests"] == 2
        assert data["failed_requests"] == 1
        assert data["timed_out_requests"] == 1
        assert data["cancelled_requests"] == 1
        assert data["avg_latency"] == 2.0

    def test_ingestion_counted(self):
        metrics = MetricsTracker()

        metrics.record_ingestion(success=True)
        metrics.record_ingestion(success=False)

        data = metrics.get_metrics()
        assert data["ingestion_jobs_completed"] == 1
        assert data["ingestion_jobs_failed"] == 1

    def test_persisted_across_instances(self, tmp_path):
        path = str(tmp_path / "storage" / "metrics.json")

        MetricsTracker(path).record_chat("completed", 1.5)

        assert MetricsTracker(path).get_metrics()["successful_requests"] == 1

    def test_unreadable_file_ignored(self, tmp_path):
        path = tmp_path / "metrics.json"
        path.write_text("{broken")

        assert MetricsTracker(str(path)).get_metrics()["total_requests"] == 0

    def test_percentile(self):
        metrics = MetricsTracker()

        for latency in range(1, 101):
            metrics.record_chat("completed", float(latency))

        assert metrics.get_latency_percentile(95) == 96.0
        assert MetricsTracker().get_latency_percentile(95) == 0.0


class TestPostHogClient:

    def test_disabled_without_key(self):
        client = PostHogClient(api_key=None)

        assert client.enabled is False
        client.track_chat("req", "m", 1, 10, 0.5)

    def test_event_names(self):
        backend = MagicMock()
        client = PostHogClient(client=backend)

        client.track_document_upload("req", filename="a.pdf", size_bytes=10, job_id="j")
        client.track_chat("req", model="m", documents_used=2, response_length=5, latency=0.1)
        client.track_retrieval("req", chunks_retrieved=2, top_score=0.9)
        client.track_error("req", error_type="E", error_message="x", endpoint="/chat")

        events = [call.kwargs["event"] for call in backend.capture.call_args_list]
        assert events == ["pdf_uploaded", "chat_completed", "retrieval_completed", "system_error"]

    def test_capture_failure_swallowed(self):
        backend = MagicMock()
        backend.capture.side_effect = RuntimeError("network down")
        client = PostHogClient(client=backend)

        client.track_error("req", error_type="E", error_message="x", endpoint="/chat")

        backend.capture.assert_called_once()


class TestJSONFormatter:

    def test_extra_fields_included(self):
        record = logging.LogRecord(
            name="pdf_chat.test",
            level=logging.INFO,
            pathname=__file__,
            lineno=10,
            msg="Job completed",
            args=(),
            exc_info=None,
        )
        record.job_id = "abc"

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "Job completed"
        assert data["level"] == "INFO"
        assert data["job_id"] == "abc"
        assert data["service"] == "api"
