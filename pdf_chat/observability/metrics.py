import json
import logging
import os
import threading
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

# Latency samples kept for percentiles
MAX_LATENCY_SAMPLES = 1000


def _empty_metrics() -> Dict:

    return {

        "total_requests": 0,
        "successful_requests": 0,
        "failed_requests": 0,
        "timed_out_requests": 0,
        "cancelled_requests": 0,

        "total_latency": 0.0,
        "avg_latency": 0.0,
        "latencies": [],

        "ingestion_jobs_completed": 0,
        "ingestion_jobs_failed": 0,

    }


class MetricsTracker:
    """
    Counters for chat requests and ingestion jobs.

    With a `path`, every update is written through to a JSON file so
    counts survive restarts. Without one the tracker is memory only.
    """

    def __init__(self, path: Optional[str] = None):

        self._path = path
        self._lock = threading.Lock()
        self._metrics = _empty_metrics()

        if path:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            self._load()

    def _load(self):

        if not os.path.exists(self._path):
            return

        try:

            with open(self._path, "r") as f:
                data = json.load(f)

        except (OSError, ValueError) as e:

            logger.warning(
                "Metrics file unreadable, starting fresh",
                extra={"path": self._path, "error": str(e)},
            )
            return

        # Files written by older versions may miss newer counters
        self._metrics.update(data)

    def _save(self):

        if not self._path:
            return

        try:

            with open(self._path, "w") as f:
                json.dump(self._metrics, f, indent=2)

        except OSError as e:

            logger.warning(
                "Metrics persist failed",
                extra={"path": self._path, "error": str(e)},
            )

    # ============================================================
    # CHAT
    # ============================================================

    def record_chat(self, outcome: str, latency: float):

        with self._lock:

            self._metrics["total_requests"] += 1

            if outcome == "completed":

                self._metrics["successful_requests"] += 1
                self._metrics["total_latency"] += latency
                self._metrics["avg_latency"] = (
                    self._metrics["total_latency"]
                    / self._metrics["successful_requests"]
                )

                latencies = self._metrics["latencies"]
                latencies.append(latency)
                del latencies[:-MAX_LATENCY_SAMPLES]

            elif outcome == "timeout":
                self._metrics["timed_out_requests"] += 1

            elif outcome == "cancelled":
                self._metrics["cancelled_requests"] += 1

            else:
                self._metrics["failed_requests"] += 1

            self._save()

    # ============================================================
    # INGESTION
    # ============================================================

    def record_ingestion(self, success: bool):

        with self._lock:

            if success:
                self._metrics["ingestion_jobs_completed"] += 1
            else:
                self._metrics["ingestion_jobs_failed"] += 1

            self._save()

    def get_metrics(self) -> Dict:

        with self._lock:
            return json.loads(json.dumps(self._metrics))

    def get_latency_percentile(self, percentile: float) -> float:

        with self._lock:
            latencies: List[float] = list(self._metrics.get("latencies", []))

        if not latencies:
            return 0.0

        sorted_latencies = sorted(latencies)

        index = int(len(sorted_latencies) * percentile / 100)

        index = min(index, len(sorted_latencies) - 1)

        return sorted_latencies[index]
