"""
Prometheus metrics collection.
"""

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

from dnstest_queue.constants import (
    METRIC_JOBS_CLAIMED,
    METRIC_JOBS_DEDUPLICATED,
    METRIC_JOBS_FORCED_END,
    METRIC_JOBS_RETRIED,
    METRIC_JOBS_SUBMITTED,
    METRIC_QUEUE_DEPTH,
    METRIC_RESULT_ENTRIES,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job queue.

    Collects metrics for:
    - Queue depth
    - Submissions and deduplicated submissions
    - Claims
    - Supervisor retries and forced ends
    - Result entries written
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of queued jobs",
            ["queue"],
            registry=self._registry,
        )
        self.jobs_submitted = Counter(
            METRIC_JOBS_SUBMITTED,
            "Total number of jobs created",
            ["queue"],
            registry=self._registry,
        )
        self.jobs_deduplicated = Counter(
            METRIC_JOBS_DEDUPLICATED,
            "Total number of submissions answered with an existing job",
            registry=self._registry,
        )
        self.jobs_claimed = Counter(
            METRIC_JOBS_CLAIMED,
            "Total number of jobs claimed by workers",
            ["queue"],
            registry=self._registry,
        )
        self.jobs_retried = Counter(
            METRIC_JOBS_RETRIED,
            "Total number of stalled jobs re-queued",
            registry=self._registry,
        )
        self.jobs_forced_end = Counter(
            METRIC_JOBS_FORCED_END,
            "Total number of stalled jobs forced to their terminal state",
            registry=self._registry,
        )
        self.result_entries = Counter(
            METRIC_RESULT_ENTRIES,
            "Total number of result entries written",
            registry=self._registry,
        )

    @staticmethod
    def _queue(queue_label: int | None) -> str:
        return "all" if queue_label is None else str(queue_label)

    def record_job_submitted(self, queue_label: int) -> None:
        """Record a new job."""
        self.jobs_submitted.labels(queue=self._queue(queue_label)).inc()

    def record_job_deduplicated(self) -> None:
        """Record a submission answered with an existing job."""
        self.jobs_deduplicated.inc()

    def record_job_claimed(self, queue_label: int | None) -> None:
        """Record a claim."""
        self.jobs_claimed.labels(queue=self._queue(queue_label)).inc()

    def record_job_retried(self) -> None:
        """Record a supervisor retry."""
        self.jobs_retried.inc()

    def record_job_forced_end(self) -> None:
        """Record a supervisor forced end."""
        self.jobs_forced_end.inc()

    def record_result_entries(self, count: int) -> None:
        """Record written result entries."""
        self.result_entries.inc(count)

    def update_queue_depth(self, queue_label: int | None, depth: int) -> None:
        """Update queue depth for a queue."""
        self.queue_depth.labels(queue=self._queue(queue_label)).set(depth)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """Get the process-wide metrics collector, creating it on first use."""
    if _metrics is None:
        return setup_metrics()
    return _metrics
