"""
Queue dispatcher.

Hands queued jobs to workers, most urgent first. Exclusivity of a claim is
guaranteed by the store's conditional_claim, never by the dispatcher itself.
"""

import logging

from dnstest_queue.constants import SPAN_CLAIM_JOB
from dnstest_queue.db.store import JobStore
from dnstest_queue.observability.metrics import MetricsCollector, get_metrics
from dnstest_queue.observability.tracing import get_tracer
from dnstest_queue.types.job import ClaimedJob

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Claims the next eligible job for a worker.

    Selection order:
    1. Only jobs with progress 0 (and the requested queue label, if any)
    2. Highest priority first
    3. Lowest id among equal priorities (FIFO)
    """

    def __init__(self, store: JobStore, metrics: MetricsCollector | None = None):
        """
        Initialize the dispatcher.

        Args:
            store: The job store.
            metrics: Metrics collector. Defaults to the process-wide one.
        """
        self._store = store
        self._metrics = metrics or get_metrics()

    async def claim_next(self, queue_label: int | None = None) -> ClaimedJob | None:
        """
        Claim the next queued job.

        Args:
            queue_label: Optional queue partition to claim from.

        Returns:
            The claimed job identity, or None if no job is queued.
        """
        with get_tracer().start_as_current_span(SPAN_CLAIM_JOB) as span:
            if queue_label is not None:
                span.set_attribute("queue_label", queue_label)

            claimed = await self._store.conditional_claim(queue_label)
            if claimed is None:
                return None

            span.set_attribute("hash_id", claimed.hash_id)

        self._metrics.record_job_claimed(queue_label)
        logger.info(
            "Claimed job",
            extra={"hash_id": claimed.hash_id, "job_id": claimed.id, "queue_label": queue_label},
        )
        return claimed

    async def queue_depth(self, queue_label: int | None = None) -> int:
        """Count queued jobs and publish the gauge."""
        depth = await self._store.queue_depth(queue_label)
        self._metrics.update_queue_depth(queue_label, depth)
        return depth
