"""
Job submission and lookup facade.

Ties the projection, the job store and the result log together for callers
that submit tests and poll for their outcome.
"""

import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from dnstest_queue.config import get_settings
from dnstest_queue.constants import SPAN_SUBMIT_JOB
from dnstest_queue.db.store import JobStore
from dnstest_queue.errors import NotFoundError, ValidationError
from dnstest_queue.observability.metrics import MetricsCollector, get_metrics
from dnstest_queue.observability.tracing import get_tracer
from dnstest_queue.profile import ProfileProvider, StaticProfile
from dnstest_queue.projection import encode, fingerprint, is_undelegated, make_hash_id, normalize
from dnstest_queue.types.job import JobRecord, SubmitResult
from dnstest_queue.types.results import ResultEntry

logger = logging.getLogger(__name__)


class JobQueue:
    """
    Entry point for submitting tests.

    Submissions with the same fingerprint as a job created within the reuse
    window are answered with that job instead of creating a new one. Batch
    submissions always create new jobs.
    """

    def __init__(
        self,
        store: JobStore,
        profile: ProfileProvider | None = None,
        reuse_window_seconds: float | None = None,
        default_priority: int | None = None,
        default_queue_label: int | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the queue facade.

        Args:
            store: The job store.
            profile: Provider of effective profile defaults.
            reuse_window_seconds: Age under which an identical job is reused. 0 disables reuse.
            default_priority: Priority of submissions that do not set one.
            default_queue_label: Queue of submissions that do not set one.
            metrics: Metrics collector. Defaults to the process-wide one.
        """
        settings = get_settings()
        self._store = store
        self._profile = profile or StaticProfile.from_settings(settings)
        self.reuse_window = (
            settings.test_reuse_window_seconds
            if reuse_window_seconds is None
            else reuse_window_seconds
        )
        self.default_priority = (
            settings.default_priority if default_priority is None else default_priority
        )
        self.default_queue_label = (
            settings.default_queue_label if default_queue_label is None else default_queue_label
        )
        self._metrics = metrics or get_metrics()

    async def submit(
        self,
        raw_params: Mapping[str, Any],
        priority: int | None = None,
        queue_label: int | None = None,
        batch_id: int | None = None,
    ) -> SubmitResult:
        """
        Submit a test request.

        Args:
            raw_params: Test parameters as supplied by the caller.
            priority: Higher is more urgent.
            queue_label: Queue partition.
            batch_id: Optional batch the job belongs to.

        Returns:
            SubmitResult with the job hash_id and whether it was newly created.

        Raises:
            ValidationError: If the parameters are not a mapping or lack a domain.
        """
        if not isinstance(raw_params, Mapping):
            raise ValidationError("Test parameters must be a mapping")

        defaults = self._profile.effective_defaults()
        normalized = normalize(raw_params, defaults)
        if not normalized.domain:
            raise ValidationError("Test parameters must include a domain")

        priority = self.default_priority if priority is None else priority
        queue_label = self.default_queue_label if queue_label is None else queue_label

        with get_tracer().start_as_current_span(SPAN_SUBMIT_JOB) as span:
            job_fingerprint = fingerprint(normalized, defaults)
            span.set_attribute("fingerprint", job_fingerprint)

            if batch_id is None and self.reuse_window > 0:
                existing = await self._store.find_reusable(job_fingerprint, self.reuse_window)
                if existing is not None:
                    self._metrics.record_job_deduplicated()
                    logger.info(
                        "Returned existing job (deduplicated)",
                        extra={"hash_id": existing, "fingerprint": job_fingerprint},
                    )
                    return SubmitResult(hash_id=existing, created=False)

            job = await self._store.insert_job(
                make_hash_id(job_fingerprint),
                job_fingerprint,
                json.loads(encode(raw_params, defaults)),
                domain=normalized.domain,
                priority=priority,
                queue_label=queue_label,
                batch_id=batch_id,
                undelegated=is_undelegated(normalized, defaults),
            )
            span.set_attribute("hash_id", job.hash_id)

        self._metrics.record_job_submitted(queue_label)
        return SubmitResult(hash_id=job.hash_id, created=True)

    async def submit_batch(
        self,
        batch_id: int,
        domains: Iterable[str],
        base_params: Mapping[str, Any] | None = None,
        priority: int | None = None,
        queue_label: int | None = None,
    ) -> list[str]:
        """
        Submit one job per domain, all sharing the batch identifier.

        Returns:
            The hash_ids of the created jobs, in domain order.
        """
        domains = list(domains)
        if not domains:
            raise ValidationError("A batch needs at least one domain", {"batch_id": batch_id})

        hash_ids = []
        for domain in domains:
            result = await self.submit(
                {**(base_params or {}), "domain": domain},
                priority=priority,
                queue_label=queue_label,
                batch_id=batch_id,
            )
            hash_ids.append(result.hash_id)

        logger.info("Created batch", extra={"batch_id": batch_id, "job_count": len(hash_ids)})
        return hash_ids

    async def report_progress(self, hash_id: str, value: int) -> bool:
        """
        Record worker progress. Progress never decreases and a finished job stays finished.

        Returns:
            False if the report was ignored.
        """
        return await self._store.set_progress(hash_id, value)

    async def get_job(self, hash_id: str) -> JobRecord:
        """Get a job snapshot. Raises NotFoundError."""
        job = await self._store.get_job(hash_id)
        if job is None:
            raise NotFoundError("Unknown job", {"hash_id": hash_id})
        return job

    async def get_params(self, hash_id: str) -> dict[str, Any]:
        """Get the persisted union of raw and normalized parameters."""
        return (await self.get_job(hash_id)).params

    async def progress(self, hash_id: str) -> int:
        """Get the progress of a job."""
        return (await self.get_job(hash_id)).progress

    async def results(self, hash_id: str) -> list[ResultEntry]:
        """Get the result entries of an existing job."""
        await self.get_job(hash_id)
        return await self._store.get_result_entries(hash_id)

    async def history(
        self,
        domain: str,
        undelegated: bool | None = None,
        offset: int = 0,
        limit: int = 200,
    ) -> list[JobRecord]:
        """Finished jobs for a domain, newest first."""
        return list(await self._store.history(domain, undelegated, offset, limit))
