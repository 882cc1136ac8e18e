"""
Retry/recovery supervisor for stalled jobs.

The supervisor runs periodically to find running jobs that stopped reporting
progress. Each one is either re-queued for another attempt or, once its retry
budget is spent, forced to its terminal state with a CRITICAL result entry.

Timeouts are compared against stored timestamps, they are not a cancellation
signal. A worker that is still alive past the timeout keeps executing while
its job is re-queued or force ended underneath it, so a test may run more
than once. When the original worker completes, its results are discarded
because the job is no longer running under the retry count it was claimed
with. This at-most-once enforcement is accepted.
"""

import asyncio
import logging
import signal
from dataclasses import dataclass, field

from dnstest_queue.config import get_settings
from dnstest_queue.constants import (
    SPAN_SUPERVISOR_SWEEP,
    SYSTEM_MODULE,
    SYSTEM_TESTCASE,
    TAG_UNABLE_TO_FINISH_TEST,
    Level,
    RecoveryOutcome,
)
from dnstest_queue.db import SqlJobStore, close_db, get_engine, init_db
from dnstest_queue.db.store import JobStore
from dnstest_queue.observability.logging import setup_logging
from dnstest_queue.observability.metrics import MetricsCollector, get_metrics
from dnstest_queue.observability.tracing import get_tracer, instrument_engine, setup_tracing
from dnstest_queue.types.results import ResultEntry

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Outcome of one supervisor pass."""

    retried: list[str] = field(default_factory=list)
    forced_end: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.retried) + len(self.forced_end)


def unable_to_finish_entry(timestamp: float) -> ResultEntry:
    """Build the system-injected entry recorded when a job is force ended."""
    return ResultEntry(
        level=Level.CRITICAL,
        module=SYSTEM_MODULE,
        testcase=SYSTEM_TESTCASE,
        tag=TAG_UNABLE_TO_FINISH_TEST,
        timestamp=timestamp,
        args={},
    )


class Supervisor:
    """
    Recovers stalled jobs.

    Runs periodically to:
    1. Find running jobs whose last update is older than the timeout
    2. Re-queue those with retries left, incrementing nb_retries
    3. Force end the others with an UNABLE_TO_FINISH_TEST entry

    The retry-or-force-end decision only depends on nb_retries against the
    configured maximum, whether the stall was found by a sweep or reported
    through process_dead_job.
    """

    def __init__(
        self,
        store: JobStore,
        timeout_seconds: float | None = None,
        max_retries: int | None = None,
        queue_label: int | None = None,
        interval_seconds: float | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the supervisor.

        Args:
            store: The job store.
            timeout_seconds: Age of the last update after which a running job is stalled.
            max_retries: Number of retries before a stalled job is force ended.
            queue_label: Only supervise this queue. Defaults to every queue.
            interval_seconds: Seconds between sweeps.
            metrics: Metrics collector. Defaults to the process-wide one.
        """
        settings = get_settings()
        self._store = store
        self.timeout = (
            settings.test_run_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self.max_retries = settings.test_run_max_retries if max_retries is None else max_retries
        self.queue_label = settings.supervisor_queue_label if queue_label is None else queue_label
        self.interval = interval_seconds or settings.supervisor_interval_seconds
        self._metrics = metrics or get_metrics()
        self._running = False

    async def start(self) -> None:
        """Start the supervisor loop."""
        logger.info(f"Supervisor starting with interval {self.interval}s")
        self._running = True

        while self._running:
            try:
                report = await self.sweep()

                if report.total > 0:
                    logger.info(
                        "Recovered stalled jobs",
                        extra={
                            "retried": len(report.retried),
                            "forced_end": len(report.forced_end),
                        },
                    )

            except Exception as e:
                logger.exception(f"Error in supervisor loop: {e}")

            await asyncio.sleep(self.interval)

        logger.info("Supervisor stopped")

    async def stop(self) -> None:
        """Stop the supervisor."""
        logger.info("Supervisor stopping")
        self._running = False

    async def sweep(self) -> SweepReport:
        """
        Recover every stalled job once.

        Jobs are handled independently; each decision and its mutation are
        atomic per job.

        Returns:
            The hash_ids retried, force ended, and skipped because they changed
            state concurrently.
        """
        report = SweepReport()

        with get_tracer().start_as_current_span(SPAN_SUPERVISOR_SWEEP) as span:
            stalled = await self._store.list_stalled(self.queue_label, self.timeout, self.max_retries)
            span.set_attribute("stalled_count", len(stalled))

            for job in stalled:
                outcome = await self._recover(job.hash_id, job.nb_retries)
                if outcome is RecoveryOutcome.RETRIED:
                    report.retried.append(job.hash_id)
                elif outcome is RecoveryOutcome.FORCED_END:
                    report.forced_end.append(job.hash_id)
                else:
                    report.skipped.append(job.hash_id)

        return report

    async def process_dead_job(
        self,
        hash_id: str,
        expected_nb_retries: int | None = None,
    ) -> RecoveryOutcome:
        """
        Recover a job whose worker is known to be dead.

        Args:
            hash_id: The job identity.
            expected_nb_retries: Retry count of the dead claim. When given, a job
                that was re-queued or claimed again since is left alone.

        Returns:
            The recovery outcome.

        Raises:
            NotFoundError: If the job does not exist.
        """
        nb_retries = await self._store.get_nb_retries(hash_id)
        if expected_nb_retries is not None and nb_retries != expected_nb_retries:
            return RecoveryOutcome.SKIPPED
        return await self._recover(hash_id, nb_retries)

    async def run_once(self) -> SweepReport:
        """
        Run the supervisor once (for testing or cron-style execution).

        Returns:
            The sweep report.
        """
        return await self.sweep()

    async def _recover(self, hash_id: str, nb_retries: int) -> RecoveryOutcome:
        if nb_retries < self.max_retries:
            if await self._store.schedule_for_retry(hash_id, nb_retries):
                self._metrics.record_job_retried()
                logger.info(
                    "Job scheduled for retry",
                    extra={"hash_id": hash_id, "nb_retries": nb_retries + 1},
                )
                return RecoveryOutcome.RETRIED
            return RecoveryOutcome.SKIPPED

        # Stall time relative to the start of the test, like every result entry
        stalled_at = await self._store.get_relative_start_time(hash_id)
        entry = unable_to_finish_entry(stalled_at)
        if await self._store.force_end(hash_id, nb_retries, entry):
            self._metrics.record_job_forced_end()
            logger.warning(
                "Job force ended after exhausting retries",
                extra={"hash_id": hash_id, "nb_retries": nb_retries},
            )
            return RecoveryOutcome.FORCED_END
        return RecoveryOutcome.SKIPPED


async def run_async() -> None:
    """Run the supervisor asynchronously against the configured database."""
    setup_logging(process_name="supervisor")
    setup_tracing("supervisor")
    session_factory = await init_db()
    instrument_engine(get_engine())

    supervisor = Supervisor(SqlJobStore(session_factory))

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(supervisor.stop())
        )

    try:
        await supervisor.start()
    finally:
        await close_db()


def run() -> None:
    """Run the supervisor."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
