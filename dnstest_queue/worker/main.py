"""
Worker process for running claimed tests.

The worker claims jobs from the queue, hands them to an external test runner,
stores the runner's result entries and marks the job finished in one step,
unless the supervisor recovered the job meanwhile. A runner failure is treated
like a dead worker and handed to the supervisor.
"""

import asyncio
import logging
import os
import signal
from collections.abc import Awaitable, Callable, Sequence

from dnstest_queue.config import get_settings
from dnstest_queue.constants import SPAN_RUN_TEST
from dnstest_queue.db import SqlJobStore, close_db, get_engine, init_db
from dnstest_queue.db.store import JobStore
from dnstest_queue.dispatcher import Dispatcher
from dnstest_queue.errors import NotFoundError
from dnstest_queue.observability.logging import job_log_context, setup_logging
from dnstest_queue.observability.metrics import MetricsCollector, get_metrics
from dnstest_queue.observability.tracing import instrument_engine, job_span, setup_tracing
from dnstest_queue.results import ResultLog
from dnstest_queue.supervisor import Supervisor
from dnstest_queue.types.job import ClaimedJob, JobContext
from dnstest_queue.types.results import ResultEntry

logger = logging.getLogger(__name__)

# Type alias for the external DNS test engine
DnsTestRunner = Callable[[JobContext], Awaitable[Sequence[ResultEntry]]]


class Worker:
    """
    Job worker that polls for and runs tests.

    Features:
    - Atomic claims through the dispatcher
    - Result entries of one run written together with completion, or not at all
    - Runner failures recovered through the supervisor's retry policy
    - Graceful shutdown on SIGTERM/SIGINT
    """

    def __init__(
        self,
        store: JobStore,
        runner: DnsTestRunner,
        worker_id: str | None = None,
        queue_label: int | None = None,
        poll_interval: float | None = None,
        supervisor: Supervisor | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the worker.

        Args:
            store: The job store.
            runner: The test runner invoked for each claimed job.
            worker_id: Unique worker identifier. Defaults to hostname + PID.
            queue_label: Only claim from this queue. Defaults to every queue.
            poll_interval: Seconds between polls when the queue is empty.
            supervisor: Supervisor used to recover failed runs.
            metrics: Metrics collector. Defaults to the process-wide one.
        """
        settings = get_settings()
        metrics = metrics or get_metrics()

        self.worker_id = worker_id or settings.worker_id or f"{os.uname().nodename}-{os.getpid()}"
        self.queue_label = settings.worker_queue_label if queue_label is None else queue_label
        self.poll_interval = poll_interval or settings.worker_poll_interval_seconds

        self._store = store
        self._runner = runner
        self._dispatcher = Dispatcher(store, metrics)
        self._results = ResultLog(store, metrics)
        self._supervisor = supervisor or Supervisor(store, metrics=metrics)
        self._running = False

    async def start(self) -> None:
        """Start the worker."""
        logger.info(
            "Worker starting",
            extra={"worker_id": self.worker_id, "queue_label": self.queue_label},
        )
        self._running = True

        while self._running:
            try:
                hash_id = await self.process_next()

                if hash_id is None:
                    await asyncio.sleep(self.poll_interval)

            except Exception as e:
                logger.exception(
                    f"Error in worker loop: {e}",
                    extra={"worker_id": self.worker_id},
                )
                await asyncio.sleep(self.poll_interval)

        logger.info("Worker stopped", extra={"worker_id": self.worker_id})

    async def stop(self) -> None:
        """Stop the worker gracefully after the current test."""
        logger.info("Worker stopping", extra={"worker_id": self.worker_id})
        self._running = False

    async def process_next(self) -> str | None:
        """
        Claim and run one job.

        Returns:
            The hash_id of the processed job, or None if the queue was empty.
        """
        claimed = await self._dispatcher.claim_next(self.queue_label)
        if claimed is None:
            return None

        with job_log_context(claimed.hash_id, worker_id=self.worker_id):
            await self._run(claimed)

        return claimed.hash_id

    async def _run(self, claimed: ClaimedJob) -> None:
        hash_id = claimed.hash_id
        job = await self._store.get_job(hash_id)
        if job is None:
            raise NotFoundError("Claimed job disappeared", {"hash_id": hash_id})

        context = JobContext(
            hash_id=hash_id,
            params=job.params,
            nb_retries=claimed.nb_retries,
            worker_id=self.worker_id,
        )

        try:
            with job_span(SPAN_RUN_TEST, hash_id, nb_retries=claimed.nb_retries, domain=job.domain):
                entries = await self._runner(context)
        except Exception:
            logger.exception("Test runner failed")
            outcome = await self._supervisor.process_dead_job(hash_id, claimed.nb_retries)
            logger.info("Recovered failed test", extra={"outcome": str(outcome)})
            return

        if await self._results.finish(hash_id, claimed.nb_retries, entries):
            logger.info("Test finished", extra={"entries": len(entries)})
        else:
            logger.warning(
                "Discarded results of a run recovered by the supervisor",
                extra={"entries": len(entries), "nb_retries": claimed.nb_retries},
            )


async def run_async(runner: DnsTestRunner) -> None:
    """Run a worker with the given test runner against the configured database."""
    setup_logging(process_name="worker")
    setup_tracing("worker")
    session_factory = await init_db()
    instrument_engine(get_engine())

    worker = Worker(SqlJobStore(session_factory), runner)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(worker.stop())
        )

    try:
        await worker.start()
    finally:
        await close_db()


def run(runner: DnsTestRunner) -> None:
    """Run a worker."""
    asyncio.run(run_async(runner))
