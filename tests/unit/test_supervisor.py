"""
Unit tests for the stalled job supervisor.
"""

import pytest

from dnstest_queue.constants import (
    SYSTEM_MODULE,
    SYSTEM_TESTCASE,
    TAG_UNABLE_TO_FINISH_TEST,
    Level,
    Progress,
    RecoveryOutcome,
)
from dnstest_queue.db import InMemoryJobStore
from dnstest_queue.errors import NotFoundError
from dnstest_queue.observability.metrics import MetricsCollector
from dnstest_queue.supervisor import Supervisor

TIMEOUT = 600


@pytest.fixture
def make_supervisor(store: InMemoryJobStore, metrics: MetricsCollector):
    """Build supervisors sharing the test store."""

    def _make(max_retries: int = 0, queue_label: int | None = None) -> Supervisor:
        return Supervisor(
            store,
            timeout_seconds=TIMEOUT,
            max_retries=max_retries,
            queue_label=queue_label,
            interval_seconds=1,
            metrics=metrics,
        )

    return _make


async def _running_job(store: InMemoryJobStore, name: str = "job1", queue_label: int = 0) -> str:
    await store.insert_job(
        name,
        f"fp-{name}",
        {"domain": "example.com"},
        domain="example.com",
        priority=10,
        queue_label=queue_label,
    )
    await store.conditional_claim(queue_label)
    return name


class TestSweep:
    """Tests for Supervisor.sweep()."""

    async def test_fresh_job_not_touched(self, store, clock, make_supervisor):
        """Test that a job updated within the timeout is left alone."""
        await _running_job(store)
        clock.advance(TIMEOUT - 1)

        report = await make_supervisor().sweep()

        assert report.total == 0
        assert (await store.get_job("job1")).progress == Progress.CLAIMED

    async def test_queued_and_finished_jobs_not_stalled(self, store, clock, make_supervisor):
        """Test that only running jobs are considered."""
        await _running_job(store, "done")
        await store.set_progress("done", Progress.FINISHED)
        await store.insert_job("queued", "fp", {}, priority=10, queue_label=0)
        clock.advance(TIMEOUT * 2)

        report = await make_supervisor().sweep()

        assert report.total == 0
        assert report.skipped == []

    async def test_retry_when_budget_left(self, store, clock, make_supervisor, metrics):
        """Test that a stalled job with retries left is re-queued."""
        await _running_job(store)
        clock.advance(TIMEOUT + 1)

        report = await make_supervisor(max_retries=1).sweep()

        assert report.retried == ["job1"]
        job = await store.get_job("job1")
        assert job.progress == Progress.QUEUED
        assert job.nb_retries == 1
        assert job.started_at is None
        assert await store.get_result_entries("job1") == []
        assert b"jobs_retried_total 1.0" in metrics.get_metrics()

    async def test_retried_job_is_claimable_again(self, store, clock, make_supervisor):
        """Test that a retried job goes back through the queue."""
        await _running_job(store)
        clock.advance(TIMEOUT + 1)
        await make_supervisor(max_retries=1).sweep()

        claimed = await store.conditional_claim()

        assert claimed.hash_id == "job1"

    async def test_force_end_when_budget_exhausted(self, store, clock, make_supervisor, metrics):
        """Test that a stalled job without retries left is finished with one CRITICAL entry."""
        await _running_job(store)
        clock.advance(TIMEOUT + 30)

        report = await make_supervisor(max_retries=0).sweep()

        assert report.forced_end == ["job1"]
        job = await store.get_job("job1")
        assert job.progress == Progress.FINISHED
        assert job.ended_at == clock.now

        entries = await store.get_result_entries("job1")
        assert len(entries) == 1
        entry = entries[0]
        assert entry.level == Level.CRITICAL
        assert entry.module == SYSTEM_MODULE
        assert entry.testcase == SYSTEM_TESTCASE
        assert entry.tag == TAG_UNABLE_TO_FINISH_TEST
        assert entry.timestamp == TIMEOUT + 30
        assert entry.args == {}
        assert b"jobs_forced_end_total 1.0" in metrics.get_metrics()

    async def test_retry_then_force_end(self, store, clock, make_supervisor):
        """Test the full lifecycle with a single retry."""
        supervisor = make_supervisor(max_retries=1)
        await _running_job(store)

        clock.advance(TIMEOUT + 1)
        assert (await supervisor.sweep()).retried == ["job1"]

        await store.conditional_claim()
        clock.advance(TIMEOUT + 1)
        report = await supervisor.sweep()

        assert report.forced_end == ["job1"]
        job = await store.get_job("job1")
        assert job.progress == Progress.FINISHED
        assert job.nb_retries == 1

    async def test_second_sweep_does_not_duplicate_entry(self, store, clock, make_supervisor):
        """Test that a force ended job is never processed again."""
        supervisor = make_supervisor()
        await _running_job(store)
        clock.advance(TIMEOUT + 1)

        await supervisor.sweep()
        clock.advance(TIMEOUT + 1)
        report = await supervisor.sweep()

        assert report.total == 0
        assert len(await store.get_result_entries("job1")) == 1

    async def test_progress_report_resets_stall_timer(self, store, clock, make_supervisor):
        """Test that progress updates keep a job alive."""
        await _running_job(store)
        clock.advance(TIMEOUT - 10)
        await store.set_progress("job1", 50)
        clock.advance(20)

        report = await make_supervisor().sweep()

        assert report.total == 0

    async def test_queue_label_filter(self, store, clock, make_supervisor):
        """Test that a supervisor bound to a queue ignores other queues."""
        await _running_job(store, "q1", queue_label=1)
        await _running_job(store, "q2", queue_label=2)
        clock.advance(TIMEOUT + 1)

        report = await make_supervisor(queue_label=2).sweep()

        assert report.forced_end == ["q2"]
        assert (await store.get_job("q1")).progress == Progress.CLAIMED

    async def test_concurrent_change_is_skipped(self, store, clock, make_supervisor):
        """Test that a job recovered by someone else between listing and acting is skipped."""
        await _running_job(store)
        clock.advance(TIMEOUT + 1)
        supervisor = make_supervisor(max_retries=1)

        stalled = await store.list_stalled(None, TIMEOUT, 1)
        assert await store.schedule_for_retry("job1", stalled[0].nb_retries)

        assert await supervisor._recover("job1", stalled[0].nb_retries) is RecoveryOutcome.SKIPPED
        assert (await store.get_job("job1")).nb_retries == 1

    async def test_late_report_after_force_end_ignored(self, store, clock, make_supervisor):
        """Test that the original worker cannot revive a force ended job."""
        await _running_job(store)
        clock.advance(TIMEOUT + 1)
        await make_supervisor().sweep()

        assert await store.set_progress("job1", Progress.FINISHED) is False
        assert await store.set_progress("job1", 60) is False


class TestProcessDeadJob:
    """Tests for Supervisor.process_dead_job()."""

    async def test_retries_regardless_of_age(self, store, make_supervisor):
        """Test that a dead job is recovered without waiting for the timeout."""
        await _running_job(store)

        outcome = await make_supervisor(max_retries=2).process_dead_job("job1")

        assert outcome is RecoveryOutcome.RETRIED
        assert (await store.get_job("job1")).progress == Progress.QUEUED

    async def test_force_ends_when_exhausted(self, store, clock, make_supervisor):
        """Test that a dead job without retries left is force ended."""
        await _running_job(store)
        clock.advance(12.5)

        outcome = await make_supervisor(max_retries=0).process_dead_job("job1")

        assert outcome is RecoveryOutcome.FORCED_END
        entries = await store.get_result_entries("job1")
        assert [entry.tag for entry in entries] == [TAG_UNABLE_TO_FINISH_TEST]
        assert entries[0].timestamp == 12.5

    async def test_finished_job_skipped(self, store, make_supervisor):
        """Test that a job that already finished is not changed."""
        await _running_job(store)
        await store.set_progress("job1", Progress.FINISHED)

        outcome = await make_supervisor().process_dead_job("job1")

        assert outcome is RecoveryOutcome.SKIPPED
        assert await store.get_result_entries("job1") == []

    async def test_unknown_job(self, make_supervisor):
        """Test that an unknown job raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await make_supervisor().process_dead_job("missing")
