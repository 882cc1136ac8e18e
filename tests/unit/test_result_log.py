"""
Unit tests for the result log.
"""

import pytest
import pytest_asyncio

from dnstest_queue.db import InMemoryJobStore
from dnstest_queue.errors import NotFoundError
from dnstest_queue.observability.metrics import MetricsCollector
from dnstest_queue.results import ResultLog
from dnstest_queue.types import ResultEntry


def _entry(tag: str, timestamp: float = 0.1, **args) -> ResultEntry:
    return ResultEntry(
        level="INFO",
        module="DELEGATION",
        testcase="DELEGATION01",
        tag=tag,
        timestamp=timestamp,
        args=args,
    )


@pytest_asyncio.fixture
async def job(store: InMemoryJobStore) -> str:
    await store.insert_job("job1", "fp", {"domain": "example.com"}, priority=10, queue_label=0)
    return "job1"


class TestResultLog:
    """Tests for ResultLog."""

    async def test_append_preserves_order(self, result_log: ResultLog, job: str):
        """Test that entries are read back in insertion order."""
        await result_log.append(job, _entry("FIRST", 0.1))
        await result_log.append(job, _entry("SECOND", 0.2))

        assert [entry.tag for entry in await result_log.entries(job)] == ["FIRST", "SECOND"]

    async def test_append_many(self, result_log: ResultLog, job: str, metrics: MetricsCollector):
        """Test appending several entries at once."""
        await result_log.append(job, _entry("A"))
        await result_log.append_many(job, [_entry("B"), _entry("C", ns="ns1.example.")])

        entries = await result_log.entries(job)
        assert [entry.tag for entry in entries] == ["A", "B", "C"]
        assert entries[2].args == {"ns": "ns1.example."}
        assert b"result_entries_written_total 3.0" in metrics.get_metrics()

    async def test_append_many_empty_is_noop(self, result_log: ResultLog, job: str):
        """Test that an empty append changes nothing."""
        await result_log.append_many(job, [])

        assert await result_log.entries(job) == []

    async def test_unknown_job_rejected(self, result_log: ResultLog):
        """Test that entries cannot be written for a job that does not exist."""
        with pytest.raises(NotFoundError):
            await result_log.append("missing", _entry("A"))

        with pytest.raises(NotFoundError):
            await result_log.append_many("missing", [_entry("A"), _entry("B")])

    async def test_failed_batch_writes_nothing(
        self,
        result_log: ResultLog,
        store: InMemoryJobStore,
        job: str,
    ):
        """Test that a rejected batch leaves no partial entries behind."""
        with pytest.raises(NotFoundError):
            await result_log.append_many("missing", [_entry("A")])

        assert await store.get_result_entries("missing") == []
        assert await result_log.entries(job) == []

    async def test_none_args_become_empty(self):
        """Test that missing arguments read back as an empty mapping."""
        entry = ResultEntry(
            level="NOTICE",
            module="BASIC",
            testcase="BASIC01",
            tag="T",
            timestamp=0,
            args=None,
        )

        assert entry.args == {}


class TestFinish:
    """Tests for ResultLog.finish()."""

    async def test_finishes_running_job(
        self,
        result_log: ResultLog,
        store: InMemoryJobStore,
        job: str,
        metrics: MetricsCollector,
    ):
        """Test that entries and completion are written together."""
        claimed = await store.conditional_claim()

        assert await result_log.finish(job, claimed.nb_retries, [_entry("A"), _entry("B")]) is True

        assert (await store.get_job(job)).is_finished
        assert [entry.tag for entry in await result_log.entries(job)] == ["A", "B"]
        assert b"result_entries_written_total 2.0" in metrics.get_metrics()

    async def test_queued_job_not_finished(self, result_log: ResultLog, store: InMemoryJobStore, job: str):
        """Test that a job which is not running is left untouched."""
        assert await result_log.finish(job, 0, [_entry("A")]) is False

        assert (await store.get_job(job)).progress == 0
        assert await result_log.entries(job) == []

    async def test_other_claim_not_finished(self, result_log: ResultLog, store: InMemoryJobStore, job: str):
        """Test that a stale retry count discards the run."""
        await store.conditional_claim()
        await store.schedule_for_retry(job, 0)
        await store.conditional_claim()

        assert await result_log.finish(job, 0, [_entry("STALE")]) is False

        job_record = await store.get_job(job)
        assert job_record.is_running
        assert await result_log.entries(job) == []
