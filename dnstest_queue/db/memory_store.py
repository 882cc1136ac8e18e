"""
In-memory job store for tests and single-process use.

All mutations are serialized by one asyncio lock, which makes every
operation atomic with respect to other coroutines of the same event loop.
"""

import asyncio
import copy
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

from dnstest_queue.constants import Progress
from dnstest_queue.db.store import JobStore, UserStore
from dnstest_queue.errors import NotFoundError, ValidationError
from dnstest_queue.types.batch import BatchRow
from dnstest_queue.types.job import ClaimedJob, JobRecord, StalledJob
from dnstest_queue.types.results import ResultEntry

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _snapshot(job: JobRecord) -> JobRecord:
    return replace(job, params=copy.deepcopy(job.params))


class InMemoryJobStore(JobStore):
    """Job store keeping every row in process memory."""

    def __init__(self, clock: Clock | None = None):
        """
        Initialize empty store state.

        Args:
            clock: Source of the current time. Defaults to UTC wall clock.
        """
        self._clock = clock or _utcnow
        self._lock = asyncio.Lock()
        self._jobs: dict[str, JobRecord] = {}
        self._entries: dict[str, list[ResultEntry]] = {}
        self._next_id = 1

    def _require(self, hash_id: str) -> JobRecord:
        job = self._jobs.get(hash_id)
        if job is None:
            raise NotFoundError("Unknown job", {"hash_id": hash_id})
        return job

    async def insert_job(
        self,
        hash_id: str,
        fingerprint: str,
        params: dict[str, Any],
        *,
        domain: str = "",
        priority: int,
        queue_label: int,
        batch_id: int | None = None,
        undelegated: bool = False,
    ) -> JobRecord:
        async with self._lock:
            now = self._clock()
            job = JobRecord(
                id=self._next_id,
                hash_id=hash_id,
                fingerprint=fingerprint,
                priority=priority,
                queue_label=queue_label,
                progress=Progress.QUEUED,
                batch_id=batch_id,
                nb_retries=0,
                params=copy.deepcopy(params),
                domain=domain,
                undelegated=undelegated,
                created_at=now,
                updated_at=now,
            )
            self._next_id += 1
            self._jobs[hash_id] = job
            self._entries[hash_id] = []
            return _snapshot(job)

    async def find_reusable(self, fingerprint: str, window_seconds: float) -> str | None:
        async with self._lock:
            since = self._clock() - timedelta(seconds=window_seconds)
            candidates = [
                job
                for job in self._jobs.values()
                if job.fingerprint == fingerprint and job.created_at > since
            ]
            if not candidates:
                return None
            return max(candidates, key=lambda job: job.id).hash_id

    async def conditional_claim(self, queue_label: int | None = None) -> ClaimedJob | None:
        async with self._lock:
            queued = [
                job
                for job in self._jobs.values()
                if job.progress == Progress.QUEUED
                and (queue_label is None or job.queue_label == queue_label)
            ]
            if not queued:
                return None

            job = min(queued, key=lambda j: (-j.priority, j.id))
            now = self._clock()
            job.progress = Progress.CLAIMED
            job.started_at = now
            job.updated_at = now
            return ClaimedJob(id=job.id, hash_id=job.hash_id, nb_retries=job.nb_retries)

    async def set_progress(self, hash_id: str, value: int) -> bool:
        if not Progress.CLAIMED <= value <= Progress.FINISHED:
            raise ValidationError("Progress must be between 1 and 100", {"value": value})

        async with self._lock:
            job = self._require(hash_id)
            if job.progress > value or job.progress == Progress.FINISHED:
                return False
            now = self._clock()
            job.progress = value
            job.updated_at = now
            if value == Progress.CLAIMED and job.started_at is None:
                job.started_at = now
            if value == Progress.FINISHED:
                job.ended_at = now
            return True

    async def get_job(self, hash_id: str) -> JobRecord | None:
        async with self._lock:
            job = self._jobs.get(hash_id)
            return _snapshot(job) if job is not None else None

    async def get_nb_retries(self, hash_id: str) -> int:
        async with self._lock:
            return self._require(hash_id).nb_retries

    async def get_relative_start_time(self, hash_id: str) -> float:
        async with self._lock:
            job = self._require(hash_id)
            if job.started_at is None:
                return 0.0
            return (self._clock() - job.started_at).total_seconds()

    async def list_stalled(
        self,
        queue_label: int | None,
        timeout_seconds: float,
        max_retries: int,
    ) -> Sequence[StalledJob]:
        async with self._lock:
            deadline = self._clock() - timedelta(seconds=timeout_seconds)
            return [
                StalledJob(hash_id=job.hash_id, nb_retries=job.nb_retries, started_at=job.started_at)
                for job in sorted(self._jobs.values(), key=lambda j: j.id)
                if job.is_running
                and job.updated_at is not None
                and job.updated_at < deadline
                and job.nb_retries <= max_retries
                and (queue_label is None or job.queue_label == queue_label)
            ]

    def _running_with_retries(self, hash_id: str, expected_nb_retries: int) -> JobRecord | None:
        job = self._jobs.get(hash_id)
        if job is None or not job.is_running or job.nb_retries != expected_nb_retries:
            return None
        return job

    async def schedule_for_retry(self, hash_id: str, expected_nb_retries: int) -> bool:
        async with self._lock:
            job = self._running_with_retries(hash_id, expected_nb_retries)
            if job is None:
                return False
            job.progress = Progress.QUEUED
            job.nb_retries += 1
            job.started_at = None
            job.updated_at = self._clock()
            return True

    async def force_end(
        self,
        hash_id: str,
        expected_nb_retries: int,
        entry: ResultEntry,
    ) -> bool:
        async with self._lock:
            job = self._running_with_retries(hash_id, expected_nb_retries)
            if job is None:
                return False
            now = self._clock()
            self._entries[hash_id].append(entry)
            job.progress = Progress.FINISHED
            job.ended_at = now
            job.updated_at = now
            return True

    async def finish(
        self,
        hash_id: str,
        expected_nb_retries: int,
        entries: Sequence[ResultEntry],
    ) -> bool:
        async with self._lock:
            job = self._running_with_retries(hash_id, expected_nb_retries)
            if job is None:
                return False
            now = self._clock()
            self._entries[hash_id].extend(entries)
            job.progress = Progress.FINISHED
            job.ended_at = now
            job.updated_at = now
            return True

    async def insert_result_entry(self, hash_id: str, entry: ResultEntry) -> None:
        await self.insert_result_entries(hash_id, [entry])

    async def insert_result_entries(self, hash_id: str, entries: Sequence[ResultEntry]) -> None:
        async with self._lock:
            self._require(hash_id)
            self._entries[hash_id].extend(entries)

    async def get_result_entries(self, hash_id: str) -> list[ResultEntry]:
        async with self._lock:
            return list(self._entries.get(hash_id, []))

    async def batch_rows(self, batch_id: int) -> Sequence[BatchRow]:
        async with self._lock:
            return [
                BatchRow(hash_id=job.hash_id, progress=job.progress)
                for job in self._jobs.values()
                if job.batch_id == batch_id
            ]

    async def queue_depth(self, queue_label: int | None = None) -> int:
        async with self._lock:
            return sum(
                1
                for job in self._jobs.values()
                if job.progress == Progress.QUEUED
                and (queue_label is None or job.queue_label == queue_label)
            )

    async def history(
        self,
        domain: str,
        undelegated: bool | None = None,
        offset: int = 0,
        limit: int = 200,
    ) -> Sequence[JobRecord]:
        async with self._lock:
            matches = [
                _snapshot(job)
                for job in sorted(self._jobs.values(), key=lambda j: j.id, reverse=True)
                if job.is_finished
                and job.domain == domain.lower()
                and (undelegated is None or job.undelegated == undelegated)
            ]
            return matches[offset:offset + limit]


class InMemoryUserStore(UserStore):
    """User store keeping API keys in process memory."""

    def __init__(self) -> None:
        self._users: dict[str, str] = {}

    async def user_exists_in_db(self, username: str) -> bool:
        return username in self._users

    async def add_api_user_to_db(self, username: str, api_key: str) -> bool:
        if username in self._users:
            return False
        self._users[username] = api_key
        return True
