"""
Storage contracts.

The queue core only depends on these capabilities. Any backend that upholds
their atomicity guarantees can be swapped in.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from dnstest_queue.types.batch import BatchRow
from dnstest_queue.types.job import ClaimedJob, JobRecord, StalledJob
from dnstest_queue.types.results import ResultEntry


class JobStore(ABC):
    """
    Durable table of jobs and their result entries.

    Guarantees required from implementations:
    - conditional_claim reads and marks a job in one atomic step
    - schedule_for_retry, force_end and finish change a running job only if
      nb_retries still equals the expected value, and apply all of their
      writes together or none of them
    - insert_result_entries makes every entry visible at once or none of them
    """

    @abstractmethod
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
        """Persist a new queued job and return its snapshot."""

    @abstractmethod
    async def find_reusable(self, fingerprint: str, window_seconds: float) -> str | None:
        """Return the hash_id of the newest job with this fingerprint created within the window."""

    @abstractmethod
    async def conditional_claim(self, queue_label: int | None = None) -> ClaimedJob | None:
        """Atomically mark the most urgent queued job as claimed and return it."""

    @abstractmethod
    async def set_progress(self, hash_id: str, value: int) -> bool:
        """Raise the progress of a job. Returns False if the job is finished or ahead."""

    @abstractmethod
    async def get_job(self, hash_id: str) -> JobRecord | None:
        """Get a job snapshot by hash_id."""

    @abstractmethod
    async def get_nb_retries(self, hash_id: str) -> int:
        """Get the retry counter of a job. Raises NotFoundError."""

    @abstractmethod
    async def get_relative_start_time(self, hash_id: str) -> float:
        """Seconds elapsed since the job was claimed, 0.0 if never claimed."""

    @abstractmethod
    async def list_stalled(
        self,
        queue_label: int | None,
        timeout_seconds: float,
        max_retries: int,
    ) -> Sequence[StalledJob]:
        """List running jobs not updated within the timeout and not past the retry budget."""

    @abstractmethod
    async def schedule_for_retry(self, hash_id: str, expected_nb_retries: int) -> bool:
        """Re-queue a running job and increment its retry counter."""

    @abstractmethod
    async def force_end(
        self,
        hash_id: str,
        expected_nb_retries: int,
        entry: ResultEntry,
    ) -> bool:
        """Append the entry and mark a running job finished, in one transaction."""

    @abstractmethod
    async def finish(
        self,
        hash_id: str,
        expected_nb_retries: int,
        entries: Sequence[ResultEntry],
    ) -> bool:
        """
        Append the entries and mark a running job finished, in one transaction.

        Returns False without writing anything if the job is no longer running
        under the claim identified by expected_nb_retries.
        """

    @abstractmethod
    async def insert_result_entry(self, hash_id: str, entry: ResultEntry) -> None:
        """Append one result entry."""

    @abstractmethod
    async def insert_result_entries(self, hash_id: str, entries: Sequence[ResultEntry]) -> None:
        """Append several result entries as a single unit."""

    @abstractmethod
    async def get_result_entries(self, hash_id: str) -> list[ResultEntry]:
        """Get the result entries of a job in insertion order."""

    @abstractmethod
    async def batch_rows(self, batch_id: int) -> Sequence[BatchRow]:
        """Get the progress of every job sharing the batch identifier."""

    @abstractmethod
    async def queue_depth(self, queue_label: int | None = None) -> int:
        """Count queued jobs."""

    @abstractmethod
    async def history(
        self,
        domain: str,
        undelegated: bool | None = None,
        offset: int = 0,
        limit: int = 200,
    ) -> Sequence[JobRecord]:
        """Finished jobs for a domain, newest first."""


class UserStore(ABC):
    """Storage of API users."""

    @abstractmethod
    async def user_exists_in_db(self, username: str) -> bool:
        """Check if a user is registered."""

    @abstractmethod
    async def add_api_user_to_db(self, username: str, api_key: str) -> bool:
        """Register a user. Returns False if nothing was stored."""
