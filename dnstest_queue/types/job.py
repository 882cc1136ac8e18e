"""
Job-related type definitions for internal use.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from dnstest_queue.constants import Progress


@dataclass
class JobRecord:
    """
    Snapshot of a persisted job.
    Returned by the job store; mutating it has no effect on storage.
    """

    id: int
    hash_id: str
    fingerprint: str
    priority: int
    queue_label: int
    progress: int
    batch_id: int | None
    nb_retries: int
    params: dict[str, Any]
    undelegated: bool
    created_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None
    updated_at: datetime | None = None
    domain: str = ""

    @property
    def is_finished(self) -> bool:
        """Check if the job reached its terminal progress."""
        return self.progress == Progress.FINISHED

    @property
    def is_running(self) -> bool:
        """Check if the job has been claimed but not finished."""
        return Progress.QUEUED < self.progress < Progress.FINISHED


@dataclass(frozen=True)
class ClaimedJob:
    """Identity of a job handed to a worker by the dispatcher, with the retry count it was claimed under."""

    id: int
    hash_id: str
    nb_retries: int = 0


@dataclass(frozen=True)
class StalledJob:
    """A running job whose last update is older than the configured timeout."""

    hash_id: str
    nb_retries: int
    started_at: datetime | None


@dataclass(frozen=True)
class SubmitResult:
    """Outcome of a submission: the job identity and whether a new row was created."""

    hash_id: str
    created: bool


@dataclass
class JobContext:
    """
    Context passed to the test runner for a claimed job.
    """

    hash_id: str
    params: dict[str, Any]
    nb_retries: int
    worker_id: str

    @property
    def is_retry(self) -> bool:
        """Check if a previous attempt of this job stalled."""
        return self.nb_retries > 0
