"""
Result log.

Append-only storage of the messages a test produces. Entries are immutable
once written.
"""

import logging
from collections.abc import Sequence

from dnstest_queue.db.store import JobStore
from dnstest_queue.observability.metrics import MetricsCollector, get_metrics
from dnstest_queue.types.results import ResultEntry

logger = logging.getLogger(__name__)


class ResultLog:
    """Appends and reads result entries of a job."""

    def __init__(self, store: JobStore, metrics: MetricsCollector | None = None):
        self._store = store
        self._metrics = metrics or get_metrics()

    async def append(self, hash_id: str, entry: ResultEntry) -> None:
        """Append one entry to the log of a job."""
        await self._store.insert_result_entry(hash_id, entry)
        self._metrics.record_result_entries(1)

    async def append_many(self, hash_id: str, entries: Sequence[ResultEntry]) -> None:
        """
        Append entries as a single unit.

        Either every entry becomes visible or none does, and the given order
        is preserved.
        """
        if not entries:
            return
        await self._store.insert_result_entries(hash_id, list(entries))
        self._metrics.record_result_entries(len(entries))
        logger.debug(
            "Appended result entries",
            extra={"hash_id": hash_id, "count": len(entries)},
        )

    async def entries(self, hash_id: str) -> list[ResultEntry]:
        """Get the entries of a job in insertion order."""
        return await self._store.get_result_entries(hash_id)

    async def finish(
        self,
        hash_id: str,
        expected_nb_retries: int,
        entries: Sequence[ResultEntry],
    ) -> bool:
        """
        Append the entries of a completed run and mark the job finished.

        Nothing is written unless the job is still running under the claim
        identified by expected_nb_retries. A run overtaken by the supervisor
        (re-queued or force ended) is discarded as a whole.

        Returns:
            False if the run was discarded.
        """
        if not await self._store.finish(hash_id, expected_nb_retries, list(entries)):
            return False
        if entries:
            self._metrics.record_result_entries(len(entries))
        return True
