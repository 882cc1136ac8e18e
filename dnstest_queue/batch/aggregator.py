"""
Batch aggregation.
"""

from dnstest_queue.constants import Progress
from dnstest_queue.db.store import JobStore
from dnstest_queue.errors import NotFoundError
from dnstest_queue.types.batch import BatchStatus


class BatchAggregator:
    """
    Computes the status of a batch on demand.

    A job counts as finished when its progress is 100, whether it completed
    normally or was force ended by the supervisor.
    """

    def __init__(self, store: JobStore):
        self._store = store

    async def batch_status(self, batch_id: int) -> BatchStatus:
        """
        Count running and finished jobs of a batch.

        Args:
            batch_id: The batch identifier shared by its jobs.

        Returns:
            BatchStatus with the finished job identities in no particular order.

        Raises:
            NotFoundError: If no job belongs to the batch.
        """
        rows = await self._store.batch_rows(batch_id)
        if not rows:
            raise NotFoundError("Unknown batch", {"batch_id": batch_id})

        status = BatchStatus(batch_id=batch_id)
        for row in rows:
            if row.progress == Progress.FINISHED:
                status.nb_finished += 1
                status.finished_hash_ids.append(row.hash_id)
            else:
                status.nb_running += 1

        return status
