"""
Batch aggregation type definitions.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class BatchRow:
    """Progress of one job belonging to a batch."""

    hash_id: str
    progress: int


@dataclass
class BatchStatus:
    """Completion statistics of all jobs sharing a batch identifier."""

    batch_id: int
    nb_running: int = 0
    nb_finished: int = 0
    finished_hash_ids: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        """Check if every job of the batch has finished."""
        return self.nb_running == 0 and self.nb_finished > 0
