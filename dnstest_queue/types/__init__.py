"""
Type definitions for the job queue.
Contains value types shared across modules, grouped by concern.
"""

from dnstest_queue.types.batch import BatchRow, BatchStatus
from dnstest_queue.types.job import ClaimedJob, JobContext, JobRecord, StalledJob, SubmitResult
from dnstest_queue.types.params import DsInfo, Nameserver, NormalizedParams, ProfileDefaults
from dnstest_queue.types.results import ResultEntry

__all__ = [
    # Parameter types
    "DsInfo",
    "Nameserver",
    "NormalizedParams",
    "ProfileDefaults",
    # Job types
    "JobRecord",
    "JobContext",
    "ClaimedJob",
    "StalledJob",
    "SubmitResult",
    # Result types
    "ResultEntry",
    # Batch types
    "BatchRow",
    "BatchStatus",
]
