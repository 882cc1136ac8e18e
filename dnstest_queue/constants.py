"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class Progress:
    """
    Job progress milestones.

    State transitions:
    - QUEUED -> CLAIMED (dispatcher claim)
    - CLAIMED..RUNNING -> FINISHED (worker report)
    - CLAIMED..RUNNING -> QUEUED (supervisor retry)
    - CLAIMED..RUNNING -> FINISHED (supervisor force end)
    """

    QUEUED = 0
    CLAIMED = 1
    FINISHED = 100


class Level(StrEnum):
    """Severity levels of result entries."""

    DEBUG3 = "DEBUG3"
    DEBUG2 = "DEBUG2"
    DEBUG = "DEBUG"
    INFO = "INFO"
    NOTICE = "NOTICE"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# System-injected result entry written when a job is force ended
SYSTEM_MODULE = "BACKEND_TEST_AGENT"
SYSTEM_TESTCASE = "BACKEND"
TAG_UNABLE_TO_FINISH_TEST = "UNABLE_TO_FINISH_TEST"

# Default values
DEFAULT_PROFILE = "default"
DEFAULT_PRIORITY = 10
DEFAULT_QUEUE_LABEL = 0
HASH_ID_LENGTH = 16

# Metrics names
METRIC_QUEUE_DEPTH = "job_queue_depth"
METRIC_JOBS_SUBMITTED = "jobs_submitted_total"
METRIC_JOBS_DEDUPLICATED = "jobs_deduplicated_total"
METRIC_JOBS_CLAIMED = "jobs_claimed_total"
METRIC_JOBS_RETRIED = "jobs_retried_total"
METRIC_JOBS_FORCED_END = "jobs_forced_end_total"
METRIC_RESULT_ENTRIES = "result_entries_written_total"

# Trace span names
SPAN_SUBMIT_JOB = "submit_job"
SPAN_CLAIM_JOB = "claim_job"
SPAN_SUPERVISOR_SWEEP = "supervisor_sweep"
SPAN_RUN_TEST = "run_test"


class RecoveryOutcome(StrEnum):
    """Result of recovering one stalled job."""

    RETRIED = "retried"
    FORCED_END = "forced_end"
    SKIPPED = "skipped"  # job changed state concurrently
