"""
DNS Test Job Queue

The job-queue core of a DNS-validation test runner: parameter normalization and
fingerprinting for deduplication, an atomic claim protocol for handing jobs to
workers, and a retry/force-end supervisor for recovering stalled jobs.
"""

__version__ = "1.0.0"
