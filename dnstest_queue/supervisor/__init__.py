"""
Supervisor module.
Contains the retry/recovery supervisor for stalled jobs.
"""

from dnstest_queue.supervisor.main import Supervisor, SweepReport, run, unable_to_finish_entry

__all__ = ["Supervisor", "SweepReport", "run", "unable_to_finish_entry"]
