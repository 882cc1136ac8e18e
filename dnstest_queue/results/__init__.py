"""
Results module.
Contains the append-only result log.
"""

from dnstest_queue.results.log import ResultLog

__all__ = ["ResultLog"]
