"""
Worker module.
Contains the worker loop driving an external test runner.
"""

from dnstest_queue.worker.main import DnsTestRunner, Worker, run

__all__ = ["DnsTestRunner", "Worker", "run"]
