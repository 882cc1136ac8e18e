"""
Dispatcher module.
Contains the queue dispatcher handing jobs to workers.
"""

from dnstest_queue.dispatcher.main import Dispatcher

__all__ = ["Dispatcher"]
