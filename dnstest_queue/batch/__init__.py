"""
Batch module.
Contains the batch aggregator.
"""

from dnstest_queue.batch.aggregator import BatchAggregator

__all__ = ["BatchAggregator"]
