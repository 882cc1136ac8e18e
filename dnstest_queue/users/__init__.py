"""
Users module.
Contains the API user provisioning adapter.
"""

from dnstest_queue.users.registry import UserRegistry

__all__ = ["UserRegistry"]
