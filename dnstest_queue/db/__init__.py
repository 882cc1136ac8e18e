"""
Database module.
Contains storage contracts, database models, connection management and
the PostgreSQL and in-memory store implementations.
"""

from dnstest_queue.db.connection import (
    close_db,
    create_session_factory,
    get_engine,
    init_db,
)
from dnstest_queue.db.memory_store import InMemoryJobStore, InMemoryUserStore
from dnstest_queue.db.models import Base, Job, ResultEntryRow, User
from dnstest_queue.db.sql_store import SqlJobStore, SqlUserStore
from dnstest_queue.db.store import JobStore, UserStore

__all__ = [
    "get_engine",
    "init_db",
    "close_db",
    "create_session_factory",
    "JobStore",
    "UserStore",
    "SqlJobStore",
    "SqlUserStore",
    "InMemoryJobStore",
    "InMemoryUserStore",
    "Job",
    "ResultEntryRow",
    "User",
    "Base",
]
