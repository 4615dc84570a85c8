"""
Database module.
Contains engine helpers, table definitions, and the job repository.
"""

from pgqueue.db.connection import close_db, get_engine, get_test_engine
from pgqueue.db.models import get_jobs_table, status_index_name
from pgqueue.db.repository import JobRepository

__all__ = [
    "get_engine",
    "get_test_engine",
    "close_db",
    "get_jobs_table",
    "status_index_name",
    "JobRepository",
]
