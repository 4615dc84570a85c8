"""
SQLAlchemy table definitions.

The jobs table name is chosen per Queue instance, so the table is built
with SQLAlchemy Core from a name rather than declared once as a mapped
class.
"""

from functools import lru_cache

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    func,
)

from pgqueue.constants import JobStatus


def status_index_name(table_name: str) -> str:
    """Name of the secondary index on the status column."""
    return f"idx_{table_name}_status"


@lru_cache(maxsize=None)
def get_jobs_table(table_name: str) -> Table:
    """
    Build the jobs table for the given name.

    This is the authoritative source of truth for job state. Every
    lifecycle transition is a statement against this table.

    Args:
        table_name: The table name.

    Returns:
        The Table, cached per name.
    """
    if not table_name:
        raise ValueError("table name must not be empty")

    metadata = MetaData()
    table = Table(
        table_name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        # Payload
        Column("job_type", Text, nullable=False),
        Column("data", Text, nullable=False),
        # Status tracking
        Column("status", Text, nullable=False, server_default=JobStatus.WAITING.value),
        Column("error", Text, nullable=True),
        Column("attempt", Integer, nullable=False, server_default="0"),
        # Timestamps
        Column("created_at", DateTime, nullable=False, server_default=func.now()),
        Column("started_at", DateTime, nullable=True),
        Column("finished_at", DateTime, nullable=True),
    )
    Index(status_index_name(table_name), table.c.status)
    return table
