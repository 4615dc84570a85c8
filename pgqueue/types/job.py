"""
Job-related type definitions.
"""

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from pgqueue.constants import TERMINAL_STATUSES, JobStatus


@dataclass(frozen=True)
class Job:
    """
    A job record as read from the jobs table.

    Handlers receive this by value; it is a snapshot of the row at claim
    time and is never written back.
    """

    id: int
    type: str
    data: str
    status: JobStatus
    error: str | None
    attempt: int
    created_at: datetime
    started_at: datetime | None
    finished_at: datetime | None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Job":
        """Build a Job from a row mapping of the jobs table."""
        return cls(
            id=row["id"],
            type=row["job_type"],
            data=row["data"],
            status=JobStatus(row["status"]),
            error=row["error"],
            attempt=row["attempt"],
            created_at=row["created_at"],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
        )

    @property
    def is_finished(self) -> bool:
        """Check if the job reached a terminal status."""
        return self.status in TERMINAL_STATUSES

    @property
    def duration_seconds(self) -> float | None:
        """Time between the last claim and the terminal transition."""
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


# A handler returns normally on success and raises on failure.
# Coroutine functions are awaited.
JobHandler = Callable[[Job], Awaitable[None] | None]


class QueueStats(BaseModel):
    """
    Job counts per status.
    """

    waiting: int = 0
    running: int = 0
    done: int = 0
    error: int = 0

    @property
    def total(self) -> int:
        return self.waiting + self.running + self.done + self.error

    @classmethod
    def from_counts(cls, counts: Mapping[str, int]) -> "QueueStats":
        return cls(**{status.value: counts.get(status.value, 0) for status in JobStatus})
