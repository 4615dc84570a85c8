"""
PostgreSQL Job Queue

A durable, multi-type job queue backed by a single PostgreSQL table.
Concurrent consumers claim work with FOR UPDATE SKIP LOCKED, so no job
is ever in flight twice and no broker process is needed.
"""

__version__ = "1.0.0"

from pgqueue.constants import ClaimMode, JobStatus
from pgqueue.errors import (
    DuplicateHandlerError,
    HandlerNotRegisteredError,
    NoJobTypeError,
    QueueDatabaseError,
    QueueError,
    SetupError,
)
from pgqueue.queue import Queue
from pgqueue.types.job import Job, JobHandler, QueueStats

__all__ = [
    "Queue",
    "Job",
    "JobHandler",
    "JobStatus",
    "ClaimMode",
    "QueueStats",
    "QueueError",
    "QueueDatabaseError",
    "SetupError",
    "DuplicateHandlerError",
    "HandlerNotRegisteredError",
    "NoJobTypeError",
]
