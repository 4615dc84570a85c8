"""
Type definitions for the job queue.
"""

from pgqueue.types.job import Job, JobHandler, QueueStats

__all__ = [
    "Job",
    "JobHandler",
    "QueueStats",
]
