"""
Queue constants.
Centralized location for all constant values used across the package.
"""

from enum import StrEnum


class JobStatus(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - WAITING -> RUNNING (claimed by pop)
    - RUNNING -> DONE (handler returned)
    - RUNNING -> ERROR (handler raised)
    - RUNNING -> WAITING (stale claim requeued by the reaper)
    - DONE/ERROR -> WAITING (manual requeue)
    """

    WAITING = "waiting"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


TERMINAL_STATUSES: frozenset[JobStatus] = frozenset({JobStatus.DONE, JobStatus.ERROR})


class ClaimMode(StrEnum):
    """
    How pop brackets handler execution.

    TRANSACTIONAL keeps claim, handler and resolve in one transaction.
    LEASED commits the claim first and resolves in a second transaction,
    relying on the reaper to recover rows left running by a crash.
    """

    TRANSACTIONAL = "transactional"
    LEASED = "leased"


DEFAULT_TABLE_NAME = "__pgq_jobs"

# Metrics names
METRIC_QUEUE_DEPTH = "job_queue_depth"
METRIC_JOBS_ENQUEUED = "jobs_enqueued_total"
METRIC_JOBS_CLAIMED = "jobs_claimed_total"
METRIC_JOBS_COMPLETED = "jobs_completed_total"
METRIC_JOB_DURATION = "job_duration_seconds"
METRIC_JOBS_REQUEUED = "jobs_requeued_total"

# Trace span names
SPAN_PUT_JOB = "put_job"
SPAN_CLAIM_JOB = "claim_job"
SPAN_EXECUTE_JOB = "execute_job"
SPAN_RESOLVE_JOB = "resolve_job"
SPAN_REQUEUE_STALE = "requeue_stale"
