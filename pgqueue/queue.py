"""
The job queue.

A Queue pairs a database engine with a process-local registry of job
handlers. It holds no job state of its own: the jobs table is the single
source of truth, so any number of Queue instances, in one process or
many, can work the same backlog.
"""

import inspect
import logging
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from pgqueue.config import get_settings
from pgqueue.constants import (
    SPAN_CLAIM_JOB,
    SPAN_EXECUTE_JOB,
    SPAN_PUT_JOB,
    SPAN_REQUEUE_STALE,
    SPAN_RESOLVE_JOB,
    ClaimMode,
    JobStatus,
)
from pgqueue.db.models import get_jobs_table
from pgqueue.db.repository import JobRepository
from pgqueue.errors import (
    DuplicateHandlerError,
    HandlerNotRegisteredError,
    NoJobTypeError,
    QueueDatabaseError,
    SetupError,
)
from pgqueue.observability.logging import job_log_context
from pgqueue.observability.metrics import MetricsCollector, get_metrics
from pgqueue.observability.tracing import get_tracer
from pgqueue.types.job import Job, JobHandler, QueueStats

logger = logging.getLogger(__name__)

# asyncpg surfaces refused connections as plain OSErrors
_DB_ERRORS = (SQLAlchemyError, OSError)


@contextmanager
def _database_errors(message: str, error_class: type[QueueDatabaseError] = QueueDatabaseError) -> Iterator[None]:
    try:
        yield
    except _DB_ERRORS as e:
        raise error_class(f"{message}: {e}") from e


class Queue:
    """
    A queue of jobs stored in one PostgreSQL table.

    Features:
    - Multiple job types dispatched to registered handlers
    - Atomic claim using FOR UPDATE SKIP LOCKED, FIFO by id
    - Claim, handler and resolve in one transaction (TRANSACTIONAL mode)
      or in two short ones with stale-claim recovery (LEASED mode)

    Handlers must be registered before any put/pop traffic starts.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        table_name: str | None = None,
        claim_mode: ClaimMode = ClaimMode.TRANSACTIONAL,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the queue.

        Args:
            engine: A live async engine. The queue never disposes it.
            table_name: The jobs table. Defaults to the configured name.
            claim_mode: How pop brackets handler execution.
            metrics: Metrics collector. Defaults to the global one.
        """
        self._engine = engine
        self.table_name = table_name or get_settings().queue_table_name
        self.claim_mode = ClaimMode(claim_mode)
        self._table = get_jobs_table(self.table_name)
        self._handlers: dict[str, JobHandler] = {}
        self._metrics = metrics if metrics is not None else get_metrics()

    def __repr__(self) -> str:
        return (
            f"Queue(table={self.table_name}, mode={self.claim_mode}, "
            f"job_types={self.job_types})"
        )

    @property
    def job_types(self) -> list[str]:
        """Job types with a registered handler."""
        return list(self._handlers)

    async def setup(self) -> None:
        """
        Create the jobs table and its status index if they don't exist.

        Safe to call repeatedly and from concurrent processes.

        Raises:
            SetupError: If the schema could not be created.
        """
        with _database_errors("queue: failed to setup database", SetupError):
            async with self._engine.begin() as conn:
                await JobRepository(conn, self._table).create_schema()

        logger.info("Queue schema ready", extra={"table": self.table_name})

    def register_handler(self, job_type: str, handler: JobHandler) -> None:
        """
        Register the handler for a job type.

        The handler is called with the claimed Job. If it raises, the job is
        marked as error and the exception message is stored on the row.

        Args:
            job_type: The job type.
            handler: A function or coroutine function taking a Job.

        Raises:
            DuplicateHandlerError: If the type already has a handler.
        """
        if job_type in self._handlers:
            raise DuplicateHandlerError(job_type)

        self._handlers[job_type] = handler
        logger.info(f"Registered handler for job type: {job_type}")

    def handler(self, job_type: str) -> Callable[[JobHandler], JobHandler]:
        """
        Decorator form of register_handler.

        Example:
            @queue.handler("send_email")
            async def send_email(job: Job) -> None:
                ...
        """
        def decorator(handler: JobHandler) -> JobHandler:
            self.register_handler(job_type, handler)
            return handler
        return decorator

    async def put(self, job_type: str, data: str) -> int:
        """
        Add a waiting job.

        Args:
            job_type: The job type. Must have a registered handler.
            data: The payload, stored as-is.

        Returns:
            The new job id.

        Raises:
            HandlerNotRegisteredError: If the type has no handler here.
            QueueDatabaseError: If the insert failed.
        """
        if job_type not in self._handlers:
            raise HandlerNotRegisteredError(job_type)

        with get_tracer().start_as_current_span(SPAN_PUT_JOB) as span:
            span.set_attribute("job_type", job_type)
            with _database_errors("queue: failed to add job"):
                async with self._engine.begin() as conn:
                    job_id = await JobRepository(conn, self._table).create_job(job_type, data)
            span.set_attribute("job_id", job_id)

        self._metrics.record_job_enqueued(job_type)
        logger.info("Job added", extra={"job_id": job_id, "job_type": job_type})
        return job_id

    async def pop(self, job_types: Iterable[str]) -> Job | None:
        """
        Claim the oldest waiting job of the given types and process it.

        An empty backlog is not an error. A handler failure is not an
        error either: it is recorded on the row and pop still succeeds.

        Args:
            job_types: The job types to consider.

        Returns:
            The job in its terminal state, or None if nothing was claimed.

        Raises:
            NoJobTypeError: If no job type was given.
            HandlerNotRegisteredError: If any given type has no handler.
            QueueDatabaseError: If a database step failed. In
                TRANSACTIONAL mode nothing was changed.
        """
        if isinstance(job_types, str):
            job_types = [job_types]
        job_types = list(dict.fromkeys(job_types))

        if not job_types:
            raise NoJobTypeError()

        for job_type in job_types:
            if job_type not in self._handlers:
                raise HandlerNotRegisteredError(job_type)

        if self.claim_mode == ClaimMode.LEASED:
            return await self._pop_leased(job_types)
        return await self._pop_transactional(job_types)

    async def _pop_transactional(self, job_types: list[str]) -> Job | None:
        """
        Claim, execute and resolve inside one transaction.

        The row lock is held while the handler runs, so a failure at any
        step rolls back the claim as well and the row stays waiting.
        """
        with _database_errors("queue: failed to start transaction"):
            conn = await self._engine.connect()

        try:
            with _database_errors("queue: failed to start transaction"):
                transaction = await conn.begin()

            repo = JobRepository(conn, self._table)

            with _database_errors("queue: failed to pop job"):
                job = await self._claim(repo, job_types)

            if job is None:
                with _database_errors("queue: failed to commit transaction"):
                    await transaction.commit()
                return None

            status, error, duration = await self._execute(job)

            with _database_errors("queue: failed to update job status"):
                resolved = await self._resolve(repo, job, status, error)

            with _database_errors("queue: failed to commit transaction"):
                await transaction.commit()
        finally:
            # Closing with the transaction still open rolls it back
            await conn.close()

        self._record_claimed(job)
        self._record_resolved(resolved, duration)
        return resolved

    async def _pop_leased(self, job_types: list[str]) -> Job | None:
        """
        Claim in one transaction, execute with none open, resolve in another.

        A crash while the handler runs leaves the row running until
        requeue_stale returns it to waiting. The resolve only applies if
        the row is still running under the attempt this call claimed.
        """
        with _database_errors("queue: failed to pop job"):
            async with self._engine.begin() as conn:
                job = await self._claim(JobRepository(conn, self._table), job_types)

        if job is None:
            return None

        self._record_claimed(job)

        status, error, duration = await self._execute(job)

        with _database_errors("queue: failed to update job status"):
            async with self._engine.begin() as conn:
                resolved = await self._resolve(
                    JobRepository(conn, self._table),
                    job,
                    status,
                    error,
                    claimed_attempt=job.attempt,
                )

        if resolved is None:
            logger.warning(
                "Claim lost before resolve, result discarded",
                extra={"job_id": job.id, "attempt": job.attempt, "status": status.value},
            )
            return None

        self._record_resolved(resolved, duration)
        return resolved

    async def _claim(self, repo: JobRepository, job_types: list[str]) -> Job | None:
        with get_tracer().start_as_current_span(SPAN_CLAIM_JOB) as span:
            span.set_attribute("job_types", job_types)
            job = await repo.claim_next(job_types)
            if job is not None:
                span.set_attribute("job_id", job.id)
                span.set_attribute("attempt", job.attempt)

        return job

    async def _execute(self, job: Job) -> tuple[JobStatus, str | None, float]:
        """
        Run the handler for a claimed job.

        Returns:
            Tuple of (terminal status, error message, duration in seconds).
        """
        handler = self._handlers[job.type]
        start_time = time.monotonic()

        with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
            span.set_attribute("job_id", job.id)
            span.set_attribute("job_type", job.type)
            span.set_attribute("attempt", job.attempt)

            with job_log_context(job):
                try:
                    result = handler(job)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    duration = time.monotonic() - start_time
                    message = str(e)
                    span.record_exception(e)
                    logger.warning("Job handler failed", extra={"error": message})
                    return JobStatus.ERROR, message, duration

        return JobStatus.DONE, None, time.monotonic() - start_time

    async def _resolve(
        self,
        repo: JobRepository,
        job: Job,
        status: JobStatus,
        error: str | None,
        claimed_attempt: int | None = None,
    ) -> Job | None:
        with get_tracer().start_as_current_span(SPAN_RESOLVE_JOB) as span:
            span.set_attribute("job_id", job.id)
            span.set_attribute("status", status.value)
            return await repo.resolve_job(
                job.id,
                status,
                error=error,
                claimed_attempt=claimed_attempt,
            )

    def _record_claimed(self, job: Job) -> None:
        self._metrics.record_job_claimed(job.type)
        logger.info(
            "Job claimed",
            extra={"job_id": job.id, "job_type": job.type, "attempt": job.attempt},
        )

    def _record_resolved(self, job: Job, duration: float) -> None:
        self._metrics.record_job_completed(
            job_type=job.type,
            status=job.status.value,
            duration_seconds=duration,
        )
        logger.info(
            "Job resolved",
            extra={
                "job_id": job.id,
                "job_type": job.type,
                "status": job.status.value,
                "attempt": job.attempt,
                "duration": f"{duration:.3f}s",
            },
        )

    async def requeue_stale(self, stale_after_seconds: float) -> int:
        """
        Return jobs stuck in running back to waiting.

        A job counts as stuck once its last claim is older than
        stale_after_seconds. Pick a value well above the slowest handler.

        Args:
            stale_after_seconds: Claim age after which a running job is requeued.

        Returns:
            Number of requeued jobs.
        """
        if stale_after_seconds <= 0:
            raise ValueError("stale_after_seconds must be positive")

        with get_tracer().start_as_current_span(SPAN_REQUEUE_STALE):
            with _database_errors("queue: failed to requeue stale jobs"):
                async with self._engine.begin() as conn:
                    count = await JobRepository(conn, self._table).requeue_stale(
                        timedelta(seconds=stale_after_seconds)
                    )

        if count > 0:
            self._metrics.record_jobs_requeued("stale", count)
        return count

    async def requeue(self, job_id: int) -> Job | None:
        """
        Put a done or error job back into waiting.

        The attempt counter is kept; error and finished_at are cleared.

        Args:
            job_id: The job id.

        Returns:
            The waiting Job, or None if missing or not finished.
        """
        with _database_errors("queue: failed to requeue job"):
            async with self._engine.begin() as conn:
                job = await JobRepository(conn, self._table).requeue_job(job_id)

        if job is not None:
            self._metrics.record_jobs_requeued("manual")
        return job

    async def get_job(self, job_id: int) -> Job | None:
        """Get a job by id."""
        with _database_errors("queue: failed to read job"):
            async with self._engine.connect() as conn:
                return await JobRepository(conn, self._table).get_job(job_id)

    async def list_jobs(
        self,
        status: JobStatus | None = None,
        job_type: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        """
        List jobs newest first.

        Returns:
            Tuple of (jobs, total_count).
        """
        with _database_errors("queue: failed to list jobs"):
            async with self._engine.connect() as conn:
                return await JobRepository(conn, self._table).list_jobs(
                    status=status,
                    job_type=job_type,
                    limit=limit,
                    offset=offset,
                )

    async def stats(self, job_type: str | None = None) -> QueueStats:
        """
        Count jobs per status.

        Args:
            job_type: Optional job type filter.
        """
        with _database_errors("queue: failed to read stats"):
            async with self._engine.connect() as conn:
                counts = await JobRepository(conn, self._table).count_by_status(job_type)

        stats = QueueStats.from_counts(counts)
        if job_type is None:
            self._metrics.update_queue_depth(stats)
        return stats
