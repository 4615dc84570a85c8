"""
Job repository for database operations.
Implements the data access patterns behind the queue operations.
"""

import logging
from collections.abc import Sequence
from datetime import timedelta

from sqlalchemy import Interval, Table, and_, func, literal, select, update
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.schema import CreateIndex, CreateTable

from pgqueue.constants import TERMINAL_STATUSES, JobStatus
from pgqueue.types.job import Job

logger = logging.getLogger(__name__)


class JobRepository:
    """
    Repository for job database operations.

    Bound to one connection, so every call runs inside whatever
    transaction the caller has open on it.

    Implements atomic operations for:
    - Schema bootstrap with IF NOT EXISTS
    - Claiming with FOR UPDATE SKIP LOCKED
    - Status transitions
    - Stale claim recovery
    """

    def __init__(self, connection: AsyncConnection, table: Table):
        """
        Initialize the repository.

        Args:
            connection: The async database connection.
            table: The jobs table to operate on.
        """
        self._conn = connection
        self._table = table

    async def create_schema(self) -> None:
        """
        Create the jobs table and its status index if they do not exist.

        IF NOT EXISTS alone still races against a concurrent creator, so
        creators of the same table are serialized on a transaction-scoped
        advisory lock keyed by the table name.
        """
        await self._conn.execute(
            select(func.pg_advisory_xact_lock(func.hashtext(self._table.name)))
        )
        await self._conn.execute(CreateTable(self._table, if_not_exists=True))
        for index in self._table.indexes:
            await self._conn.execute(CreateIndex(index, if_not_exists=True))

    async def create_job(self, job_type: str, data: str) -> int:
        """
        Insert a waiting job.

        Args:
            job_type: The job type.
            data: The opaque payload.

        Returns:
            The new job id.
        """
        t = self._table
        stmt = t.insert().values(job_type=job_type, data=data).returning(t.c.id)
        result = await self._conn.execute(stmt)
        return result.scalar_one()

    async def claim_next(self, job_types: Sequence[str]) -> Job | None:
        """
        Claim the oldest waiting job of one of the given types.

        The inner select locks the candidate row with SKIP LOCKED, so
        concurrent claimants each get a different row (or none) and never
        wait on one another.

        Args:
            job_types: The job types to consider.

        Returns:
            The claimed Job, now running, or None if nothing is waiting.
        """
        t = self._table
        # Aliased so the subquery is not correlated to the UPDATE target
        jobs = t.alias("jobs")
        candidate = (
            select(jobs.c.id)
            .where(
                and_(
                    jobs.c.status == JobStatus.WAITING.value,
                    jobs.c.job_type.in_(list(job_types)),
                )
            )
            .order_by(jobs.c.id.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        stmt = (
            update(t)
            .where(t.c.id.in_(candidate))
            .values(
                status=JobStatus.RUNNING.value,
                error=None,
                attempt=t.c.attempt + 1,
                started_at=func.now(),
                finished_at=None,
            )
            .returning(*t.c)
        )

        result = await self._conn.execute(stmt)
        row = result.mappings().one_or_none()
        if row is None:
            return None

        return Job.from_row(row)

    async def resolve_job(
        self,
        job_id: int,
        status: JobStatus,
        error: str | None = None,
        claimed_attempt: int | None = None,
    ) -> Job | None:
        """
        Move a running job to a terminal status.

        Args:
            job_id: The job id.
            status: DONE or ERROR.
            error: The error message, stored only for ERROR.
            claimed_attempt: When given, the update only applies if the row
                is still running under that attempt number.

        Returns:
            The updated Job or None if no row matched.
        """
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"not a terminal status: {status}")

        t = self._table
        condition = t.c.id == job_id
        if claimed_attempt is not None:
            condition = and_(
                condition,
                t.c.status == JobStatus.RUNNING.value,
                t.c.attempt == claimed_attempt,
            )

        stmt = (
            update(t)
            .where(condition)
            .values(
                status=status.value,
                error=error if status == JobStatus.ERROR else None,
                finished_at=func.now(),
            )
            .returning(*t.c)
        )
        result = await self._conn.execute(stmt)
        row = result.mappings().one_or_none()
        return Job.from_row(row) if row is not None else None

    async def get_job(self, job_id: int) -> Job | None:
        """
        Get a job by id.

        Args:
            job_id: The job id.

        Returns:
            The Job or None if not found.
        """
        t = self._table
        result = await self._conn.execute(select(t).where(t.c.id == job_id))
        row = result.mappings().one_or_none()
        return Job.from_row(row) if row is not None else None

    async def list_jobs(
        self,
        status: JobStatus | None = None,
        job_type: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        """
        List jobs with optional filtering, newest first.

        Args:
            status: Optional status filter.
            job_type: Optional job type filter.
            limit: Maximum number of jobs to return.
            offset: Offset for pagination.

        Returns:
            Tuple of (jobs, total_count).
        """
        t = self._table
        filters = []
        if status is not None:
            filters.append(t.c.status == JobStatus(status).value)
        if job_type is not None:
            filters.append(t.c.job_type == job_type)

        count_stmt = select(func.count()).select_from(t)
        stmt = select(t).order_by(t.c.id.desc()).limit(limit).offset(offset)
        if filters:
            count_stmt = count_stmt.where(and_(*filters))
            stmt = stmt.where(and_(*filters))

        total = (await self._conn.execute(count_stmt)).scalar() or 0
        result = await self._conn.execute(stmt)
        return [Job.from_row(row) for row in result.mappings()], total

    async def count_by_status(self, job_type: str | None = None) -> dict[str, int]:
        """
        Get job counts grouped by status.

        Args:
            job_type: Optional job type filter.

        Returns:
            Dictionary of status -> count.
        """
        t = self._table
        stmt = select(t.c.status, func.count()).group_by(t.c.status)
        if job_type is not None:
            stmt = stmt.where(t.c.job_type == job_type)

        result = await self._conn.execute(stmt)
        return {status: count for status, count in result.all()}

    async def requeue_stale(self, stale_after: timedelta) -> int:
        """
        Return running jobs claimed longer ago than stale_after to waiting.

        This recovers rows left running by a worker that died between
        claim and resolve. The attempt counter is kept.

        Args:
            stale_after: How long a claim may stay running.

        Returns:
            Number of requeued jobs.
        """
        t = self._table
        cutoff = func.now() - literal(stale_after, Interval())
        stmt = (
            update(t)
            .where(
                and_(
                    t.c.status == JobStatus.RUNNING.value,
                    t.c.started_at < cutoff,
                )
            )
            .values(
                status=JobStatus.WAITING.value,
                error=None,
                finished_at=None,
            )
        )
        result = await self._conn.execute(stmt)
        count = result.rowcount

        if count > 0:
            logger.info(f"Requeued {count} stale running jobs")

        return count

    async def requeue_job(self, job_id: int) -> Job | None:
        """
        Put a finished job back into the waiting state.

        Args:
            job_id: The job id.

        Returns:
            Updated Job or None if not found or not finished.
        """
        t = self._table
        stmt = (
            update(t)
            .where(
                and_(
                    t.c.id == job_id,
                    t.c.status.in_([s.value for s in TERMINAL_STATUSES]),
                )
            )
            .values(
                status=JobStatus.WAITING.value,
                error=None,
                finished_at=None,
            )
            .returning(*t.c)
        )
        result = await self._conn.execute(stmt)
        row = result.mappings().one_or_none()
        if row is None:
            return None

        logger.info("Job requeued", extra={"job_id": job_id})
        return Job.from_row(row)
