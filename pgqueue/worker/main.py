"""
Worker loop for processing jobs.

The queue itself has no scheduler: a worker is just a caller of pop
that keeps calling it until stopped. Run as many as needed, in tasks,
threads or processes; the database keeps them from claiming the same job.
"""

import asyncio
import logging
from collections.abc import Iterable

from pgqueue.config import get_settings
from pgqueue.errors import QueueDatabaseError
from pgqueue.queue import Queue
from pgqueue.types.job import Job

logger = logging.getLogger(__name__)


class Worker:
    """
    Job worker that polls a queue.

    Features:
    - Back-to-back pops while work is available
    - Sleeps poll_interval when the backlog is empty
    - Survives database errors, logging them and retrying after poll_interval
    - Graceful shutdown after the current job
    """

    def __init__(
        self,
        queue: Queue,
        job_types: Iterable[str] | None = None,
        poll_interval: float | None = None,
    ):
        """
        Initialize the worker.

        Args:
            queue: The queue to pop from.
            job_types: Types to process. Defaults to every type registered
                on the queue at the time of each pop.
            poll_interval: Seconds between polls when the backlog is empty.
        """
        settings = get_settings()

        self.queue = queue
        self._job_types = list(job_types) if job_types is not None else None
        self.poll_interval = poll_interval or settings.worker_poll_interval_seconds
        self.processed = 0

        self._running = False
        self._stopped = asyncio.Event()

    @property
    def job_types(self) -> list[str]:
        if self._job_types is not None:
            return self._job_types
        return self.queue.job_types

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run the polling loop until stop() is called."""
        logger.info(
            "Worker starting",
            extra={"job_types": self.job_types, "table": self.queue.table_name},
        )

        self._running = True
        self._stopped.clear()

        while self._running:
            try:
                job = await self.run_once()
            except QueueDatabaseError as e:
                logger.exception(f"Error in worker loop: {e}")
                job = None

            if job is None and self._running:
                await self._sleep()

        logger.info("Worker stopped", extra={"processed": self.processed})

    async def stop(self) -> None:
        """Stop the worker once the current job is resolved."""
        logger.info("Worker stopping")
        self._running = False
        self._stopped.set()

    async def run_once(self) -> Job | None:
        """
        Pop and process at most one job.

        Returns:
            The resolved Job or None if the backlog was empty.
        """
        job = await self.queue.pop(self.job_types)
        if job is not None:
            self.processed += 1
        return job

    async def _sleep(self) -> None:
        # Wakes early on stop()
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass
