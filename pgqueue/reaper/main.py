"""
Reaper for jobs stuck in running.

A worker that dies between claim and resolve in leased mode leaves its
row running. The reaper periodically returns rows whose claim is older
than the configured age to waiting, so another worker can take them.
"""

import asyncio
import logging
import signal

from pgqueue.config import get_settings
from pgqueue.db import close_db, get_engine
from pgqueue.errors import QueueDatabaseError
from pgqueue.observability.logging import setup_logging
from pgqueue.observability.tracing import instrument_sqlalchemy, setup_tracing
from pgqueue.queue import Queue

logger = logging.getLogger(__name__)


class Reaper:
    """
    Stale claim reaper.

    Runs periodically to:
    1. Find running jobs whose started_at is older than stale_after_seconds
    2. Return them to waiting for reprocessing
    """

    def __init__(
        self,
        queue: Queue,
        interval_seconds: float | None = None,
        stale_after_seconds: float | None = None,
    ):
        """
        Initialize the reaper.

        Args:
            queue: The queue whose table is swept.
            interval_seconds: Seconds between reaper runs.
            stale_after_seconds: Claim age after which a running job is requeued.
        """
        settings = get_settings()
        self.queue = queue
        self.interval = interval_seconds or settings.reaper_interval_seconds
        self.stale_after = stale_after_seconds or settings.reaper_stale_after_seconds
        self._running = False

    async def start(self) -> None:
        """Start the reaper loop."""
        logger.info(
            f"Reaper starting with interval {self.interval}s",
            extra={"table": self.queue.table_name, "stale_after": self.stale_after},
        )
        self._running = True

        while self._running:
            try:
                recovered = await self.run_once()

                if recovered > 0:
                    logger.info(f"Requeued {recovered} stale jobs")

            except QueueDatabaseError as e:
                logger.exception(f"Error in reaper loop: {e}")

            await asyncio.sleep(self.interval)

        logger.info("Reaper stopped")

    async def stop(self) -> None:
        """Stop the reaper."""
        logger.info("Reaper stopping")
        self._running = False

    async def run_once(self) -> int:
        """
        Run the reaper once (for testing or cron-style execution).

        Returns:
            Number of jobs requeued.
        """
        return await self.queue.requeue_stale(self.stale_after)


async def run_async() -> None:
    """Run the reaper against the configured database and table."""
    setup_logging()
    setup_tracing()

    engine = get_engine()
    instrument_sqlalchemy(engine.sync_engine)
    queue = Queue(engine)
    reaper = Reaper(queue)

    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(reaper.stop())
        )

    try:
        await reaper.start()
    finally:
        await close_db()


def run() -> None:
    """Run the reaper."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
