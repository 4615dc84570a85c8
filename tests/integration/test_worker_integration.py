"""
Integration tests for worker and reaper functionality.
"""

import asyncio

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from pgqueue.constants import ClaimMode, JobStatus
from pgqueue.observability.metrics import MetricsCollector
from pgqueue.queue import Queue
from pgqueue.reaper.main import Reaper
from pgqueue.types.job import Job
from pgqueue.worker.main import Worker

pytestmark = pytest.mark.integration


class TestWorkerIntegration:
    """Integration tests for workers draining a shared table."""

    async def test_worker_processes_backlog(self, queue: Queue):
        """Test a worker drains every job and stops on request."""
        processed: list[str] = []
        worker = Worker(queue, poll_interval=0.05)

        async def handle(job: Job) -> None:
            processed.append(job.data)
            if len(processed) == 3:
                await worker.stop()

        queue.register_handler("email", handle)
        for data in ("a", "b", "c"):
            await queue.put("email", data)

        await asyncio.wait_for(worker.start(), timeout=10)

        assert processed == ["a", "b", "c"]
        assert worker.processed == 3
        assert (await queue.stats()).done == 3

    async def test_workers_share_backlog(
        self,
        async_engine: AsyncEngine,
        table_name: str,
        metrics: MetricsCollector,
        queue: Queue,
    ):
        """Test several workers process every job exactly once."""
        processed: list[int] = []

        async def handle(job: Job) -> None:
            processed.append(job.id)
            await asyncio.sleep(0.01)

        queues = [queue] + [
            Queue(async_engine, table_name=table_name, metrics=metrics) for _ in range(2)
        ]
        for q in queues:
            q.register_handler("email", handle)

        ids = [await queue.put("email", str(i)) for i in range(12)]

        workers = [Worker(q, poll_interval=0.05) for q in queues]
        tasks = [asyncio.create_task(w.start()) for w in workers]

        while (await queue.stats()).done < len(ids):
            await asyncio.sleep(0.05)

        for w in workers:
            await w.stop()
        await asyncio.wait_for(asyncio.gather(*tasks), timeout=10)

        assert sorted(processed) == ids
        assert sum(w.processed for w in workers) == len(ids)


class TestReaperIntegration:
    """Integration tests for the stale claim reaper."""

    async def test_reaper_requeues_abandoned_claim(
        self,
        async_engine: AsyncEngine,
        table_name: str,
        metrics: MetricsCollector,
        queue: Queue,
    ):
        """Test an abandoned leased claim becomes claimable again."""
        class Crash(BaseException):
            pass

        def crash(job: Job) -> None:
            raise Crash()

        crashed = Queue(
            async_engine,
            table_name=table_name,
            claim_mode=ClaimMode.LEASED,
            metrics=metrics,
        )
        crashed.register_handler("email", crash)
        job_id = await crashed.put("email", "hi")

        with pytest.raises(Crash):
            await crashed.pop(["email"])

        reaper = Reaper(queue, interval_seconds=1, stale_after_seconds=1)
        await asyncio.sleep(1.1)
        assert await reaper.run_once() == 1

        queue.register_handler("email", lambda job: None)
        job = await queue.pop(["email"])

        assert job.id == job_id
        assert job.status == JobStatus.DONE
        assert job.attempt == 2
