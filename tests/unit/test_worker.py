"""
Unit tests for the worker loop and the reaper.
"""

import pytest

from pgqueue.errors import QueueDatabaseError
from pgqueue.reaper.main import Reaper
from pgqueue.worker.main import Worker


class FakeQueue:
    """Stands in for Queue, replaying scripted pop results."""

    table_name = "pgq_jobs"
    job_types = ["email", "sms"]

    def __init__(self, results=(), stale=0):
        self._results = list(results)
        self.pop_calls = []
        self.stale = stale
        self.requeue_calls = []
        self.on_empty = None

    async def pop(self, job_types):
        self.pop_calls.append(list(job_types))
        if not self._results:
            if self.on_empty is not None:
                await self.on_empty()
            return None
        result = self._results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def requeue_stale(self, stale_after_seconds):
        self.requeue_calls.append(stale_after_seconds)
        return self.stale


class TestWorker:
    """Tests for Worker."""

    def test_defaults_to_registered_types(self):
        worker = Worker(FakeQueue(), poll_interval=0.01)

        assert worker.job_types == ["email", "sms"]
        assert not worker.is_running

    async def test_sees_handlers_registered_after_construction(self):
        queue = FakeQueue()
        queue.job_types = []
        worker = Worker(queue, poll_interval=0.01)

        queue.job_types = ["email", "push"]
        await worker.run_once()

        assert worker.job_types == ["email", "push"]
        assert queue.pop_calls == [["email", "push"]]

    def test_explicit_types_are_fixed(self):
        queue = FakeQueue()
        worker = Worker(queue, job_types=("sms",), poll_interval=0.01)

        queue.job_types = ["email"]

        assert worker.job_types == ["sms"]

    async def test_run_once(self, running_job):
        queue = FakeQueue(results=[running_job])
        worker = Worker(queue, job_types=["email"], poll_interval=0.01)

        assert await worker.run_once() is running_job
        assert await worker.run_once() is None
        assert worker.processed == 1
        assert queue.pop_calls == [["email"], ["email"]]

    async def test_start_drains_until_stopped(self, running_job):
        queue = FakeQueue(results=[running_job, running_job])
        worker = Worker(queue, poll_interval=0.01)
        queue.on_empty = worker.stop

        await worker.start()

        assert worker.processed == 2
        assert not worker.is_running

    async def test_start_survives_database_errors(self, running_job):
        queue = FakeQueue(results=[QueueDatabaseError("queue: failed to pop job"), running_job])
        worker = Worker(queue, poll_interval=0.01)
        queue.on_empty = worker.stop

        await worker.start()

        assert worker.processed == 1
        assert len(queue.pop_calls) == 3

    async def test_start_propagates_configuration_errors(self):
        queue = FakeQueue(results=[ValueError("bad")])
        worker = Worker(queue, poll_interval=0.01)

        with pytest.raises(ValueError):
            await worker.start()


class TestReaper:
    """Tests for Reaper."""

    async def test_run_once(self):
        queue = FakeQueue(stale=3)
        reaper = Reaper(queue, interval_seconds=1, stale_after_seconds=60)

        assert await reaper.run_once() == 3
        assert queue.requeue_calls == [60]
