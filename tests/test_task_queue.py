"""Tests for TaskQueue (fake Redis)."""

import asyncio
import inspect
from dataclasses import replace

import pytest

from agentcore.errors import QueueError
from agentcore.models import JobOptions, JobState, TaskQueueItem
from agentcore.queue import TaskQueue


async def wait_until(predicate, timeout: float = 3.0):
    """Poll ``predicate`` (sync or async) until it is truthy."""
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        value = predicate()
        if inspect.isawaitable(value):
            value = await value
        if value:
            return
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def item(name: str = "t", **payload) -> TaskQueueItem:
    return TaskQueueItem(type="agent", payload={"name": name, **payload})


class TestTaskQueueProducer:
    """Tests for adding jobs."""

    async def test_explicit_priority_overrides_item_priority(self, task_queue):
        """An explicit priority wins over the item's, including zero."""
        prioritised = TaskQueueItem(type="agent", payload={"name": "p"}, priority=7)

        zero = await task_queue.add_task(prioritised, priority=0)
        inherited = await task_queue.add_task(
            TaskQueueItem(type="agent", payload={"name": "q"}, priority=7)
        )

        assert zero.priority == 0
        assert (await task_queue.get_job(zero.id)).priority == 0
        assert inherited.priority == 7

    async def test_add_task_creates_waiting_job(self, task_queue):
        """New jobs wait and round-trip through Redis."""
        queued = item("first", value=1)
        job = await task_queue.add_task(queued)

        assert job.state == JobState.WAITING
        assert job.name == "agent"
        assert job.max_attempts == 3

        stored = await task_queue.get_job(job.id)
        assert stored.item == queued
        assert stored.state == JobState.WAITING
        assert (await task_queue.get_stats()).waiting == 1

    async def test_add_task_with_existing_job_id_is_idempotent(self, task_queue):
        """Re-adding a known job id returns the existing job."""
        first = await task_queue.add_task(item("a"), job_id="job-1")
        second = await task_queue.add_task(item("b"), job_id="job-1")

        assert second.id == first.id == "job-1"
        assert second.item.payload["name"] == "a"
        assert (await task_queue.get_stats()).waiting == 1

    async def test_delayed_task(self, task_queue):
        """Delayed jobs are parked until due."""
        job = await task_queue.add_task(item(), delay=60000)

        assert job.state == JobState.DELAYED
        stats = await task_queue.get_stats()
        assert stats.delayed == 1
        assert stats.waiting == 0

    async def test_get_missing_job(self, task_queue):
        """Unknown ids return None."""
        assert await task_queue.get_job("missing") is None

    async def test_not_connected_raises(self):
        """Using a queue before connect() raises QueueError."""
        queue = TaskQueue("offline")
        with pytest.raises(QueueError):
            await queue.add_task(item())

    def test_empty_name_rejected(self):
        """Queue names must be non-empty."""
        with pytest.raises(QueueError):
            TaskQueue("")


class TestTaskQueueWorker:
    """Tests for job processing."""

    async def test_processes_job_and_notifies(self, task_queue):
        """Handler results complete the job and reach completed listeners."""
        completed = []
        task_queue.on("completed", lambda job, value: completed.append((job.id, value)))

        async def handler(job):
            return {"echo": job.item.payload["name"]}

        job = await task_queue.add_task(item("hello"))
        task_queue.on_process(handler)

        await wait_until(lambda: completed)
        assert completed == [(job.id, {"echo": "hello"})]

        stored = await task_queue.get_job(job.id)
        assert stored.state == JobState.COMPLETED
        assert stored.return_value == {"echo": "hello"}
        assert stored.attempts_made == 1
        assert stored.finished_at is not None

        stats = await task_queue.get_stats()
        assert stats.completed == 1
        assert stats.active == 0

    async def test_second_handler_rejected(self, task_queue):
        """Only one handler may be registered."""

        async def handler(job):
            return None

        task_queue.on_process(handler)
        with pytest.raises(QueueError):
            task_queue.on_process(handler)

    async def test_unknown_event_rejected(self, task_queue):
        """Only completed and failed can be listened to."""
        with pytest.raises(QueueError):
            task_queue.on("progress", lambda job, value: None)

    async def test_failed_job_is_retried(self, task_queue):
        """Failures retry after backoff until the handler succeeds."""
        attempts = []

        async def handler(job):
            attempts.append(job.attempts_made)
            if len(attempts) < 3:
                raise RuntimeError("transient")
            return "ok"

        job = await task_queue.add_task(item())
        task_queue.on_process(handler)

        async def is_completed():
            stored = await task_queue.get_job(job.id)
            return stored.state == JobState.COMPLETED

        await wait_until(is_completed)
        assert attempts == [1, 2, 3]

    async def test_job_fails_after_attempts_exhausted(self, task_queue):
        """A job failing every attempt ends failed with its reason."""
        failures = []

        async def on_failed(job, error):
            failures.append((job.id, str(error)))

        task_queue.on("failed", on_failed)

        async def handler(job):
            raise ValueError("always broken")

        job = await task_queue.add_task(item())
        task_queue.on_process(handler)

        await wait_until(lambda: failures)
        assert failures == [(job.id, "always broken")]

        stored = await task_queue.get_job(job.id)
        assert stored.state == JobState.FAILED
        assert stored.attempts_made == 3
        assert stored.failed_reason == "always broken"
        assert (await task_queue.get_stats()).failed == 1

    async def test_listener_errors_are_contained(self, task_queue):
        """A raising listener does not stop other listeners or the worker."""
        seen = []

        def bad_listener(job, value):
            raise RuntimeError("listener bug")

        task_queue.on("completed", bad_listener)
        task_queue.on("completed", lambda job, value: seen.append(job.id))

        async def handler(job):
            return None

        first = await task_queue.add_task(item("1"))
        second = await task_queue.add_task(item("2"))
        task_queue.on_process(handler)

        await wait_until(lambda: len(seen) == 2)
        assert set(seen) == {first.id, second.id}

    async def test_priority_order(self, redis_client, queue_config):
        """Unprioritised jobs first, then lower priority numbers."""
        queue = TaskQueue("prio", replace(queue_config, concurrency=1), redis_client=redis_client)
        order = []

        async def handler(job):
            order.append(job.item.payload["name"])

        try:
            await queue.add_task(item("p5"), priority=5)
            await queue.add_task(item("plain"))
            await queue.add_task(item("p1"), priority=1)
            await queue.add_task(item("p1-later"), priority=1)
            queue.on_process(handler)

            await wait_until(lambda: len(order) == 4)
            assert order == ["plain", "p1", "p1-later", "p5"]
        finally:
            await queue.close()

    async def test_stalled_jobs_recovered_on_worker_start(self, redis_client, queue_config):
        """Jobs left active by a dead worker are processed again."""
        crashed = TaskQueue("stall", queue_config, redis_client=redis_client)
        job = await crashed.add_task(item("orphan"))
        assert await crashed._claim_next() == job.id
        assert (await crashed.get_stats()).active == 1

        revived = TaskQueue("stall", queue_config, redis_client=redis_client)
        processed = []

        async def handler(job):
            processed.append(job.id)

        try:
            revived.on_process(handler)
            await wait_until(lambda: processed)
            assert processed == [job.id]
        finally:
            await revived.close()


class TestTaskQueueAdmin:
    """Tests for pause/resume, retention and cleanup."""

    async def test_pause_and_resume(self, task_queue):
        """Paused queues accept jobs but do not process them."""
        processed = []

        async def handler(job):
            processed.append(job.id)

        await task_queue.pause()
        assert await task_queue.is_paused() is True

        job = await task_queue.add_task(item())
        task_queue.on_process(handler)
        await asyncio.sleep(0.1)
        assert processed == []

        await task_queue.resume()
        assert await task_queue.is_paused() is False
        await wait_until(lambda: processed)
        assert processed == [job.id]

    async def test_remove_on_complete_true_drops_job(self, redis_client, queue_config):
        """remove_on_complete=True deletes jobs as they finish."""
        config = replace(
            queue_config,
            default_job_options=replace(queue_config.default_job_options, remove_on_complete=True),
        )
        queue = TaskQueue("retention", config, redis_client=redis_client)
        completed = []
        queue.on("completed", lambda job, value: completed.append(job.id))

        async def handler(job):
            return "done"

        try:
            job = await queue.add_task(item())
            queue.on_process(handler)
            await wait_until(lambda: completed)

            assert await queue.get_job(job.id) is None
            assert (await queue.get_stats()).completed == 0
        finally:
            await queue.close()

    async def test_retention_keeps_newest(self, redis_client, queue_config):
        """An integer retention keeps only the newest finished jobs."""
        config = replace(
            queue_config,
            concurrency=1,
            default_job_options=JobOptions(attempts=1, remove_on_complete=2),
        )
        queue = TaskQueue("keep-two", config, redis_client=redis_client)
        completed = []
        queue.on("completed", lambda job, value: completed.append(job.id))

        async def handler(job):
            await asyncio.sleep(0.002)

        try:
            jobs = [await queue.add_task(item(str(i))) for i in range(4)]
            queue.on_process(handler)
            await wait_until(lambda: len(completed) == 4)

            assert (await queue.get_stats()).completed == 2
            assert await queue.get_job(jobs[0].id) is None
            assert await queue.get_job(jobs[3].id) is not None
        finally:
            await queue.close()

    async def test_clean_removes_finished_jobs(self, task_queue):
        """clean() removes finished jobs past the grace period."""
        completed = []
        task_queue.on("completed", lambda job, value: completed.append(job.id))

        async def handler(job):
            return None

        for i in range(3):
            await task_queue.add_task(item(str(i)))
        task_queue.on_process(handler)
        await wait_until(lambda: len(completed) == 3)
        await asyncio.sleep(0.01)

        removed = await task_queue.clean(0, 2)

        assert len(removed) == 2
        assert (await task_queue.get_stats()).completed == 1

    async def test_clean_rejects_other_states(self, task_queue):
        """Only completed or failed jobs can be cleaned."""
        with pytest.raises(QueueError):
            await task_queue.clean(0, 10, state="waiting")

    async def test_drain(self, task_queue):
        """drain() empties waiting jobs, and delayed ones on request."""
        waiting = await task_queue.add_task(item())
        await task_queue.add_task(item(), delay=60000)

        await task_queue.drain()
        stats = await task_queue.get_stats()
        assert stats.waiting == 0
        assert stats.delayed == 1
        assert await task_queue.get_job(waiting.id) is None

        await task_queue.drain(delayed=True)
        assert (await task_queue.get_stats()).delayed == 0

    async def test_close_is_idempotent(self, task_queue):
        """close() can be called repeatedly."""

        async def handler(job):
            return None

        task_queue.on_process(handler)
        await task_queue.close()
        await task_queue.close()

        with pytest.raises(QueueError):
            await task_queue.add_task(item())
