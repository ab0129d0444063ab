"""TaskQueue: durable at-least-once job queue on Redis.

Key layout under ``agentcore:queue:<name>:``

- ``job:<id>``   hash with the job record
- ``wait``       zset of runnable job ids, scored by priority then insertion
- ``active``     set of job ids claimed by a worker
- ``delayed``    zset of job ids scored by due time (epoch ms)
- ``completed``  zset of finished job ids scored by finish time
- ``failed``     zset of failed job ids scored by finish time
- ``meta``       hash holding the paused flag
"""

import asyncio
import inspect
import json
import time
from typing import Any, Awaitable, Callable, Literal

import redis.asyncio as redis

from ..errors import QueueError
from ..logging_config import get_logger
from ..models import Job, JobState, QueueStats, TaskQueueConfig, TaskQueueItem

logger = get_logger(__name__)

JobHandler = Callable[[Job], Awaitable[Any]]
JobListener = Callable[[Job, Any], Any]
QueueEventName = Literal["completed", "failed"]

# Unprioritised jobs score below any prioritised one
_PRIORITY_SHIFT = 10**12


def _now_ms() -> int:
    return int(time.time() * 1000)


class TaskQueue:
    """Named Redis queue with a single in-process worker."""

    KEY_PREFIX = "agentcore:queue:"

    def __init__(
        self,
        name: str,
        config: TaskQueueConfig | None = None,
        redis_client: redis.Redis | None = None,
    ):
        if not name:
            raise QueueError("Queue name must not be empty")
        self.name = name
        self._config = config or TaskQueueConfig()
        self._client = redis_client
        self._owns_client = redis_client is None

        self._handler: JobHandler | None = None
        self._listeners: dict[str, list[JobListener]] = {"completed": [], "failed": []}
        self._worker_task: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()
        self._closing = False
        self._closed = False

    @property
    def config(self) -> TaskQueueConfig:
        return self._config

    async def connect(self) -> None:
        """Open the Redis connection when none was injected."""
        if self._client is not None:
            return
        conn = self._config.redis
        self._client = redis.Redis(
            host=conn.host,
            port=conn.port,
            password=conn.password,
            db=conn.db,
            decode_responses=True,
        )
        await self._client.ping()
        logger.info("Task queue %s connected to %s:%d", self.name, conn.host, conn.port)

    def _redis(self) -> redis.Redis:
        if self._client is None:
            raise QueueError("Task queue not connected")
        if self._closed:
            raise QueueError("Task queue is closed")
        return self._client

    def _key(self, suffix: str) -> str:
        return f"{self.KEY_PREFIX}{self.name}:{suffix}"

    def _job_key(self, job_id: str) -> str:
        return self._key(f"job:{job_id}")

    # Producer

    async def add_task(
        self,
        item: TaskQueueItem,
        priority: int | None = None,
        delay: int | None = None,
        job_id: str | None = None,
    ) -> Job:
        """Enqueue ``item``. ``delay`` is in milliseconds.

        Adding with the ``job_id`` of an existing job returns that job unchanged.
        """
        client = self._redis()
        if job_id is not None:
            existing = await self.get_job(job_id)
            if existing is not None:
                return existing
        else:
            job_id = str(await client.incr(self._key("id")))

        now = _now_ms()
        options = self._config.default_job_options
        job = Job(
            id=job_id,
            name=item.type,
            item=item,
            state=JobState.DELAYED if delay else JobState.WAITING,
            priority=priority if priority is not None else (item.priority or 0),
            attempts_made=0,
            max_attempts=max(options.attempts, 1),
            created_at=now,
        )

        score = await self._wait_score(job.priority)
        async with client.pipeline(transaction=True) as pipe:
            pipe.hset(self._job_key(job_id), mapping=self._serialize(job))
            if delay:
                pipe.zadd(self._key("delayed"), {job_id: now + delay})
            else:
                pipe.zadd(self._key("wait"), {job_id: score})
            await pipe.execute()

        logger.debug("Job %s added to %s (%s)", job_id, self.name, item.type)
        return job

    async def _wait_score(self, priority: int) -> int:
        seq = await self._redis().incr(self._key("seq"))
        return priority * _PRIORITY_SHIFT + seq

    # Consumer

    def on_process(self, handler: JobHandler) -> None:
        """Register the job handler and start the worker loop."""
        if self._handler is not None:
            raise QueueError("Worker already configured")
        self._redis()
        self._handler = handler
        self._worker_task = asyncio.get_running_loop().create_task(self._run_worker())

    def on(self, event: QueueEventName, callback: JobListener) -> None:
        """Listen for ``completed`` (job, return value) or ``failed`` (job, error)."""
        if event not in self._listeners:
            raise QueueError(f"Unknown queue event: {event}")
        self._listeners[event].append(callback)

    async def _run_worker(self) -> None:
        poll = self._config.poll_interval
        semaphore = asyncio.Semaphore(max(self._config.concurrency, 1))
        await self.recover_stalled()
        logger.info(
            "Worker started for %s (concurrency=%d)", self.name, self._config.concurrency
        )

        while not self._closing:
            try:
                if await self.is_paused():
                    await asyncio.sleep(poll)
                    continue
                await self._promote_delayed()

                await semaphore.acquire()
                if self._closing:
                    semaphore.release()
                    break
                try:
                    job_id = await self._claim_next()
                except Exception:
                    semaphore.release()
                    raise
                if job_id is None:
                    semaphore.release()
                    await asyncio.sleep(poll)
                    continue

                task = asyncio.create_task(self._process(job_id))
                self._in_flight.add(task)

                def _done(t: asyncio.Task) -> None:
                    self._in_flight.discard(t)
                    semaphore.release()

                task.add_done_callback(_done)
            except Exception:
                logger.exception("Worker error on %s", self.name)
                await asyncio.sleep(poll)

        logger.info("Worker stopped for %s", self.name)

    async def recover_stalled(self) -> int:
        """Move jobs left active by a dead worker back to waiting."""
        client = self._redis()
        job_ids = await client.smembers(self._key("active"))
        for job_id in job_ids:
            priority = await client.hget(self._job_key(job_id), "priority")
            score = await self._wait_score(int(priority or 0))
            async with client.pipeline(transaction=True) as pipe:
                pipe.srem(self._key("active"), job_id)
                pipe.hset(self._job_key(job_id), "state", JobState.WAITING.value)
                pipe.zadd(self._key("wait"), {job_id: score})
                await pipe.execute()
        if job_ids:
            logger.warning("Recovered %d stalled jobs on %s", len(job_ids), self.name)
        return len(job_ids)

    async def _promote_delayed(self) -> None:
        client = self._redis()
        due = await client.zrangebyscore(self._key("delayed"), 0, _now_ms())
        for job_id in due:
            if not await client.zrem(self._key("delayed"), job_id):
                continue
            priority = await client.hget(self._job_key(job_id), "priority")
            score = await self._wait_score(int(priority or 0))
            async with client.pipeline(transaction=True) as pipe:
                pipe.hset(self._job_key(job_id), "state", JobState.WAITING.value)
                pipe.zadd(self._key("wait"), {job_id: score})
                await pipe.execute()

    async def _claim_next(self) -> str | None:
        client = self._redis()
        popped = await client.zpopmin(self._key("wait"))
        if not popped:
            return None
        job_id = popped[0][0]
        async with client.pipeline(transaction=True) as pipe:
            pipe.sadd(self._key("active"), job_id)
            pipe.hset(
                self._job_key(job_id),
                mapping={"state": JobState.ACTIVE.value, "processed_at": _now_ms()},
            )
            await pipe.execute()
        return job_id

    async def _process(self, job_id: str) -> None:
        client = self._redis()
        job = await self.get_job(job_id)
        if job is None:
            await client.srem(self._key("active"), job_id)
            return

        job.attempts_made += 1
        await client.hset(self._job_key(job_id), "attempts_made", job.attempts_made)

        try:
            result = await self._handler(job)
        except Exception as e:
            await self._handle_failure(job, e)
        else:
            await self._handle_success(job, result)

    async def _handle_success(self, job: Job, result: Any) -> None:
        client = self._redis()
        now = _now_ms()
        job.state = JobState.COMPLETED
        job.finished_at = now
        job.return_value = result

        async with client.pipeline(transaction=True) as pipe:
            pipe.srem(self._key("active"), job.id)
            pipe.zadd(self._key("completed"), {job.id: now})
            pipe.hset(
                self._job_key(job.id),
                mapping={
                    "state": job.state.value,
                    "finished_at": now,
                    "return_value": json.dumps(result, default=str),
                },
            )
            await pipe.execute()
        await self._trim(self._key("completed"), self._config.default_job_options.remove_on_complete)

        logger.info("Job %s completed", job.id)
        await self._notify("completed", job, result)

    async def _handle_failure(self, job: Job, error: Exception) -> None:
        client = self._redis()
        now = _now_ms()
        options = self._config.default_job_options
        job.failed_reason = str(error) or type(error).__name__

        if job.attempts_made < job.max_attempts:
            delay = options.backoff.delay_for(job.attempts_made)
            job.state = JobState.DELAYED
            async with client.pipeline(transaction=True) as pipe:
                pipe.srem(self._key("active"), job.id)
                pipe.zadd(self._key("delayed"), {job.id: now + delay})
                pipe.hset(
                    self._job_key(job.id),
                    mapping={"state": job.state.value, "failed_reason": job.failed_reason},
                )
                await pipe.execute()
            logger.warning(
                "Job %s failed (attempt %d/%d), retrying in %dms: %s",
                job.id,
                job.attempts_made,
                job.max_attempts,
                delay,
                job.failed_reason,
            )
            return

        job.state = JobState.FAILED
        job.finished_at = now
        async with client.pipeline(transaction=True) as pipe:
            pipe.srem(self._key("active"), job.id)
            pipe.zadd(self._key("failed"), {job.id: now})
            pipe.hset(
                self._job_key(job.id),
                mapping={
                    "state": job.state.value,
                    "finished_at": now,
                    "failed_reason": job.failed_reason,
                },
            )
            await pipe.execute()
        await self._trim(self._key("failed"), options.remove_on_fail)

        logger.error("Job %s failed: %s", job.id, job.failed_reason)
        await self._notify("failed", job, error)

    async def _notify(self, event: str, job: Job, payload: Any) -> None:
        for callback in self._listeners[event]:
            try:
                result = callback(job, payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Queue %s listener failed for job %s", event, job.id)

    async def _trim(self, key: str, keep: bool | int) -> None:
        if keep is False:
            return
        client = self._redis()
        if keep is True:
            job_ids = await client.zrange(key, 0, -1)
        else:
            job_ids = await client.zrange(key, 0, -(int(keep) + 1))
        await self._remove(key, job_ids)

    async def _remove(self, key: str, job_ids: list[str]) -> None:
        if not job_ids:
            return
        async with self._redis().pipeline(transaction=True) as pipe:
            pipe.zrem(key, *job_ids)
            pipe.delete(*[self._job_key(job_id) for job_id in job_ids])
            await pipe.execute()

    # Admin

    async def get_job(self, job_id: str) -> Job | None:
        data = await self._redis().hgetall(self._job_key(job_id))
        if not data:
            return None
        return self._deserialize(data)

    async def get_stats(self) -> QueueStats:
        async with self._redis().pipeline(transaction=False) as pipe:
            pipe.zcard(self._key("wait"))
            pipe.scard(self._key("active"))
            pipe.zcard(self._key("completed"))
            pipe.zcard(self._key("failed"))
            pipe.zcard(self._key("delayed"))
            waiting, active, completed, failed, delayed = await pipe.execute()
        return QueueStats(
            waiting=waiting,
            active=active,
            completed=completed,
            failed=failed,
            delayed=delayed,
        )

    async def pause(self) -> None:
        await self._redis().hset(self._key("meta"), "paused", 1)
        logger.info("Queue %s paused", self.name)

    async def resume(self) -> None:
        await self._redis().hdel(self._key("meta"), "paused")
        logger.info("Queue %s resumed", self.name)

    async def is_paused(self) -> bool:
        return await self._redis().hget(self._key("meta"), "paused") == "1"

    async def clean(
        self,
        grace_ms: int,
        limit: int,
        state: Literal["completed", "failed"] = "completed",
    ) -> list[str]:
        """Remove up to ``limit`` jobs in ``state`` finished more than ``grace_ms`` ago."""
        if state not in ("completed", "failed"):
            raise QueueError(f"Cannot clean jobs in state {state!r}")
        key = self._key(state)
        cutoff = _now_ms() - grace_ms
        if limit > 0:
            job_ids = await self._redis().zrangebyscore(key, 0, cutoff, start=0, num=limit)
        else:
            job_ids = await self._redis().zrangebyscore(key, 0, cutoff)
        await self._remove(key, job_ids)
        return list(job_ids)

    async def drain(self, delayed: bool = False) -> None:
        """Remove all waiting jobs, and delayed ones too when ``delayed`` is set."""
        client = self._redis()
        keys = [self._key("wait")]
        if delayed:
            keys.append(self._key("delayed"))
        for key in keys:
            await self._remove(key, await client.zrange(key, 0, -1))

    async def close(self) -> None:
        """Stop the worker, wait for in-flight jobs, release the connection."""
        if self._closed or self._closing:
            return
        self._closing = True

        if self._worker_task is not None:
            await self._worker_task
            self._worker_task = None
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

        self._closed = True
        if self._owns_client and self._client is not None:
            await self._client.aclose()
        logger.info("Task queue %s closed", self.name)

    # Serialization

    @staticmethod
    def _serialize(job: Job) -> dict:
        return {
            "id": job.id,
            "name": job.name,
            "data": json.dumps(job.item.to_dict(), default=str),
            "state": job.state.value,
            "priority": job.priority,
            "attempts_made": job.attempts_made,
            "max_attempts": job.max_attempts,
            "created_at": job.created_at,
        }

    @staticmethod
    def _deserialize(data: dict) -> Job:
        def _opt_int(field: str) -> int | None:
            value = data.get(field)
            return int(value) if value else None

        return_value = data.get("return_value")
        return Job(
            id=data["id"],
            name=data["name"],
            item=TaskQueueItem.from_dict(json.loads(data["data"])),
            state=JobState(data["state"]),
            priority=int(data.get("priority") or 0),
            attempts_made=int(data.get("attempts_made") or 0),
            max_attempts=int(data.get("max_attempts") or 1),
            created_at=int(data["created_at"]),
            processed_at=_opt_int("processed_at"),
            finished_at=_opt_int("finished_at"),
            failed_reason=data.get("failed_reason") or None,
            return_value=json.loads(return_value) if return_value else None,
        )
