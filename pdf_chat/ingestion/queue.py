# pdf_chat/ingestion/queue.py

"""
Durable ingestion job queue.

Delivery is at-least-once: a reserved job sits in an "active" list
until it is acknowledged, and anything left there by a crashed worker
is put back on the wait list by `recover_stalled()`.

Redis layout for a queue named N:
    queue:N:wait     list of encoded JobRecords ready to run
    queue:N:active   list of records currently reserved by a worker
    queue:N:delayed  sorted set of records waiting out their backoff
    queue:N:failed   dead-letter list

Each move between these keys is one MULTI/EXEC transaction or one Lua
script, so a dropped connection leaves a record where it was.

InMemoryJobQueue mirrors the same semantics for tests and local runs.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Tuple

import redis.asyncio as redis_asyncio

from pdf_chat.config import INGESTION_QUEUE_NAME, REDIS_URL
from pdf_chat.ingestion.jobs import JobRecord, QueuePolicy

logger = logging.getLogger(__name__)

# KEYS[1] delayed zset, KEYS[2] wait list, ARGV[1] now
PROMOTE_DUE_SCRIPT = """
local due = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1])
for _, raw in ipairs(due) do
    redis.call('ZREM', KEYS[1], raw)
    redis.call('RPUSH', KEYS[2], raw)
end
return #due
"""


class RedisJobQueue:
    """Redis-backed job queue shared by the API (producer) and worker (consumer)."""

    def __init__(
        self,
        url: str = REDIS_URL,
        name: str = INGESTION_QUEUE_NAME,
        policy: Optional[QueuePolicy] = None,
        client: Optional[redis_asyncio.Redis] = None,
    ):
        self._name = name
        self._policy = policy or QueuePolicy()
        self._client = client or redis_asyncio.Redis.from_url(url)
        self._wait_key = f"queue:{name}:wait"
        self._active_key = f"queue:{name}:active"
        self._delayed_key = f"queue:{name}:delayed"
        self._failed_key = f"queue:{name}:failed"
        # raw payloads of reserved records, needed to remove them from the active list
        self._reserved: Dict[str, bytes] = {}
        self._promote_due = self._client.register_script(PROMOTE_DUE_SCRIPT)

    @property
    def name(self) -> str:
        return self._name

    async def add(self, name: str, data: Dict[str, Any]) -> JobRecord:

        record = JobRecord(name=name, data=data)

        await self._client.rpush(self._wait_key, record.encode())

        logger.info(
            "Job enqueued",
            extra={"queue": self._name, "job_id": record.id, "job_name": name},
        )

        return record

    async def reserve(self, timeout: float = 1.0) -> Optional[JobRecord]:
        """Block up to `timeout` seconds for the next runnable job."""

        await self._promote_delayed()

        raw = await self._client.blmove(
            self._wait_key,
            self._active_key,
            max(timeout, 0.01),
            "LEFT",
            "RIGHT",
        )

        if raw is None:
            return None

        try:
            record = JobRecord.decode(raw)
        except ValueError:
            logger.error(
                "Dropping undecodable job",
                extra={"queue": self._name},
                exc_info=True,
            )
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.lrem(self._active_key, 1, raw)
                pipe.rpush(self._failed_key, raw)
                await pipe.execute()
            return None

        self._reserved[record.id] = raw

        return record

    async def ack(self, record: JobRecord):

        raw = self._reserved.pop(record.id, None)

        if raw is not None:
            await self._client.lrem(self._active_key, 1, raw)

    async def fail(self, record: JobRecord, error: str) -> bool:
        """
        Record a failed attempt.

        Returns True if the job will be retried, False if it was
        dead-lettered.
        """

        failed = record.model_copy(
            update={"attempts": record.attempts + 1, "last_error": error}
        )

        retry = failed.attempts < self._policy.max_attempts

        raw = self._reserved.get(record.id)

        async with self._client.pipeline(transaction=True) as pipe:

            if raw is not None:
                pipe.lrem(self._active_key, 1, raw)

            if retry:
                ready_at = time.time() + self._policy.backoff_for(failed.attempts)
                pipe.zadd(self._delayed_key, {failed.encode(): ready_at})
            else:
                pipe.rpush(self._failed_key, failed.encode())

            await pipe.execute()

        # kept until the move commits so a failed report can be retried
        self._reserved.pop(record.id, None)

        return retry

    async def recover_stalled(self) -> int:
        """
        Move every active record back to the wait list.

        Only safe while no other worker holds reservations on this queue,
        i.e. at worker startup.
        """

        moved = 0

        while await self._client.lmove(
            self._active_key, self._wait_key, "RIGHT", "LEFT"
        ) is not None:
            moved += 1

        if moved:
            logger.warning(
                "Recovered stalled jobs",
                extra={"queue": self._name, "jobs": moved},
            )

        return moved

    async def counts(self) -> Dict[str, int]:

        return {
            "waiting": await self._client.llen(self._wait_key),
            "active": await self._client.llen(self._active_key),
            "delayed": await self._client.zcard(self._delayed_key),
            "failed": await self._client.llen(self._failed_key),
        }

    async def close(self):

        await self._client.aclose()

    async def _promote_delayed(self):

        await self._promote_due(
            keys=[self._delayed_key, self._wait_key],
            args=[time.time()],
        )


class InMemoryJobQueue:
    """Process-local queue with the same contract as RedisJobQueue."""

    def __init__(
        self,
        name: str = INGESTION_QUEUE_NAME,
        policy: Optional[QueuePolicy] = None,
    ):
        self._name = name
        self._policy = policy or QueuePolicy()
        self._wait: Deque[JobRecord] = deque()
        self._ready = asyncio.Event()
        self._active: Dict[str, JobRecord] = {}
        self._delayed: List[Tuple[float, JobRecord]] = []
        self.failed: List[JobRecord] = []

    @property
    def name(self) -> str:
        return self._name

    async def add(self, name: str, data: Dict[str, Any]) -> JobRecord:

        record = JobRecord(name=name, data=data)

        self._push(record)

        return record

    async def reserve(self, timeout: float = 1.0) -> Optional[JobRecord]:

        deadline = time.monotonic() + timeout

        while True:

            self._promote_delayed()

            if self._wait:
                record = self._wait.popleft()
                self._active[record.id] = record
                return record

            remaining = deadline - time.monotonic()

            if remaining <= 0:
                return None

            self._ready.clear()

            try:
                await asyncio.wait_for(self._ready.wait(), min(remaining, 0.05))
            except asyncio.TimeoutError:
                pass

    async def ack(self, record: JobRecord):

        self._active.pop(record.id, None)

    async def fail(self, record: JobRecord, error: str) -> bool:

        self._active.pop(record.id, None)

        failed = record.model_copy(
            update={"attempts": record.attempts + 1, "last_error": error}
        )

        if failed.attempts < self._policy.max_attempts:
            ready_at = time.monotonic() + self._policy.backoff_for(failed.attempts)
            self._delayed.append((ready_at, failed))
            return True

        self.failed.append(failed)

        return False

    async def recover_stalled(self) -> int:

        stalled = list(self._active.values())

        self._active.clear()

        for record in reversed(stalled):
            self._wait.appendleft(record)

        if stalled:
            self._ready.set()

        return len(stalled)

    async def counts(self) -> Dict[str, int]:

        return {
            "waiting": len(self._wait),
            "active": len(self._active),
            "delayed": len(self._delayed),
            "failed": len(self.failed),
        }

    async def close(self):
        return None

    def _push(self, record: JobRecord):

        self._wait.append(record)
        self._ready.set()

    def _promote_delayed(self):

        now = time.monotonic()

        due = [entry for entry in self._delayed if entry[0] <= now]

        if not due:
            return

        self._delayed = [entry for entry in self._delayed if entry[0] > now]

        for _, record in sorted(due, key=lambda entry: entry[0]):
            self._push(record)
