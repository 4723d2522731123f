"""Redis-backed job queue for queued provisioning steps.

Each named queue (provisioning.queue_name) owns three Redis lists:
- pending: job IDs waiting to be claimed
- processing: job IDs claimed by a worker and not yet settled
- dlq: job IDs that used up their retries

Job records live under their own key as JSON. Claiming moves an ID from
pending to processing with BRPOPLPUSH, so a crashed worker leaves the job in
processing rather than losing it (at-least-once delivery).

Example:
    queue = JobQueue(max_retries=config.provisioning.max_retries)
    job_id = await queue.submit(
        "tenant.migrate", {"tenant": tenant.to_dict()}, queue="provisioning"
    )

    async for job in queue.claim_jobs(queue="provisioning"):
        try:
            await queue.complete_job(job.id, await handle(job))
        except Exception as e:
            await queue.fail_job(job.id, str(e))
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, TypeVar, cast
from uuid import uuid4

from tessera.cache.redis import get_redis

if TYPE_CHECKING:
    from redis.asyncio import Redis

T = TypeVar("T")

logger = logging.getLogger(__name__)

JOB_PREFIX = "tessera:job:"
QUEUE_PREFIX = "tessera:jobs:"

DEFAULT_QUEUE = "default"
DEFAULT_MAX_RETRIES = 3
JOB_TTL = 86400 * 7  # unsettled and dead jobs
RESULT_TTL = 86400  # completed jobs


def _await_redis(result: Awaitable[T] | T) -> Awaitable[T]:
    """Cast redis-py async results to an awaitable for mypy."""
    return cast(Awaitable[T], result)


def _decode(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value


def _parse_time(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class QueueKeys:
    """Redis list keys of one named queue."""

    pending: str
    processing: str
    dlq: str

    @classmethod
    def for_queue(cls, queue: str) -> QueueKeys:
        base = f"{QUEUE_PREFIX}{queue}"
        return cls(pending=f"{base}:pending", processing=f"{base}:processing", dlq=f"{base}:dlq")


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    DEAD = "dead"  # in the DLQ, retries used up


@dataclass
class Job:
    """A queued provisioning step and its delivery state."""

    id: str
    task: str
    payload: dict[str, Any]
    queue: str = DEFAULT_QUEUE
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    finished_at: datetime | None = None
    result: dict[str, Any] | None = None
    error: str | None = None

    @property
    def retries_exhausted(self) -> bool:
        return self.attempts >= self.max_retries

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task": self.task,
            "payload": self.payload,
            "queue": self.queue,
            "status": self.status.value,
            "attempts": self.attempts,
            "max_retries": self.max_retries,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "result": self.result,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Job:
        return cls(
            id=data["id"],
            task=data["task"],
            payload=data.get("payload") or {},
            queue=data.get("queue", DEFAULT_QUEUE),
            status=JobStatus(data["status"]),
            attempts=data.get("attempts", 0),
            max_retries=data.get("max_retries", DEFAULT_MAX_RETRIES),
            created_at=datetime.fromisoformat(data["created_at"]),
            started_at=_parse_time(data.get("started_at")),
            finished_at=_parse_time(data.get("finished_at")),
            result=data.get("result"),
            error=data.get("error"),
        )


class JobQueue:
    """Named Redis queues with retries and a dead letter list.

    Args:
        max_retries: Attempts allowed per job unless submit() overrides it
        redis: Redis client; the shared client from tessera.cache.redis when
            omitted
    """

    def __init__(self, max_retries: int = DEFAULT_MAX_RETRIES, redis: Redis | None = None) -> None:
        self.max_retries = max_retries
        self._redis: Redis | None = redis

    async def initialize(self) -> None:
        if self._redis is None:
            self._redis = await get_redis()
        logger.info("Job queue initialized")

    async def _client(self) -> Redis:
        if self._redis is None:
            await self.initialize()
        return self._redis  # type: ignore[return-value]

    async def _save(self, redis: Redis, job: Job, ttl: int = JOB_TTL) -> None:
        await _await_redis(redis.set(f"{JOB_PREFIX}{job.id}", json.dumps(job.to_dict()), ex=ttl))

    async def submit(
        self,
        task: str,
        payload: dict[str, Any] | None = None,
        queue: str = DEFAULT_QUEUE,
        max_retries: int | None = None,
    ) -> str:
        """Store a job and append it to the pending list of queue.

        Returns:
            The new job ID
        """
        redis = await self._client()
        job = Job(
            id=str(uuid4()),
            task=task,
            payload=payload or {},
            queue=queue,
            max_retries=self.max_retries if max_retries is None else max_retries,
        )
        await self._save(redis, job)
        await _await_redis(redis.lpush(QueueKeys.for_queue(queue).pending, job.id))

        logger.info("Job submitted: %s (%s on %s)", job.id, task, queue)
        return job.id

    async def get_job(self, job_id: str) -> Job | None:
        redis = await self._client()
        data = await redis.get(f"{JOB_PREFIX}{job_id}")
        return None if data is None else Job.from_dict(json.loads(data))

    async def claim_jobs(
        self,
        queue: str = DEFAULT_QUEUE,
        batch_size: int = 1,
        timeout: int | None = None,
    ) -> AsyncIterator[Job]:
        """Claim up to batch_size jobs, oldest first.

        Each claim blocks for at most timeout seconds (forever when None) and
        counts as one attempt. IDs whose record has expired are dropped.
        """
        redis = await self._client()
        keys = QueueKeys.for_queue(queue)

        for _ in range(batch_size):
            claimed = cast(
                bytes | str | None,
                await _await_redis(
                    redis.brpoplpush(keys.pending, keys.processing, timeout=timeout or 0)
                ),
            )
            if claimed is None:
                break

            job_id = _decode(claimed)
            job = await self.get_job(job_id)
            if job is None:
                await _await_redis(redis.lrem(keys.processing, 1, job_id))
                continue

            job.status = JobStatus.RUNNING
            job.started_at = datetime.now(timezone.utc)
            job.attempts += 1
            await self._save(redis, job)

            logger.info("Job claimed: %s (attempt %d/%d)", job.id, job.attempts, job.max_retries)
            yield job

    async def complete_job(self, job_id: str, result: dict[str, Any] | None = None) -> None:
        redis = await self._client()
        job = await self.get_job(job_id)
        if job is None:
            logger.warning("Job not found for completion: %s", job_id)
            return

        job.status = JobStatus.COMPLETED
        job.finished_at = datetime.now(timezone.utc)
        job.result = result
        await self._save(redis, job, RESULT_TTL)
        await _await_redis(redis.lrem(QueueKeys.for_queue(job.queue).processing, 1, job_id))

        logger.info("Job completed: %s", job_id)

    async def fail_job(self, job_id: str, error: str, retry: bool = True) -> JobStatus | None:
        """Settle a failed attempt.

        The job goes back to pending while it has attempts left (and retry is
        set), otherwise to the dead letter list.

        Returns:
            PENDING when re-queued, DEAD when dead-lettered, None if the job
            record no longer exists
        """
        redis = await self._client()
        job = await self.get_job(job_id)
        if job is None:
            logger.warning("Job not found for failure: %s", job_id)
            return None

        keys = QueueKeys.for_queue(job.queue)
        job.error = error
        await _await_redis(redis.lrem(keys.processing, 1, job_id))

        if retry and not job.retries_exhausted:
            job.status = JobStatus.PENDING
            await self._save(redis, job)
            await _await_redis(redis.lpush(keys.pending, job_id))
            logger.info(
                "Job queued for retry: %s (attempt %d/%d)", job_id, job.attempts, job.max_retries
            )
        else:
            job.status = JobStatus.DEAD
            job.finished_at = datetime.now(timezone.utc)
            await self._save(redis, job)
            await _await_redis(redis.lpush(keys.dlq, job_id))
            logger.warning("Job moved to DLQ: %s (%s)", job_id, error)

        return job.status
