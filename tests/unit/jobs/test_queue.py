"""Tests for job queue functionality."""

import json
from unittest.mock import AsyncMock

import pytest

from tessera.jobs.queue import Job, JobQueue, JobStatus, QueueKeys


def _stored(job: Job) -> bytes:
    return json.dumps(job.to_dict()).encode()


class TestJob:
    """Tests for Job dataclass."""

    def test_job_creation(self) -> None:
        """Job can be created with minimal parameters."""
        job = Job(id="test-123", task="tenant.migrate", payload={"tenant": {"id": "t1"}})

        assert job.queue == "default"
        assert job.status == JobStatus.PENDING
        assert job.attempts == 0
        assert not job.retries_exhausted

    def test_job_from_dict(self) -> None:
        """Job deserializes from dictionary."""
        data = {
            "id": "test-123",
            "task": "tenant.seed",
            "payload": {"seeder": "app.seeders:run"},
            "queue": "provisioning",
            "status": "running",
            "created_at": "2026-01-01T00:00:00+00:00",
            "started_at": "2026-01-01T00:01:00+00:00",
            "finished_at": None,
            "result": None,
            "error": None,
            "attempts": 3,
            "max_retries": 3,
        }

        job = Job.from_dict(data)

        assert job.queue == "provisioning"
        assert job.status == JobStatus.RUNNING
        assert job.retries_exhausted

    def test_job_roundtrip(self) -> None:
        """Job survives serialization roundtrip."""
        original = Job(
            id="test-123",
            task="tenant.create_database",
            payload={"options": {}},
            queue="provisioning",
            status=JobStatus.COMPLETED,
            result={"succeeded": True},
        )

        restored = Job.from_dict(original.to_dict())

        assert restored == original


class TestQueueKeys:
    def test_named_queue_keys(self) -> None:
        keys = QueueKeys.for_queue("provisioning")

        assert keys.pending == "tessera:jobs:provisioning:pending"
        assert keys.processing == "tessera:jobs:provisioning:processing"
        assert keys.dlq == "tessera:jobs:provisioning:dlq"


class TestJobQueue:
    """Tests for JobQueue class."""

    @pytest.fixture
    def mock_redis(self) -> AsyncMock:
        """Create mock Redis client."""
        mock = AsyncMock()
        mock.set = AsyncMock(return_value=True)
        mock.get = AsyncMock(return_value=None)
        mock.lpush = AsyncMock(return_value=1)
        mock.lrem = AsyncMock(return_value=1)
        mock.brpoplpush = AsyncMock(return_value=None)
        return mock

    @pytest.fixture
    def queue(self, mock_redis: AsyncMock) -> JobQueue:
        """Create JobQueue with mocked Redis."""
        return JobQueue(max_retries=4, redis=mock_redis)

    @pytest.mark.asyncio
    async def test_submit_job(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        """Submitting a job stores it and adds it to the named queue."""
        job_id = await queue.submit("tenant.migrate", {"tenant": {}}, queue="provisioning")

        stored = json.loads(mock_redis.set.call_args.args[1])
        assert stored["id"] == job_id
        assert stored["queue"] == "provisioning"
        assert stored["max_retries"] == 4
        mock_redis.lpush.assert_awaited_once_with(
            "tessera:jobs:provisioning:pending", job_id
        )

    @pytest.mark.asyncio
    async def test_submit_overrides_max_retries(
        self, queue: JobQueue, mock_redis: AsyncMock
    ) -> None:
        await queue.submit("tenant.migrate", {}, max_retries=1)

        assert json.loads(mock_redis.set.call_args.args[1])["max_retries"] == 1

    @pytest.mark.asyncio
    async def test_get_job_not_found(self, queue: JobQueue) -> None:
        """Getting non-existent job returns None."""
        assert await queue.get_job("nonexistent") is None

    @pytest.mark.asyncio
    async def test_claim_jobs(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        """Claimed jobs move to processing and count an attempt."""
        mock_redis.brpoplpush.side_effect = [b"test-123", None]
        mock_redis.get.return_value = _stored(
            Job(id="test-123", task="tenant.migrate", payload={}, queue="provisioning")
        )

        jobs = [job async for job in queue.claim_jobs(queue="provisioning", batch_size=2)]

        assert [job.id for job in jobs] == ["test-123"]
        assert jobs[0].status == JobStatus.RUNNING
        assert jobs[0].attempts == 1
        mock_redis.brpoplpush.assert_any_await(
            "tessera:jobs:provisioning:pending",
            "tessera:jobs:provisioning:processing",
            timeout=0,
        )

    @pytest.mark.asyncio
    async def test_claim_expired_job(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        """A claimed ID without job data is dropped from processing."""
        mock_redis.brpoplpush.side_effect = [b"gone", None]

        jobs = [job async for job in queue.claim_jobs(batch_size=2)]

        assert jobs == []
        mock_redis.lrem.assert_awaited_once_with("tessera:jobs:default:processing", 1, "gone")

    @pytest.mark.asyncio
    async def test_complete_job(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        """Completing a job updates status and removes it from processing."""
        mock_redis.get.return_value = _stored(
            Job(id="test-123", task="tenant.migrate", payload={}, status=JobStatus.RUNNING)
        )

        await queue.complete_job("test-123", {"succeeded": True})

        stored = json.loads(mock_redis.set.call_args.args[1])
        assert stored["status"] == "completed"
        assert stored["result"] == {"succeeded": True}
        mock_redis.lrem.assert_awaited_once_with("tessera:jobs:default:processing", 1, "test-123")

    @pytest.mark.asyncio
    async def test_fail_job_with_retry(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        """Failed job with retries remaining is re-queued."""
        mock_redis.get.return_value = _stored(
            Job(
                id="test-123",
                task="tenant.migrate",
                payload={},
                queue="provisioning",
                status=JobStatus.RUNNING,
                attempts=1,
                max_retries=3,
            )
        )

        status = await queue.fail_job("test-123", "Something went wrong", retry=True)

        assert status == JobStatus.PENDING
        mock_redis.lpush.assert_awaited_once_with("tessera:jobs:provisioning:pending", "test-123")

    @pytest.mark.asyncio
    async def test_fail_job_to_dlq(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        """Failed job at max retries moves to DLQ."""
        mock_redis.get.return_value = _stored(
            Job(
                id="test-123",
                task="tenant.migrate",
                payload={},
                status=JobStatus.RUNNING,
                attempts=3,
                max_retries=3,
            )
        )

        status = await queue.fail_job("test-123", "Final failure", retry=True)

        assert status == JobStatus.DEAD
        mock_redis.lpush.assert_awaited_once_with("tessera:jobs:default:dlq", "test-123")

    @pytest.mark.asyncio
    async def test_fail_job_without_retry(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        mock_redis.get.return_value = _stored(
            Job(id="test-123", task="unknown", payload={}, attempts=1)
        )

        assert await queue.fail_job("test-123", "Unknown task", retry=False) == JobStatus.DEAD

    @pytest.mark.asyncio
    async def test_fail_missing_job(self, queue: JobQueue) -> None:
        assert await queue.fail_job("nonexistent", "error") is None

