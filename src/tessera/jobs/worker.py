"""Worker process for queued provisioning jobs.

The worker claims jobs from one named queue and runs the handler registered
for each job's task. Every job runs in its own asyncio task, so the tenancy
context a handler sets up never leaks into another job. After each job:
- success: the job is completed with the handler's result
- failure: the job is re-queued, or dead-lettered once its attempts are used
  up, in which case the task's failure hook gets the last error
- always: cleanup hooks run (ending tenancy, for one)

Example:
    worker = JobWorker(queue, WorkerConfig(queue="provisioning"))
    register_provisioning_handlers(worker, machine)
    await worker.run()  # until SIGTERM/SIGINT
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from tessera.jobs.queue import DEFAULT_QUEUE, Job, JobQueue, JobStatus
from tessera.observability.logging import job_id_var

logger = logging.getLogger(__name__)

JobHandler = Callable[[Job], Awaitable[dict[str, Any] | None]]
FailureHandler = Callable[[Job, BaseException], Awaitable[None]]
CleanupHook = Callable[[], Awaitable[None]]


@dataclass
class WorkerConfig:
    name: str = "default"
    queue: str = DEFAULT_QUEUE
    batch_size: int = 1
    poll_interval: float = 1.0  # seconds between claim rounds
    claim_timeout: int = 5  # seconds a claim blocks


class JobWorker:
    """Claims jobs from one queue and dispatches them by task name."""

    def __init__(self, queue: JobQueue | None = None, config: WorkerConfig | None = None) -> None:
        self.queue = queue or JobQueue()
        self.config = config or WorkerConfig()
        self._handlers: dict[str, JobHandler] = {}
        self._failure_handlers: dict[str, FailureHandler] = {}
        self._cleanups: list[CleanupHook] = []
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._tasks: set[asyncio.Task[None]] = set()

    def register_handler(
        self,
        task: str,
        handler: JobHandler,
        on_failure: FailureHandler | None = None,
    ) -> None:
        """Route jobs of task to handler.

        on_failure is awaited with the job and its last error once the job is
        dead-lettered.
        """
        self._handlers[task] = handler
        if on_failure is not None:
            self._failure_handlers[task] = on_failure
        logger.debug("Registered handler for task: %s", task)

    def add_cleanup(self, hook: CleanupHook) -> None:
        self._cleanups.append(hook)

    async def start(self) -> None:
        await self.queue.initialize()
        self._running = True
        self._shutdown_event.clear()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._request_shutdown)

        logger.info("Worker %s started on queue %s", self.config.name, self.config.queue)

    def _request_shutdown(self) -> None:
        logger.info("Worker %s received shutdown signal", self.config.name)
        self._running = False
        self._shutdown_event.set()

    async def stop(self) -> None:
        """Stop claiming and wait for the jobs in flight."""
        self._running = False
        self._shutdown_event.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Worker %s stopped", self.config.name)

    async def run(self) -> None:
        """Claim and process jobs until a shutdown signal arrives."""
        await self.start()
        try:
            while self._running:
                try:
                    async for job in self.queue.claim_jobs(
                        queue=self.config.queue,
                        batch_size=self.config.batch_size,
                        timeout=self.config.claim_timeout,
                    ):
                        task = asyncio.create_task(self._process_job(job))
                        self._tasks.add(task)
                        task.add_done_callback(self._tasks.discard)
                except asyncio.CancelledError:
                    break
                except Exception:
                    logger.exception("Error claiming jobs from %s", self.config.queue)

                if self._running:
                    await asyncio.sleep(self.config.poll_interval)
        finally:
            await self.stop()

    async def run_once(self) -> int:
        """Process a single batch in order and return how many jobs ran."""
        await self.queue.initialize()
        count = 0
        async for job in self.queue.claim_jobs(
            queue=self.config.queue,
            batch_size=self.config.batch_size,
            timeout=1,
        ):
            await self._process_job(job)
            count += 1
        return count

    async def _process_job(self, job: Job) -> None:
        handler = self._handlers.get(job.task)
        if handler is None:
            logger.error("No handler for task %s (job %s)", job.task, job.id)
            await self.queue.fail_job(job.id, f"Unknown task type: {job.task}", retry=False)
            return

        token = job_id_var.set(job.id)
        try:
            logger.info("Processing job %s (%s)", job.id, job.task)
            result = await handler(job)
            await self.queue.complete_job(job.id, result)
        except Exception as e:
            logger.error("Job %s failed: %s", job.id, e)
            status = await self.queue.fail_job(job.id, str(e), retry=True)
            if status == JobStatus.DEAD:
                await self._on_failure(job, e)
        finally:
            for cleanup in self._cleanups:
                await cleanup()
            job_id_var.reset(token)

    async def _on_failure(self, job: Job, error: BaseException) -> None:
        on_failure = self._failure_handlers.get(job.task)
        if on_failure is None:
            return
        try:
            await on_failure(job, error)
        except Exception:
            # The job is already dead-lettered; keep the worker alive
            logger.exception("Failure hook raised for job %s", job.id)
