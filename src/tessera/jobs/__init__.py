"""Background job processing for Tessera.

Provisioning steps are deferred to a Redis job queue when
provisioning.queue is enabled; a worker process runs them.

Example:
    from tessera.jobs import JobWorker, WorkerConfig, register_provisioning_handlers

    worker = JobWorker(queue, WorkerConfig(queue="provisioning"))
    register_provisioning_handlers(worker, machine)
    await worker.run()
"""

from tessera.jobs.queue import DEFAULT_MAX_RETRIES, DEFAULT_QUEUE, Job, JobQueue, JobStatus
from tessera.jobs.tasks import register_provisioning_handlers
from tessera.jobs.worker import FailureHandler, JobHandler, JobWorker, WorkerConfig

__all__ = [
    # Queue
    "Job",
    "JobQueue",
    "JobStatus",
    "DEFAULT_QUEUE",
    "DEFAULT_MAX_RETRIES",
    # Worker
    "JobWorker",
    "JobHandler",
    "FailureHandler",
    "WorkerConfig",
    # Tasks
    "register_provisioning_handlers",
]
