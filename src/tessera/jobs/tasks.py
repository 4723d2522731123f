"""Job handlers for provisioning steps.

Example:
    from tessera.jobs.tasks import register_provisioning_handlers

    worker = JobWorker(config=WorkerConfig(queue=config.provisioning.queue_name))
    register_provisioning_handlers(worker, machine)
    await worker.run()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tessera.provisioning.transitions import TRANSITIONS

if TYPE_CHECKING:
    from tessera.jobs.worker import JobWorker
    from tessera.provisioning.machine import ProvisioningStateMachine

logger = logging.getLogger(__name__)


def register_provisioning_handlers(worker: JobWorker, machine: ProvisioningStateMachine) -> None:
    """Register every provisioning step with the worker.

    Each task re-runs the step through the state machine, which emits the
    step's events; exhausted jobs report the step's failure event. Tenancy is
    ended after every job.
    """
    for transition in TRANSITIONS:
        worker.register_handler(
            transition.step.task,
            machine.run_job,
            on_failure=machine.job_failed,
        )
    worker.add_cleanup(machine.manager.end)
    logger.info("Registered %d provisioning handlers", len(TRANSITIONS))
