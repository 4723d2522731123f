"""Provisioning state machine.

Subscribes to the trigger events of TRANSITIONS and runs each enabled step,
inline or through the job queue depending on provisioning.queue. Every run
reports its outcome as the step's success or failure event, which in turn
triggers the next step.

Failure policy:
- Inline, a step never raises: errors become failure events
- In a job, exceptions propagate so the queue retries; a non-zero exit code
  is raised as ProvisioningError for steps with retry_on_failure
- Migration failures are reported on every attempt, other steps once the
  worker gives up (job_failed); either way each attempt reports at most once
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from tessera.errors import ProvisioningError
from tessera.events.schemas import EventType, TenantEvent
from tessera.provisioning.transitions import (
    TRANSITIONS,
    ProvisioningStep,
    transition_for,
    transitions_triggered_by,
)
from tessera.tenancy.models import Tenant

if TYPE_CHECKING:
    from tessera.config import TenancyConfig
    from tessera.events.bus import EventBus
    from tessera.jobs.queue import Job, JobQueue
    from tessera.tenancy.database import MultiDatabaseManager

logger = logging.getLogger(__name__)


class ProvisioningStateMachine:
    """Drives create -> migrate -> seed and delete for tenant databases.

    Args:
        config: Immutable tenancy configuration
        manager: Connection switcher performing the database operations
        bus: Event bus the steps are chained through
        queue: Job queue, required when provisioning.queue is enabled
    """

    def __init__(
        self,
        config: TenancyConfig,
        manager: MultiDatabaseManager,
        bus: EventBus,
        queue: JobQueue | None = None,
    ) -> None:
        if config.provisioning.queue and queue is None:
            raise ValueError("provisioning.queue is enabled but no job queue was given")
        self.config = config
        self.manager = manager
        self.bus = bus
        self.queue = queue

    def attach(self) -> None:
        """Subscribe to every trigger event."""
        for trigger in dict.fromkeys(t.trigger for t in TRANSITIONS):
            self.bus.subscribe(trigger, self.handle)

    async def handle(self, event: TenantEvent) -> None:
        """Run (or enqueue) each enabled step triggered by event."""
        for transition in transitions_triggered_by(event.event_type):
            if not transition.guard(self.config, event):
                logger.debug(
                    "Skipping %s for tenant %s: disabled",
                    transition.step.value,
                    event.tenant.slug,
                )
                continue

            options = dict(event.options)
            seeder = self.config.provisioning.seeder
            if self.config.provisioning.queue:
                await self._enqueue(transition.step, event.tenant, options, seeder)
            else:
                await self.execute(transition.step, event.tenant, options, seeder)

    async def _enqueue(
        self,
        step: ProvisioningStep,
        tenant: Tenant,
        options: dict[str, Any],
        seeder: str | None,
    ) -> str:
        assert self.queue is not None
        job_id = await self.queue.submit(
            step.task,
            {"tenant": tenant.to_dict(), "options": options, "seeder": seeder},
            queue=self.config.provisioning.queue_name,
            max_retries=self.config.provisioning.max_retries,
        )
        logger.info("Queued %s for tenant %s (job %s)", step.value, tenant.slug, job_id)
        return job_id

    async def execute(
        self,
        step: ProvisioningStep,
        tenant: Tenant,
        options: dict[str, Any] | None = None,
        seeder: str | None = None,
        in_job: bool = False,
    ) -> bool:
        """Run one step now and emit its outcome event.

        Args:
            step: Step to run
            tenant: Tenant to run it for
            options: Step options (migration options, keep_database)
            seeder: Seeder identifier for the seed step
            in_job: Running inside a queued job (errors propagate for retry)

        Returns:
            True if the step succeeded
        """
        transition = transition_for(step)
        options = options or {}

        try:
            succeeded, exit_code = await self._perform(step, tenant, options, seeder)
        except Exception as e:
            if in_job:
                if transition.reports_attempt_errors:
                    await self._emit(transition.on_failure, tenant, options, e)
                raise
            logger.exception("%s failed for tenant %s", step.value, tenant.slug)
            await self._emit(transition.on_failure, tenant, options, e)
            return False

        if succeeded:
            await self._emit(transition.on_success, tenant, options)
            return True

        error = _failure(step, exit_code)
        if in_job and transition.retry_on_failure:
            if transition.reports_attempt_errors:
                await self._emit(transition.on_failure, tenant, options, error)
            raise error
        await self._emit(transition.on_failure, tenant, options, error)
        return False

    async def _perform(
        self,
        step: ProvisioningStep,
        tenant: Tenant,
        options: dict[str, Any],
        seeder: str | None,
    ) -> tuple[bool, int | None]:
        if step is ProvisioningStep.CREATE:
            return await self.manager.create_database(tenant), None
        if step is ProvisioningStep.MIGRATE:
            code = await self.manager.migrate_tenant(tenant, _migration_options(options))
            return code == 0, code
        if step is ProvisioningStep.SEED:
            code = await self.manager.seed_tenant(tenant, seeder)
            return code == 0, code
        if step is ProvisioningStep.DELETE:
            return await self.manager.delete_database(tenant), None
        raise ValueError(f"Unknown provisioning step: {step}")

    async def _emit(
        self,
        event_type: EventType,
        tenant: Tenant,
        options: dict[str, Any],
        error: BaseException | None = None,
    ) -> None:
        await self.bus.publish(
            TenantEvent(event_type=event_type, tenant=tenant, error=error, options=options)
        )

    # -------------------------------------------------------------------------
    # Job queue integration
    # -------------------------------------------------------------------------

    async def run_job(self, job: Job) -> dict[str, Any]:
        """Job handler for every provisioning task."""
        step = ProvisioningStep.from_task(job.task)
        tenant = Tenant.from_dict(job.payload["tenant"])
        succeeded = await self.execute(
            step,
            tenant,
            job.payload.get("options") or {},
            job.payload.get("seeder"),
            in_job=True,
        )
        return {"step": step.value, "tenant_id": tenant.id, "succeeded": succeeded}

    async def job_failed(self, job: Job, error: BaseException) -> None:
        """Report a job that exhausted its retries as the step's failure event.

        Steps that report every failed attempt already emitted the event for
        the last one, so nothing is published for them here.
        """
        step = ProvisioningStep.from_task(job.task)
        tenant = Tenant.from_dict(job.payload["tenant"])
        transition = transition_for(step)
        logger.error(
            "%s for tenant %s gave up after %d attempts: %s",
            step.value,
            tenant.slug,
            job.attempts,
            error,
        )
        if transition.reports_attempt_errors:
            return
        await self._emit(transition.on_failure, tenant, job.payload.get("options") or {}, error)


def _migration_options(options: dict[str, Any]) -> dict[str, Any]:
    return {key: options[key] for key in ("revision", "fresh") if key in options}


def _failure(step: ProvisioningStep, exit_code: int | None) -> ProvisioningError:
    if exit_code is None:
        return ProvisioningError(step.value, f"{step.value} reported failure")
    return ProvisioningError(
        step.value, f"{step.value} failed with exit code: {exit_code}", exit_code=exit_code
    )
