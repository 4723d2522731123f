"""Provisioning lifecycle as one transition table.

    Requested -> DatabaseCreated -> Migrated -> Seeded
    (any)     -> DatabaseDeleted

Each row names the event that triggers a step, the guard that must hold, and
the events reporting its outcome. A failed guard means the step is disabled:
the event is ignored, nothing is reported.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from tessera.events.schemas import EventType, TenantEvent

if TYPE_CHECKING:
    from tessera.config import TenancyConfig

Guard = Callable[["TenancyConfig", TenantEvent], bool]

TASK_PREFIX = "tenant."


class ProvisioningStep(str, Enum):
    """Operation performed on a tenant database."""

    CREATE = "create_database"
    MIGRATE = "migrate"
    SEED = "seed"
    DELETE = "delete_database"

    @property
    def task(self) -> str:
        """Job queue task name."""
        return f"{TASK_PREFIX}{self.value}"

    @classmethod
    def from_task(cls, task: str) -> ProvisioningStep:
        if not task.startswith(TASK_PREFIX):
            raise ValueError(f"Not a provisioning task: {task}")
        return cls(task[len(TASK_PREFIX) :])


def _create_guard(config: TenancyConfig, event: TenantEvent) -> bool:
    return config.provisioning.auto_create_database and config.mode.is_multi_database()


def _migrate_guard(config: TenancyConfig, event: TenantEvent) -> bool:
    return config.provisioning.auto_migrate


def _seed_guard(config: TenancyConfig, event: TenantEvent) -> bool:
    return config.provisioning.auto_seed and bool(config.provisioning.seeder)


def _delete_guard(config: TenancyConfig, event: TenantEvent) -> bool:
    return config.mode.is_multi_database() and not event.options.get("keep_database", False)


@dataclass(frozen=True, slots=True)
class Transition:
    """One provisioning step.

    Attributes:
        step: Operation to run
        trigger: Event that starts it
        guard: Configuration check; False disables the step
        on_success: Event emitted when the step succeeds
        on_failure: Event emitted when it fails (carries the error)
        retry_on_failure: In a job, a failure result (non-zero exit code) is
            raised so the queue retries it
        reports_attempt_errors: In a job, the failure event is emitted for
            every failed attempt and not only once retries are exhausted
    """

    step: ProvisioningStep
    trigger: EventType
    guard: Guard
    on_success: EventType
    on_failure: EventType
    retry_on_failure: bool = False
    reports_attempt_errors: bool = False


TRANSITIONS: tuple[Transition, ...] = (
    Transition(
        step=ProvisioningStep.CREATE,
        trigger=EventType.TENANT_CREATED,
        guard=_create_guard,
        on_success=EventType.DATABASE_CREATED,
        on_failure=EventType.DATABASE_CREATION_FAILED,
    ),
    Transition(
        step=ProvisioningStep.MIGRATE,
        trigger=EventType.DATABASE_CREATED,
        guard=_migrate_guard,
        on_success=EventType.MIGRATED,
        on_failure=EventType.MIGRATION_FAILED,
        retry_on_failure=True,
        reports_attempt_errors=True,
    ),
    Transition(
        step=ProvisioningStep.SEED,
        trigger=EventType.MIGRATED,
        guard=_seed_guard,
        on_success=EventType.SEEDED,
        on_failure=EventType.SEEDING_FAILED,
        retry_on_failure=True,
    ),
    Transition(
        step=ProvisioningStep.DELETE,
        trigger=EventType.TENANT_DELETED,
        guard=_delete_guard,
        on_success=EventType.DATABASE_DELETED,
        on_failure=EventType.DATABASE_DELETION_FAILED,
    ),
)


def transition_for(step: ProvisioningStep) -> Transition:
    for transition in TRANSITIONS:
        if transition.step == step:
            return transition
    raise KeyError(step)


def transitions_triggered_by(event_type: EventType) -> list[Transition]:
    return [t for t in TRANSITIONS if t.trigger == event_type]
