"""Tenant database provisioning.

The lifecycle (create -> migrate -> seed, and delete) is declared in
tessera.provisioning.transitions and driven by ProvisioningStateMachine.
"""

from tessera.provisioning.machine import ProvisioningStateMachine
from tessera.provisioning.transitions import (
    TRANSITIONS,
    ProvisioningStep,
    Transition,
    transition_for,
    transitions_triggered_by,
)

__all__ = [
    "ProvisioningStateMachine",
    "ProvisioningStep",
    "Transition",
    "TRANSITIONS",
    "transition_for",
    "transitions_triggered_by",
]
