"""Typed progress events emitted by the Provisioner.

Use pattern matching to handle events in consumers:

    def on_event(event: ProvisioningEvent) -> None:
        match event:
            case StatusObserved(instance_id=iid, attempt=n, status=status):
                print(f"Attempt {n}: instance {iid} is {status}")
            case ProvisioningFailed(step=step, error=error):
                print(f"{step} failed: {error}")

    provisioner = Provisioner(client, catalog, on_event=on_event)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeAlias

from stackboot.types import InstanceStatus, ProvisioningState, Step

# =============================================================================
# Step Events
# =============================================================================


@dataclass(frozen=True, slots=True)
class StepStarted:
    """A provisioning step is about to issue its remote call."""

    step: Step
    instance_id: int | None = None


@dataclass(frozen=True, slots=True)
class StepCompleted:
    """A provisioning step returned successfully."""

    step: Step
    instance_id: int | None = None


@dataclass(frozen=True, slots=True)
class StatusObserved:
    """One status observation during a convergence wait."""

    instance_id: int
    attempt: int
    status: InstanceStatus | None
    target: InstanceStatus


@dataclass(frozen=True, slots=True)
class BootJobStarted:
    """The provider accepted the boot request."""

    instance_id: int
    config_id: int
    job_id: int


# =============================================================================
# Run Events
# =============================================================================


@dataclass(frozen=True, slots=True)
class ProvisioningCompleted:
    """Instance is running and labelled."""

    state: ProvisioningState


@dataclass(frozen=True, slots=True)
class ProvisioningFailed:
    """A step failed; the run was aborted without rollback."""

    step: Step
    error: str
    state: ProvisioningState


ProvisioningEvent: TypeAlias = (
    StepStarted
    | StepCompleted
    | StatusObserved
    | BootJobStarted
    | ProvisioningCompleted
    | ProvisioningFailed
)

EventCallback: TypeAlias = Callable[[ProvisioningEvent], None]

__all__ = [
    "StepStarted",
    "StepCompleted",
    "StatusObserved",
    "BootJobStarted",
    "ProvisioningCompleted",
    "ProvisioningFailed",
    "ProvisioningEvent",
    "EventCallback",
]
