"""Core types for a provisioning run.

InstanceSpec is the immutable input; ProvisioningState is the mutable,
per-run record the Provisioner fills in as remote resources come into
existence.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from enum import Enum, StrEnum
from typing import Any

from stackboot.errors import InvalidSpecError, StateConflictError

__all__ = [
    "InstanceSpec",
    "InstanceStatus",
    "InstanceInfo",
    "IPAddress",
    "StartupScript",
    "MachineType",
    "BootConfigOptions",
    "Stage",
    "Step",
    "ProvisioningState",
]


# =============================================================================
# Input
# =============================================================================


@dataclass(frozen=True, slots=True)
class InstanceSpec:
    """What to provision.

    Args:
        cluster: Cluster name, used as the display-name prefix.
        zone: Provider datacenter ID (decimal string, e.g. "3").
        sku: Provider plan ID (decimal string, e.g. "1").
        kernel_id: Boot kernel ID, already resolved by the caller.
        image_id: OS image (distribution) ID, already resolved by the caller.
        root_password: Root password for the root disk.
        display_name: Explicit instance name. Empty means derive it from the
            cluster name and the public IP.
    """

    cluster: str
    zone: str
    sku: str
    kernel_id: int
    image_id: int
    root_password: str
    display_name: str = ""

    @property
    def zone_id(self) -> int:
        return _parse_id("zone", self.zone)

    @property
    def plan_id(self) -> int:
        return _parse_id("sku", self.sku)

    def validate(self) -> None:
        """Raise InvalidSpecError if any field is unusable."""
        if not self.cluster:
            raise InvalidSpecError("cluster name must not be empty")
        if not self.root_password:
            raise InvalidSpecError("root password must not be empty")
        _ = self.zone_id
        _ = self.plan_id
        if self.kernel_id < 0:
            raise InvalidSpecError(f"invalid kernel id: {self.kernel_id}")
        if self.image_id < 0:
            raise InvalidSpecError(f"invalid image id: {self.image_id}")

    def __repr__(self) -> str:
        return (
            f"InstanceSpec(cluster={self.cluster!r}, zone={self.zone!r}, sku={self.sku!r}, "
            f"kernel_id={self.kernel_id}, image_id={self.image_id}, "
            f"root_password='***', display_name={self.display_name!r})"
        )


def _parse_id(name: str, value: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise InvalidSpecError(f"{name} must be a numeric id, got {value!r}") from None
    if parsed <= 0:
        raise InvalidSpecError(f"{name} must be positive, got {value!r}")
    return parsed


# =============================================================================
# Provider observations
# =============================================================================


class InstanceStatus(Enum):
    """Instance status as reported by the provider.

    UNKNOWN covers any code the provider adds later.
    """

    BEING_CREATED = -1
    BRAND_NEW = 0
    RUNNING = 1
    POWERED_OFF = 2
    UNKNOWN = None

    @classmethod
    def from_code(cls, code: int | None) -> InstanceStatus:
        try:
            return cls(code)
        except ValueError:
            return cls.UNKNOWN

    def __str__(self) -> str:
        return self.name.replace("_", " ").title()


@dataclass(frozen=True, slots=True)
class InstanceInfo:
    """One entry of an instance listing."""

    id: int
    status: InstanceStatus
    label: str = ""
    code: int | None = None

    @property
    def status_text(self) -> str:
        """Status label; unrecognized statuses keep the provider's raw code."""
        if self.status is InstanceStatus.UNKNOWN:
            return f"Unknown ({self.code})"
        return str(self.status)


@dataclass(frozen=True, slots=True)
class IPAddress:
    address: str
    is_public: bool


@dataclass(frozen=True, slots=True)
class StartupScript:
    id: int
    label: str


@dataclass(frozen=True, slots=True)
class MachineType:
    """Sizing of a provider plan."""

    sku: str
    disk_gb: int
    memory_mb: int
    cpus: int = 1
    description: str = ""


@dataclass(frozen=True, slots=True)
class BootConfigOptions:
    """Device layout of a boot configuration. Disks are listed root first."""

    root_device_num: int
    disk_list: tuple[int, ...]

    @property
    def disk_list_param(self) -> str:
        return ",".join(str(d) for d in self.disk_list)


# =============================================================================
# Stage machine
# =============================================================================


class Stage(StrEnum):
    """Provisioning stages, in order. Each is a resumable checkpoint."""

    PENDING = "pending"
    CREATED = "created"
    NETWORK_ATTACHED = "network_attached"
    CONVERGED_BRAND_NEW = "converged_brand_new"
    NAMED_AND_SIZED = "named_and_sized"
    DISKS_CREATED = "disks_created"
    BOOTED = "booted"
    CONVERGED_RUNNING = "converged_running"
    COMPLETED = "completed"


class Step(StrEnum):
    """Individual steps, used to annotate errors and events."""

    VALIDATE = "validate"
    CREATE_INSTANCE = "create_instance"
    ATTACH_PRIVATE_ADDRESS = "attach_private_address"
    WAIT_BRAND_NEW = "wait_brand_new"
    RESOLVE_ADDRESSES = "resolve_addresses"
    APPLY_LABEL = "apply_label"
    RESOLVE_STARTUP_SCRIPT = "resolve_startup_script"
    RESOLVE_SIZING = "resolve_sizing"
    CREATE_ROOT_DISK = "create_root_disk"
    CREATE_SWAP_DISK = "create_swap_disk"
    CREATE_BOOT_CONFIG = "create_boot_config"
    BOOT = "boot"
    WAIT_RUNNING = "wait_running"
    RELABEL = "relabel"


# =============================================================================
# Run state
# =============================================================================

_SET_ONCE = frozenset(
    {
        "instance_id",
        "public_ip",
        "private_ip",
        "name",
        "script_id",
        "root_disk_size_mb",
        "root_disk_id",
        "swap_disk_id",
        "boot_config_id",
        "boot_job_id",
    }
)

_REQUIRED = (
    "instance_id",
    "public_ip",
    "private_ip",
    "root_disk_id",
    "swap_disk_id",
    "boot_config_id",
)


@dataclass
class ProvisioningState:
    """Mutable state for one provisioning run.

    Identity fields go from unset (None) to set exactly once. Writing the
    value a field already holds is a no-op, so resumed runs can replay
    idempotent steps; writing a different value raises StateConflictError.
    """

    instance_id: int | None = None
    public_ip: str | None = None
    private_ip: str | None = None
    name: str | None = None
    script_id: int | None = None
    root_disk_size_mb: int | None = None
    root_disk_id: int | None = None
    swap_disk_id: int | None = None
    boot_config_id: int | None = None
    boot_job_id: int | None = None
    status: InstanceStatus | None = None
    stage: Stage = Stage.PENDING

    def __setattr__(self, key: str, value: Any) -> None:
        if key in _SET_ONCE:
            current = getattr(self, key, None)
            if current is not None and current != value:
                raise StateConflictError(key, current, value)
        object.__setattr__(self, key, value)

    @property
    def is_complete(self) -> bool:
        return all(getattr(self, f) is not None for f in _REQUIRED)

    @property
    def missing(self) -> tuple[str, ...]:
        return tuple(f for f in _REQUIRED if getattr(self, f) is None)

    def to_dict(self) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["status"] = self.status.name if self.status is not None else None
        data["stage"] = str(self.stage)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProvisioningState:
        raw = dict(data)
        status = raw.pop("status", None)
        stage = raw.pop("stage", Stage.PENDING)
        known = {f.name for f in fields(cls)}
        unknown = set(raw) - known
        if unknown:
            raise ValueError(f"Unknown state fields: {', '.join(sorted(unknown))}")
        return cls(
            **raw,
            status=InstanceStatus[status] if status is not None else None,
            stage=Stage(stage),
        )
