"""Capability interfaces for the provisioner's external collaborators."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Protocol, runtime_checkable

from stackboot.types import (
    BootConfigOptions,
    InstanceInfo,
    IPAddress,
    MachineType,
    StartupScript,
)

__all__ = [
    "ResourceClient",
    "Catalog",
]


@runtime_checkable
class ResourceClient(Protocol):
    """Async binding to the provider's management API.

    Calls return as soon as the provider accepts the request; the effect
    becomes observable later through ``list_instances``. Implementations
    raise ``ResourceApiError`` on failure and must be safe to share between
    concurrent provisioning runs.
    """

    async def create_instance(self, zone: int, plan: int) -> int: ...

    async def list_instances(self, instance_id: int) -> Sequence[InstanceInfo]: ...

    async def attach_private_address(self, instance_id: int) -> None: ...

    async def list_addresses(self, instance_id: int) -> Sequence[IPAddress]: ...

    async def update_instance_label(self, instance_id: int, label: str) -> None: ...

    async def list_startup_scripts(self) -> Sequence[StartupScript]: ...

    async def create_startup_script(
        self,
        label: str,
        image_id: int,
        body: str,
        metadata: Mapping[str, str],
    ) -> int: ...

    async def update_startup_script(self, script_id: int, body: str) -> int: ...

    async def create_disk_from_script(
        self,
        script_id: int,
        instance_id: int,
        name: str,
        params: str,
        image_id: int,
        size_mb: int,
        root_password: str,
    ) -> int: ...

    async def create_disk(
        self,
        instance_id: int,
        disk_type: str,
        name: str,
        size_mb: int,
    ) -> int: ...

    async def create_boot_config(
        self,
        instance_id: int,
        kernel_id: int,
        name: str,
        options: BootConfigOptions,
    ) -> int: ...

    async def boot(self, instance_id: int, config_id: int) -> int: ...


@runtime_checkable
class Catalog(Protocol):
    """Resolves provider plan SKUs to machine sizing."""

    def machine_type(self, provider: str, sku: str) -> MachineType:
        """Raises UnknownMachineTypeError if the SKU is not known."""
        ...
