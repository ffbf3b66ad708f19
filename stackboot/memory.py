"""In-memory ResourceClient.

Simulates a provider whose state changes are only visible by polling:
a new instance reports BEING_CREATED for ``brand_new_after`` status polls,
then BRAND_NEW; after ``boot`` it reports BRAND_NEW for ``running_after``
polls, then RUNNING.

Example:
    client = InMemoryResourceClient(brand_new_after=1, running_after=2)
    provisioner = Provisioner(client, StaticCatalog.default())
    state = await provisioner.provision(spec)
    assert client.instances[state.instance_id].label == state.name
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from stackboot.errors import ResourceApiError
from stackboot.types import (
    BootConfigOptions,
    InstanceInfo,
    InstanceStatus,
    IPAddress,
    StartupScript,
)

__all__ = ["InMemoryResourceClient"]


@dataclass
class _Instance:
    id: int
    zone: int
    plan: int
    public_ip: str
    label: str = ""
    label_history: list[str] = field(default_factory=list)
    private_ip: str | None = None
    polls: int = 0
    booted_with: int | None = None
    polls_since_boot: int = 0


@dataclass
class _Script:
    id: int
    label: str
    image_id: int
    body: str
    metadata: dict[str, str]
    revision: int = 1


@dataclass(frozen=True, slots=True)
class _Disk:
    id: int
    instance_id: int
    name: str
    disk_type: str
    size_mb: int
    script_id: int | None = None
    params: str | None = None
    image_id: int | None = None


@dataclass(frozen=True, slots=True)
class _BootConfig:
    id: int
    instance_id: int
    kernel_id: int
    name: str
    options: BootConfigOptions


class InMemoryResourceClient:
    """Fake provider implementing the ResourceClient protocol.

    Args:
        brand_new_after: Status polls reporting BEING_CREATED before BRAND_NEW.
        running_after: Status polls after boot reporting BRAND_NEW before RUNNING.
        public_ips: Public addresses handed out to new instances, in order.
        private_prefix: Private addresses are ``{private_prefix}.{n}``.
        fail_on: Operation names that raise ResourceApiError.
        unlisted_polls: Status polls per instance that return an empty listing
            before the instance shows up.
        flaky_polls: Status polls per instance (after the unlisted ones) that
            raise ResourceApiError.
        extra_addresses: Addresses added to every instance's listing.
        latency: Seconds each call takes.
    """

    def __init__(
        self,
        *,
        brand_new_after: int = 1,
        running_after: int = 2,
        public_ips: Iterable[str] = ("203.0.113.7",),
        private_prefix: str = "192.168.128",
        fail_on: Iterable[str] = (),
        unlisted_polls: int = 0,
        flaky_polls: int = 0,
        extra_addresses: Sequence[IPAddress] = (),
        latency: float = 0.0,
    ) -> None:
        self.brand_new_after = brand_new_after
        self.running_after = running_after
        self.fail_on = set(fail_on)
        self.unlisted_polls = unlisted_polls
        self.flaky_polls = flaky_polls
        self.extra_addresses = tuple(extra_addresses)
        self.latency = latency

        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.instances: dict[int, _Instance] = {}
        self.scripts: dict[int, _Script] = {}
        self.disks: dict[int, _Disk] = {}
        self.configs: dict[int, _BootConfig] = {}
        self.jobs: dict[int, tuple[int, int]] = {}

        self._public_ips = list(public_ips)
        self._private_prefix = private_prefix
        self._instance_ids = itertools.count(1001)
        self._script_ids = itertools.count(501)
        self._disk_ids = itertools.count(9001)
        self._config_ids = itertools.count(7001)
        self._job_ids = itertools.count(1)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _call(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, args))
        if self.latency:
            await asyncio.sleep(self.latency)
        else:
            await asyncio.sleep(0)
        if operation in self.fail_on:
            raise ResourceApiError(operation, "injected failure", status=500)

    def _instance(self, operation: str, instance_id: int) -> _Instance:
        try:
            return self.instances[instance_id]
        except KeyError:
            raise ResourceApiError(operation, f"instance {instance_id} not found", status=404) from None

    def operations(self) -> list[str]:
        """Names of the operations called so far, in order."""
        return [op for op, _ in self.calls]

    # =========================================================================
    # Instances
    # =========================================================================

    async def create_instance(self, zone: int, plan: int) -> int:
        await self._call("create_instance", zone, plan)
        if not self._public_ips:
            raise ResourceApiError("create_instance", "no public addresses left", status=400)
        instance = _Instance(
            id=next(self._instance_ids),
            zone=zone,
            plan=plan,
            public_ip=self._public_ips.pop(0),
        )
        self.instances[instance.id] = instance
        return instance.id

    async def list_instances(self, instance_id: int) -> Sequence[InstanceInfo]:
        await self._call("list_instances", instance_id)
        instance = self.instances.get(instance_id)
        if instance is None:
            return []

        instance.polls += 1
        if instance.polls <= self.unlisted_polls:
            return []
        if instance.polls <= self.unlisted_polls + self.flaky_polls:
            raise ResourceApiError("list_instances", "temporarily unavailable", status=503)

        status = self._status(instance)
        return [
            InstanceInfo(
                id=instance.id,
                status=status,
                label=instance.label,
                code=status.value,
            )
        ]

    def _status(self, instance: _Instance) -> InstanceStatus:
        if instance.booted_with is not None:
            instance.polls_since_boot += 1
            if instance.polls_since_boot > self.running_after:
                return InstanceStatus.RUNNING
            return InstanceStatus.BRAND_NEW
        observed = instance.polls - self.unlisted_polls - self.flaky_polls
        if observed > self.brand_new_after:
            return InstanceStatus.BRAND_NEW
        return InstanceStatus.BEING_CREATED

    async def update_instance_label(self, instance_id: int, label: str) -> None:
        await self._call("update_instance_label", instance_id, label)
        instance = self._instance("update_instance_label", instance_id)
        instance.label = label
        instance.label_history.append(label)

    async def boot(self, instance_id: int, config_id: int) -> int:
        await self._call("boot", instance_id, config_id)
        instance = self._instance("boot", instance_id)
        config = self.configs.get(config_id)
        if config is None or config.instance_id != instance_id:
            raise ResourceApiError("boot", f"config {config_id} not found on {instance_id}", status=404)
        instance.booted_with = config_id
        job_id = next(self._job_ids)
        self.jobs[job_id] = (instance_id, config_id)
        return job_id

    # =========================================================================
    # Networking
    # =========================================================================

    async def attach_private_address(self, instance_id: int) -> None:
        await self._call("attach_private_address", instance_id)
        instance = self._instance("attach_private_address", instance_id)
        if instance.private_ip is not None:
            raise ResourceApiError("attach_private_address", "private address already attached", status=400)
        instance.private_ip = f"{self._private_prefix}.{instance_id % 254 + 1}"

    async def list_addresses(self, instance_id: int) -> Sequence[IPAddress]:
        await self._call("list_addresses", instance_id)
        instance = self._instance("list_addresses", instance_id)
        addresses = [IPAddress(instance.public_ip, is_public=True)]
        if instance.private_ip is not None:
            addresses.append(IPAddress(instance.private_ip, is_public=False))
        addresses.extend(self.extra_addresses)
        return addresses

    # =========================================================================
    # Startup scripts
    # =========================================================================

    async def list_startup_scripts(self) -> Sequence[StartupScript]:
        await self._call("list_startup_scripts")
        return [StartupScript(id=s.id, label=s.label) for s in self.scripts.values()]

    async def create_startup_script(
        self,
        label: str,
        image_id: int,
        body: str,
        metadata: Mapping[str, str],
    ) -> int:
        await self._call("create_startup_script", label, image_id)
        if any(s.label == label for s in self.scripts.values()):
            raise ResourceApiError("create_startup_script", f"label {label!r} already exists", status=400)
        script = _Script(
            id=next(self._script_ids),
            label=label,
            image_id=image_id,
            body=body,
            metadata=dict(metadata),
        )
        self.scripts[script.id] = script
        return script.id

    async def update_startup_script(self, script_id: int, body: str) -> int:
        await self._call("update_startup_script", script_id)
        script = self.scripts.get(script_id)
        if script is None:
            raise ResourceApiError("update_startup_script", f"script {script_id} not found", status=404)
        script.body = body
        script.revision += 1
        return script.id

    # =========================================================================
    # Disks and boot configurations
    # =========================================================================

    async def create_disk_from_script(
        self,
        script_id: int,
        instance_id: int,
        name: str,
        params: str,
        image_id: int,
        size_mb: int,
        root_password: str,
    ) -> int:
        await self._call("create_disk_from_script", script_id, instance_id, name, size_mb)
        self._instance("create_disk_from_script", instance_id)
        if script_id not in self.scripts:
            raise ResourceApiError("create_disk_from_script", f"script {script_id} not found", status=404)
        if size_mb <= 0 or not root_password:
            raise ResourceApiError("create_disk_from_script", "invalid disk parameters", status=400)
        disk = _Disk(
            id=next(self._disk_ids),
            instance_id=instance_id,
            name=name,
            disk_type="ext4",
            size_mb=size_mb,
            script_id=script_id,
            params=params,
            image_id=image_id,
        )
        self.disks[disk.id] = disk
        return disk.id

    async def create_disk(
        self,
        instance_id: int,
        disk_type: str,
        name: str,
        size_mb: int,
    ) -> int:
        await self._call("create_disk", instance_id, disk_type, name, size_mb)
        self._instance("create_disk", instance_id)
        if size_mb <= 0:
            raise ResourceApiError("create_disk", "invalid disk size", status=400)
        disk = _Disk(
            id=next(self._disk_ids),
            instance_id=instance_id,
            name=name,
            disk_type=disk_type,
            size_mb=size_mb,
        )
        self.disks[disk.id] = disk
        return disk.id

    async def create_boot_config(
        self,
        instance_id: int,
        kernel_id: int,
        name: str,
        options: BootConfigOptions,
    ) -> int:
        await self._call("create_boot_config", instance_id, kernel_id, name, options)
        self._instance("create_boot_config", instance_id)
        for disk_id in options.disk_list:
            disk = self.disks.get(disk_id)
            if disk is None or disk.instance_id != instance_id:
                raise ResourceApiError(
                    "create_boot_config", f"disk {disk_id} not found on {instance_id}", status=404
                )
        config = _BootConfig(
            id=next(self._config_ids),
            instance_id=instance_id,
            kernel_id=kernel_id,
            name=name,
            options=options,
        )
        self.configs[config.id] = config
        return config.id
