"""Provisioning orchestrator.

Drives one InstanceSpec from "does not exist" to "running, labelled, with
both addresses known" as an explicit stage machine:

    pending -> created -> network_attached -> converged_brand_new
      -> named_and_sized -> disks_created -> booted -> converged_running
      -> completed

Each stage is a checkpoint. ``provision`` accepts a previously returned (or
persisted) ProvisioningState and continues from its stage; resources whose
IDs are already recorded are not created again.

Example:
    provisioner = Provisioner(client, StaticCatalog.default())
    state = await provisioner.provision(
        InstanceSpec(
            cluster="c1", zone="3", sku="1",
            kernel_id=138, image_id=146, root_password="...",
        )
    )
    print(state.name, state.public_ip)
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, TypeVar

from loguru import logger

from stackboot.config import ProvisionerConfig
from stackboot.errors import (
    DataInconsistencyError,
    InvalidSpecError,
    ProvisioningError,
    RemoteCallError,
    ResourceApiError,
    UnknownMachineTypeError,
)
from stackboot.events import (
    BootJobStarted,
    EventCallback,
    ProvisioningCompleted,
    ProvisioningEvent,
    ProvisioningFailed,
    StatusObserved,
    StepCompleted,
    StepStarted,
)
from stackboot.naming import ROOT_DEVICE_NUM, SWAP_DISK_SIZE_MB, derive_name, root_disk_size_mb
from stackboot.protocols import Catalog, ResourceClient
from stackboot.stackscript import render_startup_script, script_parameters, upsert_startup_script
from stackboot.types import (
    BootConfigOptions,
    InstanceSpec,
    InstanceStatus,
    IPAddress,
    MachineType,
    ProvisioningState,
    Stage,
    Step,
)
from stackboot.wait import poll_until

T = TypeVar("T")

__all__ = [
    "Provisioner",
    "provision_many",
]


class Provisioner:
    """Provisions instances through a ResourceClient.

    Holds only read-only collaborators, so one Provisioner may run many
    ``provision`` calls concurrently. Startup script upserts are serialized
    since every run shares the same labelled script.

    Args:
        client: Provider API binding.
        catalog: Machine type catalog.
        config: Polling and startup script settings.
        on_event: Called synchronously with every ProvisioningEvent.
        cancel: Setting this event aborts in-flight status waits.
    """

    def __init__(
        self,
        client: ResourceClient,
        catalog: Catalog,
        config: ProvisionerConfig | None = None,
        *,
        on_event: EventCallback | None = None,
        cancel: asyncio.Event | None = None,
    ) -> None:
        self.client = client
        self.catalog = catalog
        self.config = config or ProvisionerConfig()
        self.cancel = cancel
        self._on_event = on_event
        self._script_lock = asyncio.Lock()

    def emit(self, event: ProvisioningEvent) -> None:
        if self._on_event is not None:
            self._on_event(event)

    async def provision(
        self,
        spec: InstanceSpec,
        state: ProvisioningState | None = None,
    ) -> ProvisioningState:
        """Provision ``spec``, or resume it from ``state``.

        Returns:
            A fully populated ProvisioningState.

        Raises:
            ProvisioningError: Annotated with the failing step. Resources
                created before the failure are left in place.
        """
        state = state if state is not None else ProvisioningState()
        log = logger.bind(component="provisioner", cluster=spec.cluster)

        if state.stage is Stage.COMPLETED:
            log.info("Instance {id} already provisioned", id=state.instance_id)
            return state

        try:
            machine = self._preflight(spec)
            run = _Run(self, spec, machine, state, log)
            await run.execute()
        except ProvisioningError as e:
            step = Step(e.step) if e.step else Step.VALIDATE
            log.error("Provisioning failed at {step}: {error}", step=step, error=e.message)
            self.emit(ProvisioningFailed(step=step, error=str(e), state=state))
            raise

        if not state.is_complete:
            raise DataInconsistencyError(
                "run completed with unset fields", state.missing, step=Step.RELABEL
            )

        log.info(
            "Instance {id} ({name}) running at {public_ip} / {private_ip}",
            id=state.instance_id, name=state.name,
            public_ip=state.public_ip, private_ip=state.private_ip,
        )
        self.emit(ProvisioningCompleted(state=state))
        return state

    def _preflight(self, spec: InstanceSpec) -> MachineType:
        """Validate input and resolve sizing before any remote call."""
        try:
            spec.validate()
        except InvalidSpecError as e:
            e.step = e.step or Step.VALIDATE
            raise

        try:
            machine = self.catalog.machine_type(self.config.provider, spec.sku)
        except UnknownMachineTypeError as e:
            raise InvalidSpecError(str(e), step=Step.RESOLVE_SIZING) from e

        if root_disk_size_mb(machine.disk_gb) <= 0:
            raise InvalidSpecError(
                f"plan {spec.sku} disk ({machine.disk_gb} GB) leaves no room for a root disk",
                step=Step.RESOLVE_SIZING,
            )

        _render_script(self.config, spec)
        return machine


class _Run:
    """One provisioning run: the InstanceSpec, its state and the stage handlers."""

    def __init__(
        self,
        provisioner: Provisioner,
        spec: InstanceSpec,
        machine: MachineType,
        state: ProvisioningState,
        log: Any,
    ) -> None:
        self.provisioner = provisioner
        self.client = provisioner.client
        self.config = provisioner.config
        self.spec = spec
        self.machine = machine
        self.state = state
        self.log = log.bind(instance_id=state.instance_id) if state.instance_id else log

        self._transitions: dict[Stage, tuple[Callable[[], Awaitable[None]], Stage]] = {
            Stage.PENDING: (self._create_instance, Stage.CREATED),
            Stage.CREATED: (self._attach_network, Stage.NETWORK_ATTACHED),
            Stage.NETWORK_ATTACHED: (self._await_brand_new, Stage.CONVERGED_BRAND_NEW),
            Stage.CONVERGED_BRAND_NEW: (self._name_and_size, Stage.NAMED_AND_SIZED),
            Stage.NAMED_AND_SIZED: (self._create_disks, Stage.DISKS_CREATED),
            Stage.DISKS_CREATED: (self._boot, Stage.BOOTED),
            Stage.BOOTED: (self._await_running, Stage.CONVERGED_RUNNING),
            Stage.CONVERGED_RUNNING: (self._relabel, Stage.COMPLETED),
        }

    async def execute(self) -> None:
        if self.state.stage is not Stage.PENDING:
            self.log.info("Resuming from stage {stage}", stage=self.state.stage)
        while self.state.stage is not Stage.COMPLETED:
            handler, next_stage = self._transitions[self.state.stage]
            await handler()
            self.log.debug("Stage {prev} -> {next}", prev=self.state.stage, next=next_stage)
            self.state.stage = next_stage

    # =========================================================================
    # Helpers
    # =========================================================================

    @asynccontextmanager
    async def _step(self, step: Step) -> AsyncIterator[None]:
        """Annotate failures with ``step``; wrap foreign errors as RemoteCallError."""
        self.provisioner.emit(StepStarted(step=step, instance_id=self.state.instance_id))
        self.log.debug("{step} started", step=step)
        try:
            yield
        except ProvisioningError as e:
            e.step = e.step or step
            raise
        except Exception as e:
            raise RemoteCallError(step, e) from e
        self.log.debug("{step} completed", step=step)
        self.provisioner.emit(StepCompleted(step=step, instance_id=self.state.instance_id))

    def _require(self, name: str, value: T | None) -> T:
        if value is None:
            raise DataInconsistencyError(
                f"{name} is not set at stage {self.state.stage}", self.state.to_dict()
            )
        return value

    @property
    def instance_id(self) -> int:
        return self._require("instance_id", self.state.instance_id)

    async def _wait_for(self, target: InstanceStatus, step: Step) -> None:
        attempt = 0

        async def check() -> bool:
            nonlocal attempt
            attempt += 1
            infos = await self.client.list_instances(instance_id)
            info = next((i for i in infos if i.id == instance_id), None)
            if info is None:
                self.log.info("Attempt {n}: instance {id} not listed yet", n=attempt, id=instance_id)
                self.provisioner.emit(StatusObserved(instance_id, attempt, None, target))
                return False

            self.state.status = info.status
            self.log.info(
                "Attempt {n}: instance {id} is in status {status}",
                n=attempt, id=instance_id, status=info.status_text,
            )
            self.provisioner.emit(StatusObserved(instance_id, attempt, info.status, target))
            return info.status is target

        async with self._step(step):
            instance_id = self.instance_id
            await poll_until(
                check,
                interval=self.config.poll_interval,
                timeout=self.config.convergence_timeout,
                transient=(ResourceApiError,),
                cancel=self.provisioner.cancel,
                description=f"instance {instance_id} to be {target}",
            )

    # =========================================================================
    # Stage handlers
    # =========================================================================

    async def _create_instance(self) -> None:
        async with self._step(Step.CREATE_INSTANCE):
            self.state.instance_id = await self.client.create_instance(
                self.spec.zone_id, self.spec.plan_id
            )
        self.log = self.log.bind(instance_id=self.state.instance_id)
        self.log.info(
            "Instance {id} created in zone {zone} with plan {plan}",
            id=self.state.instance_id, zone=self.spec.zone, plan=self.spec.sku,
        )

    async def _attach_network(self) -> None:
        async with self._step(Step.ATTACH_PRIVATE_ADDRESS):
            await self.client.attach_private_address(self.instance_id)

    async def _await_brand_new(self) -> None:
        await self._wait_for(InstanceStatus.BRAND_NEW, Step.WAIT_BRAND_NEW)

    async def _name_and_size(self) -> None:
        async with self._step(Step.RESOLVE_ADDRESSES):
            addresses = await self.client.list_addresses(self.instance_id)
            public, private = _classify_addresses(addresses)
            self.state.public_ip = public
            self.state.private_ip = private
        self.log.info("Addresses: public={public} private={private}", public=public, private=private)

        async with self._step(Step.APPLY_LABEL):
            self.state.name = self.spec.display_name or derive_name(self.spec.cluster, public)
            if self.config.early_label:
                await self.client.update_instance_label(self.instance_id, self.state.name)

        if self.state.script_id is None:
            async with self.provisioner._script_lock, self._step(Step.RESOLVE_STARTUP_SCRIPT):
                self.state.script_id = await upsert_startup_script(
                    self.client,
                    label=self.config.script_label,
                    image_id=self.spec.image_id,
                    body=_render_script(self.config, self.spec),
                    description=f"Startup script for cluster {self.spec.cluster}",
                )

        async with self._step(Step.RESOLVE_SIZING):
            self.state.root_disk_size_mb = root_disk_size_mb(self.machine.disk_gb)
        self.log.debug(
            "Plan {sku}: {disk} GB disk -> root {root} MB, swap {swap} MB",
            sku=self.machine.sku, disk=self.machine.disk_gb,
            root=self.state.root_disk_size_mb, swap=SWAP_DISK_SIZE_MB,
        )

    async def _create_disks(self) -> None:
        if self.state.root_disk_id is None:
            async with self._step(Step.CREATE_ROOT_DISK):
                name = self._require("name", self.state.name)
                script_id = self._require("script_id", self.state.script_id)
                size_mb = self._require("root_disk_size_mb", self.state.root_disk_size_mb)
                self.state.root_disk_id = await self.client.create_disk_from_script(
                    script_id,
                    self.instance_id,
                    name,
                    script_parameters(self.spec.cluster, name, script_id),
                    self.spec.image_id,
                    size_mb,
                    self.spec.root_password,
                )
            self.log.info("Root disk {id} created ({size} MB)", id=self.state.root_disk_id, size=size_mb)

        if self.state.swap_disk_id is None:
            async with self._step(Step.CREATE_SWAP_DISK):
                self.state.swap_disk_id = await self.client.create_disk(
                    self.instance_id, "swap", "swap-disk", SWAP_DISK_SIZE_MB
                )
            self.log.info("Swap disk {id} created", id=self.state.swap_disk_id)

    async def _boot(self) -> None:
        if self.state.boot_config_id is None:
            async with self._step(Step.CREATE_BOOT_CONFIG):
                options = BootConfigOptions(
                    root_device_num=ROOT_DEVICE_NUM,
                    disk_list=(
                        self._require("root_disk_id", self.state.root_disk_id),
                        self._require("swap_disk_id", self.state.swap_disk_id),
                    ),
                )
                self.state.boot_config_id = await self.client.create_boot_config(
                    self.instance_id,
                    self.spec.kernel_id,
                    self._require("name", self.state.name),
                    options,
                )

        if self.state.boot_job_id is None:
            async with self._step(Step.BOOT):
                instance_id = self.instance_id
                config_id = self._require("boot_config_id", self.state.boot_config_id)
                self.state.boot_job_id = await self.client.boot(instance_id, config_id)
            self.log.info("Running boot job {job}", job=self.state.boot_job_id)
            self.provisioner.emit(
                BootJobStarted(instance_id=instance_id, config_id=config_id, job_id=self.state.boot_job_id)
            )

    async def _await_running(self) -> None:
        await self._wait_for(InstanceStatus.RUNNING, Step.WAIT_RUNNING)

    async def _relabel(self) -> None:
        async with self._step(Step.RELABEL):
            await self.client.update_instance_label(
                self.instance_id, self._require("name", self.state.name)
            )


def _render_script(config: ProvisionerConfig, spec: InstanceSpec) -> str:
    try:
        return render_startup_script(
            config.script_template,
            cluster=spec.cluster,
            now=datetime.now(UTC),
        )
    except ValueError as e:
        raise InvalidSpecError(str(e), step=Step.RESOLVE_STARTUP_SCRIPT) from e


def _classify_addresses(addresses: Sequence[IPAddress]) -> tuple[str, str]:
    """Split addresses into exactly one public and one private address."""
    public = [a.address for a in addresses if a.is_public]
    private = [a.address for a in addresses if not a.is_public]
    if len(public) != 1 or len(private) != 1:
        raise DataInconsistencyError(
            f"expected one public and one private address, "
            f"found {len(public)} public and {len(private)} private",
            [(a.address, a.is_public) for a in addresses],
        )
    return public[0], private[0]


async def provision_many(
    provisioner: Provisioner,
    specs: Iterable[InstanceSpec],
) -> list[ProvisioningState | BaseException]:
    """Provision independent specs concurrently.

    Runs share no mutable state. One run failing does not cancel the others;
    its slot in the result holds the exception.
    """
    return await asyncio.gather(
        *(provisioner.provision(spec) for spec in specs),
        return_exceptions=True,
    )
