from __future__ import annotations

import pytest

from stackboot import (
    InMemoryResourceClient,
    InstanceSpec,
    MachineType,
    ProvisionerConfig,
    ProvisioningEvent,
    StaticCatalog,
)


@pytest.fixture
def spec() -> InstanceSpec:
    return InstanceSpec(
        cluster="c1",
        zone="3",
        sku="1",
        kernel_id=138,
        image_id=146,
        root_password="s3cret",
    )


@pytest.fixture
def catalog() -> StaticCatalog:
    return StaticCatalog.from_plans(
        "linode",
        [
            MachineType("1", disk_gb=20, memory_mb=1024),
            MachineType("2", disk_gb=48, memory_mb=2048, cpus=2),
        ],
    )


@pytest.fixture
def config() -> ProvisionerConfig:
    return ProvisionerConfig(poll_interval=0.01, convergence_timeout=2.0)


@pytest.fixture
def client() -> InMemoryResourceClient:
    return InMemoryResourceClient(brand_new_after=1, running_after=2)


@pytest.fixture
def events() -> list[ProvisioningEvent]:
    return []
