"""Table-backed machine type catalog."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from stackboot.errors import UnknownMachineTypeError
from stackboot.types import MachineType

__all__ = [
    "LINODE_PLANS",
    "StaticCatalog",
]


# Linode plans by plan ID (disk in GB, memory in MB).
LINODE_PLANS: list[MachineType] = [
    MachineType("1", disk_gb=20, memory_mb=1024, cpus=1, description="Linode 1024"),
    MachineType("2", disk_gb=48, memory_mb=2048, cpus=1, description="Linode 2048"),
    MachineType("3", disk_gb=96, memory_mb=4096, cpus=2, description="Linode 4096"),
    MachineType("4", disk_gb=192, memory_mb=8192, cpus=4, description="Linode 8192"),
    MachineType("5", disk_gb=384, memory_mb=16384, cpus=6, description="Linode 16384"),
    MachineType("6", disk_gb=768, memory_mb=32768, cpus=8, description="Linode 32768"),
]


class StaticCatalog:
    """Catalog answering from a fixed ``(provider, sku) -> MachineType`` table."""

    def __init__(self, entries: Mapping[tuple[str, str], MachineType]) -> None:
        self._entries = MappingProxyType(dict(entries))

    @classmethod
    def from_plans(cls, provider: str, plans: Iterable[MachineType]) -> StaticCatalog:
        return cls({(provider, plan.sku): plan for plan in plans})

    @classmethod
    def default(cls) -> StaticCatalog:
        return cls.from_plans("linode", LINODE_PLANS)

    def machine_type(self, provider: str, sku: str) -> MachineType:
        try:
            return self._entries[(provider, sku)]
        except KeyError:
            raise UnknownMachineTypeError(provider, sku) from None

    def __len__(self) -> int:
        return len(self._entries)
