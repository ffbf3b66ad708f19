"""Instance naming and disk layout."""

from __future__ import annotations

from stackboot.errors import DataInconsistencyError

__all__ = [
    "SWAP_DISK_SIZE_MB",
    "ROOT_DEVICE_NUM",
    "derive_name",
    "root_disk_size_mb",
]

SWAP_DISK_SIZE_MB = 512
ROOT_DEVICE_NUM = 1


def derive_name(cluster: str, public_ip: str) -> str:
    """Build the instance name from the cluster and its public IPv4 address.

    Each octet is zero padded to three digits so names sort and grep by
    address:

        >>> derive_name("c1", "203.0.113.7")
        'c1-203-000-113-007'
    """
    parts = public_ip.split(".")
    if len(parts) != 4 or not all(p.isascii() and p.isdigit() and int(p) <= 255 for p in parts):
        raise DataInconsistencyError("public address is not a dotted IPv4 address", public_ip)
    return "-".join([cluster, *(f"{int(p):03d}" for p in parts)])


def root_disk_size_mb(disk_gb: int) -> int:
    """Root disk size for a plan: the plan's disk minus the swap partition."""
    return disk_gb * 1024 - SWAP_DISK_SIZE_MB
