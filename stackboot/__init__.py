"""stackboot - Provision stack-script booted instances on asynchronous IaaS APIs.

Example:

    from stackboot import InstanceSpec, Provisioner, StaticCatalog

    provisioner = Provisioner(client, StaticCatalog.default())
    state = await provisioner.provision(
        InstanceSpec(
            cluster="c1",
            zone="3",
            sku="1",
            kernel_id=138,
            image_id=146,
            root_password="...",
        )
    )
    print(state.name, state.public_ip, state.private_ip)
"""

# Logging (disables the library logger on import)
from stackboot.logging import LogConfig, setup_logging, teardown_logging

# Catalog
from stackboot.catalog import LINODE_PLANS, StaticCatalog

# Configuration
from stackboot.config import ProvisionerConfig, load_config, resolve_config

# Errors
from stackboot.errors import (
    ConvergenceTimeoutError,
    DataInconsistencyError,
    InvalidSpecError,
    ProvisioningCancelledError,
    ProvisioningError,
    RemoteCallError,
    ResourceApiError,
    StateConflictError,
    UnknownMachineTypeError,
)

# Events (ADT)
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

# In-memory provider
from stackboot.memory import InMemoryResourceClient

# Naming
from stackboot.naming import ROOT_DEVICE_NUM, SWAP_DISK_SIZE_MB, derive_name, root_disk_size_mb

# Orchestrator
from stackboot.orchestrator import Provisioner, provision_many

# Protocols
from stackboot.protocols import Catalog, ResourceClient

# Startup scripts
from stackboot.stackscript import (
    DEFAULT_SCRIPT_TEMPLATE,
    find_startup_script,
    render_startup_script,
    script_parameters,
    upsert_startup_script,
)

# Types
from stackboot.types import (
    BootConfigOptions,
    InstanceInfo,
    InstanceSpec,
    InstanceStatus,
    IPAddress,
    MachineType,
    ProvisioningState,
    Stage,
    StartupScript,
    Step,
)

# Polling
from stackboot.wait import poll_until

__version__ = "0.1.0"

__all__ = [
    # Logging
    "LogConfig",
    "setup_logging",
    "teardown_logging",
    # Catalog
    "LINODE_PLANS",
    "StaticCatalog",
    # Configuration
    "ProvisionerConfig",
    "load_config",
    "resolve_config",
    # Errors
    "ConvergenceTimeoutError",
    "DataInconsistencyError",
    "InvalidSpecError",
    "ProvisioningCancelledError",
    "ProvisioningError",
    "RemoteCallError",
    "ResourceApiError",
    "StateConflictError",
    "UnknownMachineTypeError",
    # Events
    "BootJobStarted",
    "EventCallback",
    "ProvisioningCompleted",
    "ProvisioningEvent",
    "ProvisioningFailed",
    "StatusObserved",
    "StepCompleted",
    "StepStarted",
    # In-memory provider
    "InMemoryResourceClient",
    # Naming
    "ROOT_DEVICE_NUM",
    "SWAP_DISK_SIZE_MB",
    "derive_name",
    "root_disk_size_mb",
    # Orchestrator
    "Provisioner",
    "provision_many",
    # Protocols
    "Catalog",
    "ResourceClient",
    # Startup scripts
    "DEFAULT_SCRIPT_TEMPLATE",
    "find_startup_script",
    "render_startup_script",
    "script_parameters",
    "upsert_startup_script",
    # Types
    "BootConfigOptions",
    "InstanceInfo",
    "InstanceSpec",
    "InstanceStatus",
    "IPAddress",
    "MachineType",
    "ProvisioningState",
    "Stage",
    "StartupScript",
    "Step",
    # Polling
    "poll_until",
]
