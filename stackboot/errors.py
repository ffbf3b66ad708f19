"""Error taxonomy for provisioning runs.

Every error raised out of ``Provisioner.provision`` derives from
``ProvisioningError`` and carries the step it failed in:

- InvalidSpecError: the InstanceSpec could not be parsed or resolved.
  Raised before any remote call.
- RemoteCallError: the provider rejected a create/update/list call.
- ConvergenceTimeoutError: the provider accepted a request but the
  resource never reached the target state within the deadline.
- DataInconsistencyError: an observed resource has an unexpected shape.
- ProvisioningCancelledError: the caller signalled cancellation.

Example:
    try:
        state = await provisioner.provision(spec)
    except ConvergenceTimeoutError as e:
        log.warning("{step} never converged", step=e.step)
    except RemoteCallError as e:
        log.error("{step} rejected: {cause}", step=e.step, cause=e.cause)
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "ProvisioningError",
    "InvalidSpecError",
    "RemoteCallError",
    "ConvergenceTimeoutError",
    "DataInconsistencyError",
    "ProvisioningCancelledError",
    "StateConflictError",
    "ResourceApiError",
    "UnknownMachineTypeError",
]


class ProvisioningError(Exception):
    """Base class for errors raised by a provisioning run."""

    def __init__(self, message: str, *, step: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.step = step

    def __str__(self) -> str:
        if self.step:
            return f"[{self.step}] {self.message}"
        return self.message


class InvalidSpecError(ProvisioningError, ValueError):
    """An InstanceSpec field failed to parse or resolve."""


class RemoteCallError(ProvisioningError):
    """A call to the provider API failed. Never retried."""

    def __init__(self, step: str, cause: BaseException) -> None:
        super().__init__(f"{type(cause).__name__}: {cause}", step=step)
        self.cause = cause


class ConvergenceTimeoutError(ProvisioningError, TimeoutError):
    """A status wait exceeded its deadline without observing the target."""

    def __init__(
        self,
        description: str,
        timeout: float,
        attempts: int,
        last_error: BaseException | None = None,
        *,
        step: str | None = None,
    ) -> None:
        message = (
            f"Timeout waiting for {description} after {timeout:.1f}s "
            f"({attempts} observations)"
        )
        if last_error is not None:
            message += f"; last error: {last_error}"
        super().__init__(message, step=step)
        self.description = description
        self.timeout = timeout
        self.attempts = attempts
        self.last_error = last_error


class DataInconsistencyError(ProvisioningError):
    """An observed resource violates an expected invariant."""

    def __init__(self, message: str, observed: Any = None, *, step: str | None = None) -> None:
        if observed is not None:
            message = f"{message} (observed: {observed!r})"
        super().__init__(message, step=step)
        self.observed = observed


class ProvisioningCancelledError(ProvisioningError):
    """The caller's cancel signal was set while waiting."""


class StateConflictError(ProvisioningError):
    """A set-once ProvisioningState field was assigned a different value."""

    def __init__(self, field: str, current: Any, new: Any) -> None:
        super().__init__(f"{field} already set to {current!r}, refusing {new!r}")
        self.field = field
        self.current = current
        self.new = new


class ResourceApiError(Exception):
    """Error from the provider API, raised by ResourceClient implementations."""

    def __init__(self, operation: str, message: str, status: int | None = None) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.status = status


class UnknownMachineTypeError(LookupError):
    """The catalog has no machine type for the requested provider/SKU."""

    def __init__(self, provider: str, sku: str) -> None:
        super().__init__(f"no machine type for provider {provider!r}, sku {sku!r}")
        self.provider = provider
        self.sku = sku
