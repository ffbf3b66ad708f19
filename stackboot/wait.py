"""Bounded polling for asynchronous provider state.

The provider applies changes in the background, so the only way to know an
instance reached a state is to look again. ``poll_until`` re-runs a check on
a fixed cadence until it reports convergence, fails for real, or the deadline
passes.

Example:
    async def is_running() -> bool:
        infos = await client.list_instances(instance_id)
        return bool(infos) and infos[0].status is InstanceStatus.RUNNING

    await poll_until(
        is_running,
        interval=5.0,
        timeout=300.0,
        transient=(ResourceApiError,),
        description=f"instance {instance_id} to be running",
    )
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeAlias

from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, wait_fixed

from stackboot.errors import ConvergenceTimeoutError, ProvisioningCancelledError

__all__ = ["poll_until"]

Check: TypeAlias = Callable[[], Awaitable[bool]]


class _NotYetError(Exception):
    """Condition not observed yet - retry."""


def _sleeper(cancel: asyncio.Event | None, description: str) -> Callable[[float], Awaitable[None]]:
    async def sleep(seconds: float) -> None:
        if cancel is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(cancel.wait(), timeout=seconds)
        except TimeoutError:
            return
        raise ProvisioningCancelledError(f"Cancelled while waiting for {description}")

    return sleep


async def poll_until(
    check: Check,
    *,
    interval: float = 5.0,
    timeout: float = 300.0,
    transient: tuple[type[Exception], ...] = (),
    cancel: asyncio.Event | None = None,
    description: str = "resource",
) -> int:
    """Wait until ``check`` returns True.

    The first observation is made immediately, then one every ``interval``
    seconds. Observations never overlap.

    Args:
        check: Async function making one observation. True means converged,
            False means not yet.
        interval: Seconds between observations.
        timeout: Maximum total wait in seconds.
        transient: Exception types raised by ``check`` that count as "not yet"
            (e.g. a resource briefly missing from a listing). Anything else
            is unrecoverable and propagates at once.
        cancel: Optional event; setting it aborts the wait without waiting
            for the next tick.
        description: Description for log and error messages.

    Returns:
        Number of observations made.

    Raises:
        ConvergenceTimeoutError: If the deadline passes first.
        ProvisioningCancelledError: If ``cancel`` is set.
    """
    if interval <= 0:
        raise ValueError(f"interval must be positive, got {interval}")
    if timeout <= 0:
        raise ValueError(f"timeout must be positive, got {timeout}")

    log = logger.bind(component="poller", target=description)
    attempts = 0
    last_error: Exception | None = None

    async def observe() -> None:
        nonlocal attempts, last_error
        if cancel is not None and cancel.is_set():
            raise ProvisioningCancelledError(f"Cancelled while waiting for {description}")
        attempts += 1
        try:
            converged = await check()
        except transient as e:
            last_error = e
            log.debug(
                "Attempt {n}: transient error, retrying: {error}",
                n=attempts, error=e,
            )
            raise _NotYetError() from e
        if not converged:
            log.trace("Attempt {n}: not converged", n=attempts)
            raise _NotYetError()

    retrying = AsyncRetrying(
        wait=wait_fixed(interval),
        retry=retry_if_exception_type(_NotYetError),
        sleep=_sleeper(cancel, description),
        reraise=True,
    )

    deadline = asyncio.timeout(timeout)
    try:
        async with deadline:
            await retrying(observe)
    except TimeoutError as e:
        if not deadline.expired():
            raise
        log.warning(
            "Gave up after {timeout:.1f}s and {n} attempts",
            timeout=timeout, n=attempts,
        )
        raise ConvergenceTimeoutError(description, timeout, attempts, last_error) from e

    log.debug("Converged after {n} attempts", n=attempts)
    return attempts
