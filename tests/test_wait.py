from __future__ import annotations

import asyncio
import time

import pytest

from stackboot.errors import ConvergenceTimeoutError, ProvisioningCancelledError, ResourceApiError
from stackboot.wait import poll_until

pytestmark = [pytest.mark.unit]


def converges_after(not_yet: int):
    calls = {"n": 0}

    async def check() -> bool:
        calls["n"] += 1
        return calls["n"] > not_yet

    return check, calls


class TestConvergence:
    async def test_converged_on_first_observation(self):
        check, calls = converges_after(0)
        attempts = await poll_until(check, interval=10.0, timeout=20.0)
        assert attempts == 1
        assert calls["n"] == 1

    async def test_converges_after_k_not_yet(self):
        check, calls = converges_after(3)
        attempts = await poll_until(check, interval=0.01, timeout=1.0)
        assert attempts == 4
        assert calls["n"] == 4

    async def test_not_yet_never_aborts_early(self):
        check, _ = converges_after(25)
        attempts = await poll_until(check, interval=0.001, timeout=5.0)
        assert attempts == 26

    async def test_observations_are_spaced_by_interval(self):
        check, _ = converges_after(2)
        start = time.monotonic()
        await poll_until(check, interval=0.05, timeout=5.0)
        assert time.monotonic() - start >= 0.09

    async def test_observations_never_overlap(self):
        active = {"now": 0, "max": 0, "n": 0}

        async def check() -> bool:
            active["now"] += 1
            active["max"] = max(active["max"], active["now"])
            await asyncio.sleep(0.02)
            active["now"] -= 1
            active["n"] += 1
            return active["n"] >= 3

        await poll_until(check, interval=0.001, timeout=5.0)
        assert active["max"] == 1


class TestTimeout:
    async def test_fails_at_deadline(self):
        check, calls = converges_after(10**9)
        start = time.monotonic()
        with pytest.raises(ConvergenceTimeoutError) as exc_info:
            await poll_until(check, interval=0.05, timeout=0.3, description="thing")
        elapsed = time.monotonic() - start

        assert 0.29 <= elapsed < 0.5
        assert exc_info.value.attempts == calls["n"]
        assert exc_info.value.timeout == 0.3
        assert "thing" in str(exc_info.value)

    async def test_deadline_not_rounded_up_to_next_tick(self):
        check, _ = converges_after(10**9)
        start = time.monotonic()
        with pytest.raises(ConvergenceTimeoutError):
            await poll_until(check, interval=5.0, timeout=0.1)
        assert time.monotonic() - start < 1.0

    async def test_timeout_is_a_timeout_error(self):
        check, _ = converges_after(10**9)
        with pytest.raises(TimeoutError):
            await poll_until(check, interval=0.01, timeout=0.05)

    async def test_timeout_raised_by_check_is_not_a_convergence_timeout(self):
        async def check() -> bool:
            raise TimeoutError("socket timed out")

        with pytest.raises(TimeoutError, match="socket timed out") as exc_info:
            await poll_until(check, interval=0.01, timeout=5.0)
        assert not isinstance(exc_info.value, ConvergenceTimeoutError)


class TestErrors:
    async def test_unrecoverable_error_is_terminal(self):
        calls = {"n": 0}

        async def check() -> bool:
            calls["n"] += 1
            raise RuntimeError("instance deleted")

        start = time.monotonic()
        with pytest.raises(RuntimeError, match="instance deleted"):
            await poll_until(check, interval=0.01, timeout=10.0, transient=(ResourceApiError,))
        assert calls["n"] == 1
        assert time.monotonic() - start < 1.0

    async def test_transient_errors_count_as_not_yet(self):
        calls = {"n": 0}

        async def check() -> bool:
            calls["n"] += 1
            if calls["n"] <= 2:
                raise ResourceApiError("list_instances", "empty result")
            return True

        attempts = await poll_until(
            check, interval=0.01, timeout=1.0, transient=(ResourceApiError,)
        )
        assert attempts == 3

    async def test_timeout_keeps_last_transient_error(self):
        async def check() -> bool:
            raise ResourceApiError("list_instances", "unavailable", status=503)

        with pytest.raises(ConvergenceTimeoutError) as exc_info:
            await poll_until(check, interval=0.01, timeout=0.1, transient=(ResourceApiError,))
        assert isinstance(exc_info.value.last_error, ResourceApiError)
        assert exc_info.value.attempts > 1

    async def test_rejects_non_positive_interval(self):
        check, _ = converges_after(0)
        with pytest.raises(ValueError, match="interval"):
            await poll_until(check, interval=0, timeout=1.0)

    async def test_rejects_non_positive_timeout(self):
        check, _ = converges_after(0)
        with pytest.raises(ValueError, match="timeout"):
            await poll_until(check, interval=1.0, timeout=-1)


class TestCancellation:
    async def test_cancel_event_interrupts_sleep(self):
        check, calls = converges_after(10**9)
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel.set)

        start = time.monotonic()
        with pytest.raises(ProvisioningCancelledError):
            await poll_until(check, interval=10.0, timeout=60.0, cancel=cancel)
        assert time.monotonic() - start < 1.0
        assert calls["n"] == 1

    async def test_cancel_already_set_makes_no_observation(self):
        check, calls = converges_after(0)
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(ProvisioningCancelledError):
            await poll_until(check, interval=1.0, timeout=5.0, cancel=cancel)
        assert calls["n"] == 0

    async def test_task_cancellation_is_prompt(self):
        check, _ = converges_after(10**9)
        task = asyncio.create_task(poll_until(check, interval=10.0, timeout=60.0))
        await asyncio.sleep(0.05)

        start = time.monotonic()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert time.monotonic() - start < 1.0

    async def test_unset_cancel_event_does_not_interfere(self):
        check, _ = converges_after(2)
        attempts = await poll_until(
            check, interval=0.01, timeout=1.0, cancel=asyncio.Event()
        )
        assert attempts == 3
