"""Tests for once module — the run-once stop gate."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from bluetooth_connector.once import OnceGate


@pytest.mark.asyncio
async def test_runs_once_when_called_repeatedly():
    stop = AsyncMock()
    gate = OnceGate(stop)

    await gate()
    await gate()
    await gate()

    stop.assert_awaited_once()
    assert gate.called
    assert gate.done


@pytest.mark.asyncio
async def test_runs_once_under_concurrency():
    calls = 0

    async def slow_stop():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.05)

    gate = OnceGate(slow_stop)
    await asyncio.gather(*(gate() for _ in range(10)))

    assert calls == 1
    assert gate.done


@pytest.mark.asyncio
async def test_late_callers_wait_for_first_run():
    finished = asyncio.Event()
    release = asyncio.Event()

    async def stop():
        await release.wait()
        finished.set()

    gate = OnceGate(stop)
    first = asyncio.create_task(gate())
    await asyncio.sleep(0)
    second = asyncio.create_task(gate())
    await asyncio.sleep(0.01)

    # Second caller must not return before the stop has finished.
    assert not second.done()
    release.set()
    await asyncio.gather(first, second)
    assert finished.is_set()


@pytest.mark.asyncio
async def test_only_first_caller_sees_error():
    stop = AsyncMock(side_effect=RuntimeError("stop failed"))
    gate = OnceGate(stop)

    with pytest.raises(RuntimeError, match="stop failed"):
        await gate()
    await gate()  # Should not raise

    stop.assert_awaited_once()
    assert gate.done


@pytest.mark.asyncio
async def test_concurrent_waiter_does_not_see_error():
    async def failing_stop():
        await asyncio.sleep(0.01)
        raise RuntimeError("boom")

    gate = OnceGate(failing_stop)
    results = await asyncio.gather(gate(), gate(), return_exceptions=True)

    assert isinstance(results[0], RuntimeError)
    assert results[1] is None


def test_not_called_initially():
    gate = OnceGate(AsyncMock())
    assert not gate.called
    assert not gate.done


@pytest.mark.asyncio
async def test_cancelled_waiter_leaves_first_run_intact():
    release = asyncio.Event()
    calls = 0

    async def stop():
        nonlocal calls
        calls += 1
        await release.wait()

    gate = OnceGate(stop)
    first = asyncio.create_task(gate())
    await asyncio.sleep(0)
    assert gate.called
    assert not gate.done

    waiter = asyncio.create_task(gate())
    await asyncio.sleep(0)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    release.set()
    await first
    assert gate.done
    await gate()  # Returns immediately once finished
    assert calls == 1
