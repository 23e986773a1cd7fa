"""Run-once gate for async stop operations.

A scan can be stopped from two places at the same time: the discovery
task when it finds the device, and the caller's cleanup on the way out.
BlueZ rejects a second ``StopDiscovery`` with ``Failed: No discovery
started``, and bleak raises when stopping a scanner twice, so the real
stop must run once no matter who gets there first.

Usage::

    stop = OnceGate(scanner.stop)
    await asyncio.gather(stop(), stop())   # scanner.stop() awaited once
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable


class OnceGate:
    """Wrap an async callable so it runs at most once.

    The first call runs *func*.  Calls made while it is running wait
    for it to finish; calls made afterwards return immediately.  Only
    the first caller sees an exception raised by *func*; everyone else
    just observes that the operation is over.

    Safe for any number of coroutines on one event loop: the shared
    future is checked and created with no ``await`` in between, so
    callers cannot interleave.
    """

    __slots__ = ("_func", "_finished")

    def __init__(self, func: Callable[[], Awaitable[object]]) -> None:
        self._func = func
        self._finished: asyncio.Future[None] | None = None

    @property
    def called(self) -> bool:
        """Whether the wrapped operation has been started."""
        return self._finished is not None

    @property
    def done(self) -> bool:
        """Whether the wrapped operation has finished (successfully or not)."""
        return self._finished is not None and self._finished.done()

    async def __call__(self) -> None:
        finished = self._finished
        if finished is not None:
            # Shield so a cancelled waiter does not cancel the shared future.
            await asyncio.shield(finished)
            return

        finished = self._finished = asyncio.get_running_loop().create_future()
        try:
            await self._func()
        finally:
            finished.set_result(None)
