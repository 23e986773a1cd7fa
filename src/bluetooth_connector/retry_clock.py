"""Immediate-then-periodic schedule for the connect loop."""

from __future__ import annotations

import asyncio
import math

from .context import RunContext


class RetryClock:
    """A ticker that also fires once right away.

    Ticks are scheduled every *interval* seconds from the moment the
    clock is first waited on.  The first :meth:`wait` returns
    immediately without consuming a tick.  Like a ticker with a
    one-slot buffer, ticks missed while the caller was busy collapse
    into a single immediate tick; the schedule then continues at the
    next future multiple of *interval*, so a slow attempt delays the
    next one but never causes a burst.
    """

    def __init__(self, interval: float) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.interval = interval
        self._immediate = True
        self._next_tick: float | None = None

    async def wait(self, ctx: RunContext) -> None:
        """Wait for the next tick.

        Raises :class:`~bluetooth_connector.exceptions.OperationCancelled`
        if *ctx* is cancelled before or during the wait.  Cancellation is
        checked first, so an already-cancelled context never yields a
        tick.
        """
        ctx.raise_if_cancelled()

        loop = asyncio.get_running_loop()
        if self._next_tick is None:
            self._next_tick = loop.time() + self.interval

        if self._immediate:
            self._immediate = False
            return

        delay = self._next_tick - loop.time()
        if delay > 0:
            await ctx.guard(asyncio.sleep(delay))

        # Advance to the first tick strictly after now.
        behind = max(0.0, loop.time() - self._next_tick)
        self._next_tick += self.interval * (math.floor(behind / self.interval) + 1)
