"""Cancellable run context shared by discovery and the connect loop.

One :class:`RunContext` represents the lifetime of a run.  The CLI
cancels it on SIGINT/SIGTERM; every operation that waits (the retry
clock, the discovery wait barrier) races its wait against the context
and gives up with :class:`OperationCancelled` once it is cancelled.

Work that is already running is never interrupted by the context:
only the waits between pieces of work are.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Awaitable
from typing import TypeVar

from .exceptions import OperationCancelled

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class RunContext:
    """A cancel-once flag with a reason that coroutines can wait on."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        """Why the context was cancelled, or ``None`` while it is live."""
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Cancel the context.  Only the first reason is kept."""
        if self._event.is_set():
            return
        self._reason = reason
        _LOGGER.debug("Run context cancelled: %s", reason)
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self._reason or "cancelled")

    async def wait(self) -> None:
        """Block until the context is cancelled."""
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[_T]) -> _T:
        """Await *awaitable* unless the context is cancelled first.

        Raises :class:`OperationCancelled` if the context is already
        cancelled or becomes cancelled before *awaitable* completes.
        When both are ready at the same time cancellation wins, so
        shutdown stays deterministic.  Whatever is still pending is
        cancelled before returning.
        """
        if self._event.is_set():
            # Close an unstarted coroutine so it does not warn.
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()

        work = asyncio.ensure_future(awaitable)
        cancel_waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait(
                {work, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            pending = [f for f in (work, cancel_waiter) if not f.done()]
            for fut in pending:
                fut.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if cancel_waiter.done() and not cancel_waiter.cancelled():
            if work.done() and not work.cancelled():
                work.exception()  # mark retrieved; cancellation wins
            raise OperationCancelled(self._reason or "cancelled")
        return work.result()

    def install_signal_handlers(
        self, loop: asyncio.AbstractEventLoop | None = None
    ) -> None:
        """Cancel this context on SIGINT and SIGTERM.

        Only the first signal is handled: the handlers are removed right
        after it cancels the context, so a second Ctrl+C gets Python's
        default behaviour and interrupts a BlueZ call that never returns.

        Silently does nothing where the loop does not support signal
        handlers (Windows).
        """
        loop = loop or asyncio.get_running_loop()

        def _on_signal(sig: signal.Signals) -> None:
            for other in _STOP_SIGNALS:
                loop.remove_signal_handler(other)
            _LOGGER.info("Stopping, send %s again to exit immediately", sig.name)
            self.cancel(f"received {sig.name}")

        for sig in _STOP_SIGNALS:
            try:
                loop.add_signal_handler(sig, _on_signal, sig)
            except (NotImplementedError, RuntimeError):
                _LOGGER.debug("Signal handlers not supported on this loop")
                return
