"""Background discovery of one target device.

:func:`start_discovery` starts a ``BleakScanner`` on the adapter and
returns a :class:`ScanSession`.  A background task consumes the
scanner's detections and stops the scan as soon as the target address
shows up.  The caller keeps going (typically straight into the connect
loop) and uses the session to:

- **cancel**: stop the scan.  Idempotent and safe to call while the
  background task is stopping it too: the underlying ``stop()`` runs
  exactly once (see :class:`~bluetooth_connector.once.OnceGate`).
- **wait**: block until discovery has concluded, or the run context
  is cancelled.

Discovery concluding does not mean the device was found: when the scan
is cancelled from elsewhere, the stream just ends.  :attr:`matched`
tells the two apart for callers that care.

The scan uses the adapter's default discovery criteria, no service or
manufacturer filter.  BlueZ populates a ``Device1`` object for every
device it sees while discovering, which is what lets the connect loop
resolve the target once it has advertised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from .address import PeerAddress
from .adapters import AdapterHandle
from .const import IS_LINUX
from .context import RunContext
from .exceptions import DiscoveryStartError
from .once import OnceGate

_LOGGER = logging.getLogger(__name__)

# Detection queue entry.  ``None`` closes the stream.
_Detection = Optional[tuple[BLEDevice, AdvertisementData]]


class ScanSession:
    """An active discovery for one target address.

    Created by :func:`start_discovery`; not meant to be built directly.
    """

    def __init__(self, adapter: AdapterHandle, target: PeerAddress) -> None:
        self.adapter = adapter
        self.target = target
        self.matched = False
        self.done = asyncio.Event()
        self.cancel = OnceGate(self._stop)
        self._scanner: BleakScanner | None = None
        self._events: asyncio.Queue[_Detection] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        state = "done" if self.done.is_set() else "running"
        return f"<ScanSession {self.target} on {self.adapter.name} {state}>"

    @property
    def stopped(self) -> bool:
        """Whether the scan has been (or is being) stopped."""
        return self.cancel.called

    def _on_detection(self, device: BLEDevice, advertisement_data: AdvertisementData) -> None:
        if self.cancel.called:
            return
        self._events.put_nowait((device, advertisement_data))

    async def _start(self) -> None:
        kwargs: dict[str, Any] = {}
        if IS_LINUX:
            kwargs["adapter"] = self.adapter.name

        try:
            self._scanner = BleakScanner(
                detection_callback=self._on_detection, **kwargs
            )
            await self._scanner.start()
        except (BleakError, OSError, EOFError) as exc:
            raise DiscoveryStartError(
                f"discover devices on {self.adapter.name}: {exc}"
            ) from exc

        self._task = asyncio.create_task(
            self._consume(), name=f"discovery-{self.target}"
        )

    async def _stop(self) -> None:
        """Stop the scanner and close the detection stream."""
        try:
            if self._scanner is not None:
                await self._scanner.stop()
                _LOGGER.debug("%s: Discovery stopped on %s", self.target, self.adapter.name)
        finally:
            self._events.put_nowait(None)

    async def _consume(self) -> None:
        try:
            _LOGGER.info("%s: Discovery started on %s", self.target, self.adapter.name)
            while True:
                event = await self._events.get()
                if event is None:
                    _LOGGER.debug("%s: Discovery stream closed", self.target)
                    return
                device, _ = event
                _LOGGER.debug("%s: Scanned device %s", self.target, device.address)
                try:
                    address = PeerAddress.parse(device.address)
                except ValueError:
                    _LOGGER.debug(
                        "%s: Cannot resolve address of %r, skipping",
                        self.target,
                        device.address,
                        exc_info=True,
                    )
                    continue

                if address == self.target:
                    _LOGGER.info("%s: Expected device found", self.target)
                    self.matched = True
                    return
        finally:
            try:
                await self.cancel()
            except (BleakError, OSError, EOFError):
                _LOGGER.debug(
                    "%s: Stopping discovery failed", self.target, exc_info=True
                )
            self.done.set()

    async def wait(self, ctx: RunContext) -> None:
        """Block until discovery concludes.

        Raises :class:`~bluetooth_connector.exceptions.OperationCancelled`
        if *ctx* is cancelled first.  Does not stop the scan.
        """
        if self.done.is_set():
            return
        await ctx.guard(self.done.wait())


async def start_discovery(adapter: AdapterHandle, target: PeerAddress) -> ScanSession:
    """Start scanning on *adapter* for *target* in the background.

    Returns once the scan is running.  Always invoke
    ``await session.cancel()`` when done with the session; it is a
    no-op if the scan already stopped.

    Raises
    ------
    DiscoveryStartError
        The adapter rejected the scan (``InProgress``, powered off, ...).
    """
    session = ScanSession(adapter, target)
    await session._start()
    return session
