"""Discover-then-connect flow for one device.

:class:`DeviceConnector` ties the pieces together the way the ``bctl``
command runs them::

    connector = DeviceConnector(PeerAddress.parse("AA:BB:CC:DD:EE:FF"))
    await connector.run(ctx)

which is equivalent to::

    await connector.init()
    await connector.discover()
    try:
        await connector.connect(ctx)
    finally:
        await connector.cancel_discovery()
        await connector.wait(ctx)          # cancellation ignored

Discovery runs in the background while the connect loop retries: the
scan is what makes BlueZ create the device object the connect loop
needs, so the first few attempts usually fail with
``DeviceResolutionError`` until the device has advertised.
"""

from __future__ import annotations

import logging

from bleak.exc import BleakError

from .address import PeerAddress
from .adapters import AdapterHandle, get_default_adapter
from .connection import connect_with_retry
from .const import ConnectConfig
from .context import RunContext
from .exceptions import OperationCancelled
from .scanner import ScanSession, start_discovery

_LOGGER = logging.getLogger(__name__)


class DeviceConnector:
    """Find and connect one device through the default (or configured) adapter.

    Parameters
    ----------
    address:
        The device to connect.
    config:
        Run configuration.  Defaults to :class:`ConnectConfig()`.
    """

    def __init__(self, address: PeerAddress, config: ConnectConfig | None = None) -> None:
        self.address = address
        self.config = config or ConnectConfig()
        self.adapter: AdapterHandle | None = None
        self.session: ScanSession | None = None

    async def init(self) -> AdapterHandle:
        """Look up the adapter.  Raises ``SetupError``."""
        self.adapter = await get_default_adapter(
            self.config.adapter, bluez_timeout=self.config.bluez_timeout
        )
        return self.adapter

    async def discover(self) -> ScanSession:
        """Start background discovery.  Raises ``DiscoveryStartError``."""
        if self.adapter is None:
            raise RuntimeError("init() must be called before discover()")
        self.session = await start_discovery(self.adapter, self.address)
        return self.session

    async def wait(self, ctx: RunContext) -> None:
        """Block until discovery concludes or *ctx* is cancelled.

        Returns immediately if discovery was never started.
        """
        if self.session is not None:
            await self.session.wait(ctx)

    async def cancel_discovery(self) -> None:
        """Stop discovery.  Safe to call any number of times."""
        if self.session is None:
            return
        try:
            await self.session.cancel()
        except (BleakError, OSError, EOFError):
            _LOGGER.debug("%s: Failed to stop discovery", self.address, exc_info=True)

    async def connect(self, ctx: RunContext) -> int:
        """Retry pair + connect until connected.  Raises ``OperationCancelled``."""
        if self.adapter is None:
            raise RuntimeError("init() must be called before connect()")
        return await connect_with_retry(
            ctx, self.adapter.id, self.address, self.config.retry_interval
        )

    async def run(self, ctx: RunContext) -> None:
        """Init, discover and connect.

        Raises ``SetupError`` / ``DiscoveryStartError`` on fatal errors
        and ``OperationCancelled`` if *ctx* is cancelled before the
        device connects.  Discovery is always stopped on the way out.
        """
        await self.init()
        await self.discover()
        try:
            attempts = await self.connect(ctx)
            _LOGGER.debug("%s: Connected after %d attempt(s)", self.address, attempts)
        finally:
            await self.cancel_discovery()
            if self.config.wait_for_discovery:
                try:
                    await self.wait(ctx)
                except OperationCancelled:
                    pass
