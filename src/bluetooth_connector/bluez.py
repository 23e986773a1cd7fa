"""BlueZ D-Bus adapter and device operations.

Thin wrappers around ``org.bluez.Adapter1`` and ``org.bluez.Device1``
using the shared bus from :mod:`bluetooth_connector.dbus_bus`.  Errors
are not interpreted here: BlueZ error replies surface as
:class:`~bluetooth_connector.exceptions.BlueZError` and the caller
decides whether they are fatal or retryable.

``bleak`` handles scanning but does not expose pairing state, and its
``BleakClient.connect()`` only opens a GATT link that is torn down with
the client.  ``Device1.Connect`` connects every profile the device
offers and the connection outlives this process, which is what a
"connect and exit" tool needs.
"""

from __future__ import annotations

import logging
from typing import Any

from .address import PeerAddress
from .dbus_bus import call_bluez

_LOGGER = logging.getLogger(__name__)

# D-Bus constants
_ADAPTER_INTERFACE = "org.bluez.Adapter1"
_DEVICE_INTERFACE = "org.bluez.Device1"
_PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"

# BlueZ error names that mean "already in the requested state".
ERROR_ALREADY_EXISTS = "org.bluez.Error.AlreadyExists"
ERROR_ALREADY_CONNECTED = "org.bluez.Error.AlreadyConnected"


def adapter_to_bluez_path(adapter: str) -> str:
    """Return the D-Bus object path of an adapter.

    Example::

        >>> adapter_to_bluez_path("hci1")
        '/org/bluez/hci1'
    """
    return f"/org/bluez/{adapter}"


def address_to_bluez_path(address: str | PeerAddress, adapter: str = "hci0") -> str:
    """Convert a device address + adapter to a BlueZ D-Bus object path.

    Example::

        >>> address_to_bluez_path("AA:BB:CC:DD:EE:FF", "hci0")
        '/org/bluez/hci0/dev_AA_BB_CC_DD_EE_FF'
    """
    dev_part = f"dev_{str(address).upper().replace(':', '_')}"
    return f"{adapter_to_bluez_path(adapter)}/{dev_part}"


def _unwrap(props: dict[str, Any]) -> dict[str, Any]:
    return {k: getattr(v, "value", v) for k, v in props.items()}


async def get_adapter_properties(adapter: str = "hci0") -> dict[str, Any]:
    """Fetch ``org.bluez.Adapter1`` properties as plain values.

    Raises ``BlueZError`` (``UnknownObject``) when the adapter does not
    exist.
    """
    body = await call_bluez(
        adapter_to_bluez_path(adapter),
        _PROPERTIES_INTERFACE,
        "GetAll",
        "s",
        [_ADAPTER_INTERFACE],
    )
    return _unwrap(body[0])


class BluezDevice:
    """A BlueZ ``Device1`` object for one address on one adapter.

    Obtain instances with :meth:`resolve`, which fails if BlueZ does not
    know the device on that adapter yet (it has not been seen by a scan
    and is not bonded).
    """

    def __init__(self, address: PeerAddress, adapter: str, properties: dict[str, Any]) -> None:
        self.address = address
        self.adapter = adapter
        self.path = address_to_bluez_path(address, adapter)
        self.properties = properties

    def __repr__(self) -> str:
        return f"<BluezDevice {self.address} on {self.adapter}>"

    @classmethod
    async def resolve(cls, adapter: str, address: PeerAddress) -> BluezDevice:
        """Look up the device object for *address* on *adapter*."""
        body = await call_bluez(
            address_to_bluez_path(address, adapter),
            _PROPERTIES_INTERFACE,
            "GetAll",
            "s",
            [_DEVICE_INTERFACE],
        )
        return cls(address, adapter, _unwrap(body[0]))

    async def _get(self, name: str) -> Any:
        body = await call_bluez(
            self.path,
            _PROPERTIES_INTERFACE,
            "Get",
            "ss",
            [_DEVICE_INTERFACE, name],
        )
        value = getattr(body[0], "value", body[0])
        self.properties[name] = value
        return value

    async def is_paired(self) -> bool:
        """Read the current ``Paired`` property from BlueZ."""
        return bool(await self._get("Paired"))

    async def pair(self) -> None:
        """Call ``Device1.Pair``.

        Blocks until pairing completes or fails; BlueZ drives the agent
        interaction.
        """
        _LOGGER.debug("%s: Pairing via %s", self.address, self.path)
        await call_bluez(self.path, _DEVICE_INTERFACE, "Pair")

    async def connect(self) -> None:
        """Call ``Device1.Connect``."""
        _LOGGER.debug("%s: Connecting via %s", self.address, self.path)
        await call_bluez(self.path, _DEVICE_INTERFACE, "Connect")
