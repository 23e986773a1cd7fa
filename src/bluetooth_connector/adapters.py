"""Adapter enumeration and the default-controller lookup.

Wraps ``bluetooth-adapters`` for enumeration, with a
``/sys/class/bluetooth`` fallback, and turns the chosen controller into
an :class:`AdapterHandle` after confirming BlueZ knows about it.
"""

from __future__ import annotations

import logging
import pathlib
from dataclasses import dataclass

from .bluez import adapter_to_bluez_path, get_adapter_properties
from .const import BLUEZ_READY_TIMEOUT, DEFAULT_ADAPTER, IS_LINUX
from .dbus_bus import wait_for_bluez
from .exceptions import BlueZError, SetupError

_LOGGER = logging.getLogger(__name__)

_SYS_BLUETOOTH = pathlib.Path("/sys/class/bluetooth")


@dataclass(frozen=True)
class AdapterHandle:
    """Reference to a local Bluetooth controller.

    Holds no peripheral state.  :attr:`id` (the adapter name, e.g.
    ``"hci0"``) scopes device operations to this controller.
    """

    name: str
    address: str = ""

    @property
    def id(self) -> str:
        return self.name

    @property
    def path(self) -> str:
        return adapter_to_bluez_path(self.name)


def discover_adapters() -> list[str]:
    """Discover available Bluetooth adapters on the system.

    Uses ``bluetooth-adapters`` when available, falls back to
    ``/sys/class/bluetooth/`` enumeration.

    Returns a sorted list of adapter names (e.g. ``["hci0", "hci1"]``).
    Returns ``["hci0"]`` as a safe default if no adapters are found.
    """
    if not IS_LINUX:
        return [DEFAULT_ADAPTER]

    try:
        from bluetooth_adapters import get_adapters_from_hci

        adapters_from_hci = get_adapters_from_hci()
        if adapters_from_hci:
            names = sorted(a["name"] for a in adapters_from_hci.values())
            if names:
                _LOGGER.debug("Discovered adapters via bluetooth-adapters: %s", names)
                return names
    except Exception:
        _LOGGER.debug(
            "bluetooth-adapters enumeration failed, trying /sys",
            exc_info=True,
        )

    try:
        if _SYS_BLUETOOTH.exists():
            adapters = sorted(
                d.name for d in _SYS_BLUETOOTH.iterdir() if d.name.startswith("hci")
            )
            if adapters:
                _LOGGER.debug("Discovered adapters via /sys: %s", adapters)
                return adapters
    except OSError:
        _LOGGER.debug("Failed to enumerate /sys/class/bluetooth", exc_info=True)

    return [DEFAULT_ADAPTER]


async def get_default_adapter(
    name: str | None = None,
    *,
    bluez_timeout: float = BLUEZ_READY_TIMEOUT,
) -> AdapterHandle:
    """Return a handle for *name*, or for the first adapter on the system.

    Waits up to *bluez_timeout* seconds for ``org.bluez`` to appear on
    the system bus, then reads the adapter's properties to make sure it
    exists.

    Raises
    ------
    SetupError
        Not on Linux, BlueZ is not running, or the adapter is unknown.
    """
    if not IS_LINUX:
        raise SetupError("BlueZ adapters are only available on Linux")

    if not await wait_for_bluez(timeout=bluez_timeout):
        raise SetupError(
            f"BlueZ is not available on the system D-Bus after {bluez_timeout:.0f}s"
        )

    adapter = name or discover_adapters()[0]
    try:
        props = await get_adapter_properties(adapter)
    except (BlueZError, OSError, EOFError) as exc:
        raise SetupError(f"get default adapter {adapter}: {exc}") from exc

    if not props.get("Powered", False):
        _LOGGER.warning(
            "%s: Adapter is not powered, discovery will likely be rejected",
            adapter,
        )

    handle = AdapterHandle(name=adapter, address=str(props.get("Address", "")))
    _LOGGER.debug("Using adapter %s (%s)", handle.name, handle.address or "unknown address")
    return handle
