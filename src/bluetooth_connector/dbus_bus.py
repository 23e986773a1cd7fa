"""Shared D-Bus system bus for BlueZ method calls.

Provides a single long-lived ``MessageBus`` connection to the system
D-Bus daemon, reused by every adapter and device operation of a run
(property reads, ``Pair``, ``Connect``).  A connect loop that retries
every few seconds for minutes would otherwise open and authenticate a
new Unix socket on every attempt.

All calls go through :func:`call_bluez`, which sends a raw
``bus.call(Message(...))`` instead of building proxy objects.  That
skips the ``bus.introspect()`` round-trip and never triggers
``dbus-fast``'s high-level client, whose fire-and-forget ``AddMatch``
logs errors when the bus goes away before the reply.

Thread / async safety
---------------------

The bus is lazily created on first use and reconnects if the
connection dropped or the running event loop changed.  There is no
cross-thread sharing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .const import IS_LINUX
from .exceptions import BlueZError

_LOGGER = logging.getLogger(__name__)

BLUEZ_SERVICE = "org.bluez"

_bus: object | None = None  # dbus_fast.aio.MessageBus, typed loosely to avoid import on non-Linux
_bus_loop: object | None = None  # The event loop the bus was created on


async def get_bus():
    """Get the shared system D-Bus connection, creating or reconnecting as needed.

    Returns a connected ``dbus_fast.aio.MessageBus`` instance.

    If the running event loop differs from the one the bus was created
    on, the old bus is discarded and a fresh one is created, otherwise
    awaiting its replies would fail with ``Future attached to a
    different loop``.

    Raises ``RuntimeError`` on non-Linux platforms.
    """
    global _bus, _bus_loop

    if not IS_LINUX:
        raise RuntimeError("The BlueZ system bus is only available on Linux")

    from dbus_fast.aio import MessageBus
    from dbus_fast.constants import BusType

    current_loop = asyncio.get_running_loop()

    if _bus is not None:
        if _bus_loop is not current_loop:
            _LOGGER.debug(
                "Shared D-Bus bus was created on a different event loop, "
                "reconnecting on current loop"
            )
            _disconnect_quietly(_bus)
            _bus = None
        elif _bus.connected:
            return _bus
        else:
            _LOGGER.debug("Shared D-Bus bus disconnected, reconnecting")

    _bus = await MessageBus(bus_type=BusType.SYSTEM).connect()
    _bus_loop = current_loop
    _LOGGER.debug("Shared D-Bus bus connected")
    return _bus


def _disconnect_quietly(bus: Any) -> None:
    try:
        bus.disconnect()
    except (OSError, EOFError):
        _LOGGER.debug("Error while disconnecting D-Bus bus", exc_info=True)


async def call_bluez(
    path: str,
    interface: str,
    member: str,
    signature: str = "",
    body: list[Any] | None = None,
) -> list[Any]:
    """Call a BlueZ method and return the reply body.

    Raises :class:`BlueZError` when BlueZ answers with an error reply.
    Transport problems surface as ``OSError`` / ``EOFError`` from
    ``dbus-fast``.
    """
    from dbus_fast import Message, MessageType

    bus = await get_bus()
    reply = await bus.call(
        Message(
            destination=BLUEZ_SERVICE,
            path=path,
            interface=interface,
            member=member,
            signature=signature,
            body=body or [],
        )
    )
    if reply.message_type == MessageType.ERROR:
        detail = reply.body[0] if reply.body else ""
        raise BlueZError(reply.error_name or "org.freedesktop.DBus.Error.Failed", str(detail))
    return reply.body


async def _ping_bluez() -> bool:
    """Single fast D-Bus check for ``org.bluez`` availability.

    Returns ``True`` if BlueZ responded (any non-ServiceUnknown reply).
    """
    try:
        await call_bluez(
            "/org/bluez",
            "org.freedesktop.DBus.Properties",
            "GetAll",
            "s",
            ["org.bluez.AgentManager1"],
        )
        return True
    except BlueZError as exc:
        if "ServiceUnknown" in exc.error_name or "UnknownObject" in exc.error_name:
            return False
        return True
    except (OSError, EOFError, RuntimeError):
        _LOGGER.debug("BlueZ ping failed", exc_info=True)
        return False


async def wait_for_bluez(
    timeout: float = 30.0,
    poll_interval: float = 1.0,
) -> bool:
    """Wait until ``org.bluez`` is available on the system D-Bus.

    At boot the tool may start before ``bluetoothd`` has registered on
    D-Bus.  Any BlueZ call made before that fails with::

        org.freedesktop.DBus.Error.ServiceUnknown:
        The name org.bluez was not provided by any .service files

    Polls until ``org.bluez`` answers or *timeout* seconds have elapsed.
    Returns ``True`` if BlueZ became available, ``False`` on timeout.
    """
    if not IS_LINUX:
        return True

    elapsed = 0.0
    while True:
        if await _ping_bluez():
            if elapsed > 0:
                _LOGGER.info("BlueZ ready on D-Bus after %.1fs", elapsed)
            else:
                _LOGGER.debug("BlueZ ready on D-Bus")
            return True

        if elapsed >= timeout:
            break

        _LOGGER.debug(
            "Waiting for BlueZ on D-Bus (%.1fs / %.0fs)...",
            elapsed, timeout,
        )
        await asyncio.sleep(poll_interval)
        elapsed += poll_interval

    _LOGGER.warning("BlueZ did not appear on D-Bus after %.0fs", timeout)
    return False


async def close_bus() -> None:
    """Disconnect the shared bus if it's open.

    Safe to call even if no bus was ever created.
    """
    global _bus, _bus_loop
    if _bus is not None:
        _disconnect_quietly(_bus)
        _bus = None
        _bus_loop = None
