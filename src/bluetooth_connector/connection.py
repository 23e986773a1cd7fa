"""Pair-then-connect retry loop.

:func:`connect_with_retry` makes one connection attempt right away and
then one every *interval* seconds until an attempt succeeds or the run
context is cancelled.  There is no attempt limit: the usual failures
(the peripheral has not advertised yet so BlueZ has no device object,
the radio is busy scanning, the peripheral is out of range for a
moment) clear up on their own.

Each attempt walks the same steps and stops at the first failure:

1. resolve the BlueZ device object for the address on the adapter;
2. read ``Paired``;
3. ``Pair()`` unless already paired;
4. ``Connect()``.

Attempts run one at a time and are never interrupted: cancelling the
context while an attempt is in flight takes effect at the next wait.
"""

from __future__ import annotations

import logging

from .address import PeerAddress
from .bluez import ERROR_ALREADY_CONNECTED, ERROR_ALREADY_EXISTS, BluezDevice
from .const import DEFAULT_RETRY_INTERVAL
from .context import RunContext
from .exceptions import (
    AttemptError,
    BlueZError,
    DeviceConnectionError,
    DeviceResolutionError,
    PairingError,
    PairingStateQueryError,
)
from .retry_clock import RetryClock

_LOGGER = logging.getLogger(__name__)

# Failures of a single BlueZ call that the retry loop absorbs.  OSError
# and EOFError come from the D-Bus transport itself.
_CALL_ERRORS = (BlueZError, OSError, EOFError)


async def attempt_connection(adapter_id: str, address: PeerAddress) -> None:
    """Run one resolve/pair/connect pass.

    Raises a subclass of :class:`~bluetooth_connector.exceptions.AttemptError`
    naming the step that failed.
    """
    try:
        device = await BluezDevice.resolve(adapter_id, address)
    except _CALL_ERRORS as exc:
        raise DeviceResolutionError(f"get device {address} on {adapter_id}: {exc}") from exc

    try:
        paired = await device.is_paired()
    except _CALL_ERRORS as exc:
        raise PairingStateQueryError(f"check already paired: {exc}") from exc

    if not paired:
        try:
            await device.pair()
        except BlueZError as exc:
            if exc.error_name != ERROR_ALREADY_EXISTS:
                raise PairingError(f"pair with device: {exc}") from exc
            _LOGGER.debug("%s: Already paired", address)
        except (OSError, EOFError) as exc:
            raise PairingError(f"pair with device: {exc}") from exc
        else:
            _LOGGER.info("%s: Paired", address)

    try:
        await device.connect()
    except BlueZError as exc:
        if exc.error_name != ERROR_ALREADY_CONNECTED:
            raise DeviceConnectionError(f"connect to device: {exc}") from exc
        _LOGGER.debug("%s: Already connected", address)
    except (OSError, EOFError) as exc:
        raise DeviceConnectionError(f"connect to device: {exc}") from exc

    _LOGGER.info("%s: Device connected successfully", address)


async def connect_with_retry(
    ctx: RunContext,
    adapter_id: str,
    address: PeerAddress,
    interval: float = DEFAULT_RETRY_INTERVAL,
) -> int:
    """Attempt to connect until it works or *ctx* is cancelled.

    Parameters
    ----------
    ctx:
        Run context.  Checked before every wait; an attempt that is
        already running completes first.
    adapter_id:
        Adapter name (e.g. ``"hci0"``) the device is reached through.
    address:
        Target device address.
    interval:
        Seconds between attempts.  The first attempt is immediate.

    Returns
    -------
    int
        The number of attempts made, including the successful one.

    Raises
    ------
    OperationCancelled
        The context was cancelled before an attempt succeeded.
    """
    clock = RetryClock(interval)
    attempt = 0

    while True:
        await clock.wait(ctx)
        attempt += 1
        try:
            await attempt_connection(adapter_id, address)
        except AttemptError as exc:
            _LOGGER.info(
                "%s: Connection attempt %d failed: %s (retry in %.1f s)",
                address,
                attempt,
                exc,
                interval,
            )
            continue
        return attempt
