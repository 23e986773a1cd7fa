"""``bctl``: connect to a Bluetooth device by address.

Scans for the device and keeps trying to pair and connect until it
succeeds or the user presses Ctrl+C::

    bctl --mac AA:BB:CC:DD:EE:FF
    bctl --mac AA:BB:CC:DD:EE:FF --adapter hci1 --interval 5
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from . import __version__
from .address import PeerAddress
from .const import BLUEZ_READY_TIMEOUT, DEFAULT_RETRY_INTERVAL, ConnectConfig
from .context import RunContext
from .dbus_bus import close_bus
from .exceptions import DiscoveryStartError, OperationCancelled, SetupError
from .manager import DeviceConnector

_LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def _mac(value: str) -> PeerAddress:
    try:
        return PeerAddress.parse(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"incorrect mac address: {exc}") from exc


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value!r}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bctl",
        description="Console utility to connect to bluetooth devices",
    )
    parser.add_argument(
        "--mac",
        required=True,
        type=_mac,
        metavar="AA:BB:CC:DD:EE:FF",
        help="MAC address of the device to connect to",
    )
    parser.add_argument(
        "--adapter",
        default=None,
        metavar="hciN",
        help="adapter to use (default: first adapter found)",
    )
    parser.add_argument(
        "--interval",
        type=_positive_float,
        default=DEFAULT_RETRY_INTERVAL,
        metavar="SECONDS",
        help="delay between connection attempts (default: %(default)s)",
    )
    parser.add_argument(
        "--bluez-timeout",
        type=_positive_float,
        default=BLUEZ_READY_TIMEOUT,
        metavar="SECONDS",
        help="how long to wait for bluetoothd at startup (default: %(default)s)",
    )
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="exit as soon as the device is connected without draining discovery",
    )
    parser.add_argument("--debug", action="store_true", help=argparse.SUPPRESS)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _run(args: argparse.Namespace) -> int:
    ctx = RunContext()
    ctx.install_signal_handlers()

    config = ConnectConfig(
        adapter=args.adapter,
        retry_interval=args.interval,
        bluez_timeout=args.bluez_timeout,
        wait_for_discovery=not args.no_wait,
    )
    connector = DeviceConnector(args.mac, config)
    try:
        await connector.run(ctx)
    except OperationCancelled as exc:
        _LOGGER.info("%s: Stopped before connecting (%s)", args.mac, exc.reason)
        return EXIT_CANCELLED
    except (SetupError, DiscoveryStartError) as exc:
        _LOGGER.error("%s", exc)
        return EXIT_FAILURE
    finally:
        await close_bus()
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)
    return asyncio.run(_run(args))


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())
