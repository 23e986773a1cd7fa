"""bluetooth-connector: find a Bluetooth device by address and connect to it.

Scans in the background with bleak while a pair-then-connect loop
retries against BlueZ over D-Bus until the device is connected.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .adapters import AdapterHandle, discover_adapters, get_default_adapter
from .address import PeerAddress
from .bluez import BluezDevice, address_to_bluez_path
from .connection import attempt_connection, connect_with_retry
from .const import (
    BLUEZ_READY_TIMEOUT,
    DEFAULT_RETRY_INTERVAL,
    IS_LINUX,
    ConnectConfig,
)
from .context import RunContext
from .dbus_bus import close_bus, wait_for_bluez
from .exceptions import (
    AttemptError,
    BluetoothConnectorError,
    BlueZError,
    DeviceConnectionError,
    DeviceResolutionError,
    DiscoveryStartError,
    OperationCancelled,
    PairingError,
    PairingStateQueryError,
    SetupError,
)
from .manager import DeviceConnector
from .once import OnceGate
from .retry_clock import RetryClock
from .scanner import ScanSession, start_discovery

__all__ = [
    # Top-level flow
    "DeviceConnector",
    "ConnectConfig",
    "RunContext",
    # Adapter
    "AdapterHandle",
    "discover_adapters",
    "get_default_adapter",
    # Discovery
    "ScanSession",
    "start_discovery",
    "OnceGate",
    # Connection
    "attempt_connection",
    "connect_with_retry",
    "RetryClock",
    # BlueZ utilities
    "BluezDevice",
    "address_to_bluez_path",
    "close_bus",
    "wait_for_bluez",
    # Addresses
    "PeerAddress",
    # Exceptions
    "BluetoothConnectorError",
    "SetupError",
    "DiscoveryStartError",
    "AttemptError",
    "DeviceResolutionError",
    "PairingStateQueryError",
    "PairingError",
    "DeviceConnectionError",
    "OperationCancelled",
    "BlueZError",
    # Constants
    "BLUEZ_READY_TIMEOUT",
    "DEFAULT_RETRY_INTERVAL",
    "IS_LINUX",
]
