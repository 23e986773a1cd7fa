"""Exceptions raised by bluetooth-connector.

Fatal errors (:class:`SetupError`, :class:`DiscoveryStartError`) abort
the run.  Subclasses of :class:`AttemptError` describe which step of a
single connection attempt failed; the retry loop logs them and tries
again on the next tick.
"""

from __future__ import annotations


class BluetoothConnectorError(Exception):
    """Base exception for all bluetooth-connector errors."""


class SetupError(BluetoothConnectorError):
    """The local adapter or the BlueZ daemon is not available."""


class DiscoveryStartError(BluetoothConnectorError):
    """The adapter rejected the scan request (busy, powered off, ...)."""


class AttemptError(BluetoothConnectorError):
    """A single connection attempt failed.  Retryable."""


class DeviceResolutionError(AttemptError):
    """BlueZ has no device object for the address on this adapter."""


class PairingStateQueryError(AttemptError):
    """Reading the ``Paired`` property failed."""


class PairingError(AttemptError):
    """``Device1.Pair`` failed."""


class DeviceConnectionError(AttemptError):
    """``Device1.Connect`` failed."""


class OperationCancelled(BluetoothConnectorError):
    """The run context was cancelled while waiting.

    Not a failure: the operator asked the tool to stop.
    """

    def __init__(self, reason: str = "cancelled") -> None:
        super().__init__(reason)
        self.reason = reason


class BlueZError(BluetoothConnectorError):
    """BlueZ answered a D-Bus method call with an error reply."""

    def __init__(self, error_name: str, message: str = "") -> None:
        super().__init__(f"{error_name}: {message}" if message else error_name)
        self.error_name = error_name
        self.message = message
