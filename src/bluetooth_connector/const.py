"""Constants and configuration dataclasses for bluetooth-connector."""

from __future__ import annotations

import platform
from dataclasses import dataclass

IS_LINUX = platform.system() == "Linux"

# Seconds between connection attempts after the immediate first one.
DEFAULT_RETRY_INTERVAL = 3.0

# How long to wait for org.bluez to appear on the system D-Bus at startup.
BLUEZ_READY_TIMEOUT = 30.0

# Adapter used when enumeration finds nothing.
DEFAULT_ADAPTER = "hci0"


@dataclass
class ConnectConfig:
    """Configuration for one discover-and-connect run.

    Parameters
    ----------
    adapter:
        Adapter name (e.g. ``"hci1"``).  ``None`` selects the first
        adapter found on the system.
    retry_interval:
        Seconds between connection attempts.  The first attempt is
        made immediately.
    bluez_timeout:
        Maximum seconds to wait for ``org.bluez`` on the system D-Bus
        before giving up with a setup error.
    wait_for_discovery:
        Whether :meth:`DeviceConnector.run` waits for the scan to
        conclude before returning.  The wait is bounded by the run
        context either way.
    """

    adapter: str | None = None
    retry_interval: float = DEFAULT_RETRY_INTERVAL
    bluez_timeout: float = BLUEZ_READY_TIMEOUT
    wait_for_discovery: bool = True

    def __post_init__(self) -> None:
        if self.retry_interval <= 0:
            raise ValueError(
                f"retry_interval must be positive, got {self.retry_interval}"
            )
