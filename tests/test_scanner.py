"""Tests for scanner module — background discovery with run-once stop."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from bleak.backends.device import BLEDevice
from bleak.exc import BleakError

from bluetooth_connector.adapters import AdapterHandle
from bluetooth_connector.address import PeerAddress
from bluetooth_connector.context import RunContext
from bluetooth_connector.exceptions import DiscoveryStartError, OperationCancelled
from bluetooth_connector.scanner import start_discovery

ADAPTER = AdapterHandle("hci0", "00:1A:7D:DA:71:13")
TARGET = PeerAddress.parse("AA:BB:CC:DD:EE:FF")


def _make_device(address="AA:BB:CC:DD:EE:FF", name="TestDevice"):
    return BLEDevice(
        address,
        name,
        {"path": f"/org/bluez/hci0/dev_{address.replace(':', '_')}"},
    )


def _setup_scanner(mock_scanner_cls):
    scanner = MagicMock()
    scanner.start = AsyncMock()
    scanner.stop = AsyncMock()
    mock_scanner_cls.return_value = scanner
    return scanner


def _detect(mock_scanner_cls, *addresses):
    callback = mock_scanner_cls.call_args.kwargs["detection_callback"]
    for address in addresses:
        callback(_make_device(address), MagicMock())


async def _wait_done(session):
    await asyncio.wait_for(session.done.wait(), timeout=1.0)


# ── start ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
@patch("bluetooth_connector.scanner.BleakScanner")
@patch("bluetooth_connector.scanner.IS_LINUX", True)
async def test_start_pins_adapter_on_linux(mock_scanner_cls):
    scanner = _setup_scanner(mock_scanner_cls)

    session = await start_discovery(ADAPTER, TARGET)

    scanner.start.assert_awaited_once()
    assert mock_scanner_cls.call_args.kwargs["adapter"] == "hci0"
    assert not session.done.is_set()
    await session.cancel()


@pytest.mark.asyncio
@patch("bluetooth_connector.scanner.BleakScanner")
@patch("bluetooth_connector.scanner.IS_LINUX", False)
async def test_start_without_adapter_off_linux(mock_scanner_cls):
    _setup_scanner(mock_scanner_cls)

    session = await start_discovery(ADAPTER, TARGET)

    assert "adapter" not in mock_scanner_cls.call_args.kwargs
    await session.cancel()


@pytest.mark.asyncio
@patch("bluetooth_connector.scanner.BleakScanner")
@patch("bluetooth_connector.scanner.IS_LINUX", True)
async def test_start_failure_raises_discovery_start_error(mock_scanner_cls):
    scanner = _setup_scanner(mock_scanner_cls)
    scanner.start.side_effect = BleakError("org.bluez.Error.InProgress")

    with pytest.raises(DiscoveryStartError, match="InProgress"):
        await start_discovery(ADAPTER, TARGET)


# ── matching ──────────────────────────────────────────────────────


@pytest.mark.asyncio
@patch("bluetooth_connector.scanner.BleakScanner")
@patch("bluetooth_connector.scanner.IS_LINUX", True)
async def test_stops_after_target_found(mock_scanner_cls, caplog):
    """Target appears third: scan stops there and is stopped once."""
    caplog.set_level(logging.DEBUG, logger="bluetooth_connector")
    scanner = _setup_scanner(mock_scanner_cls)
    session = await start_discovery(ADAPTER, TARGET)

    _detect(
        mock_scanner_cls,
        "11:22:33:44:55:66",
        "77:88:99:AA:BB:CC",
        "AA:BB:CC:DD:EE:FF",
        "12:34:56:78:9A:BC",
    )
    await _wait_done(session)

    assert session.matched is True
    assert session.stopped
    scanner.stop.assert_awaited_once()
    scanned = [r.getMessage() for r in caplog.records if "Scanned device" in r.getMessage()]
    assert len(scanned) == 3
    assert not any("12:34:56:78:9A:BC" in m for m in scanned)


@pytest.mark.asyncio
@patch("bluetooth_connector.scanner.BleakScanner")
@patch("bluetooth_connector.scanner.IS_LINUX", True)
async def test_match_is_case_insensitive(mock_scanner_cls):
    scanner = _setup_scanner(mock_scanner_cls)
    session = await start_discovery(ADAPTER, TARGET)

    _detect(mock_scanner_cls, "aa:bb:cc:dd:ee:ff")
    await _wait_done(session)

    assert session.matched is True
    scanner.stop.assert_awaited_once()


@pytest.mark.asyncio
@patch("bluetooth_connector.scanner.BleakScanner")
@patch("bluetooth_connector.scanner.IS_LINUX", True)
async def test_unresolvable_address_is_skipped(mock_scanner_cls):
    """A detection whose address cannot be parsed does not end the scan."""
    scanner = _setup_scanner(mock_scanner_cls)
    session = await start_discovery(ADAPTER, TARGET)

    _detect(mock_scanner_cls, "4B6A1C2E-0F3D-4A8B-9C7E-2D1F0A3B5C6D")
    await asyncio.sleep(0.01)
    assert not session.done.is_set()

    _detect(mock_scanner_cls, "AA:BB:CC:DD:EE:FF")
    await _wait_done(session)
    assert session.matched is True
    scanner.stop.assert_awaited_once()


@pytest.mark.asyncio
@patch("bluetooth_connector.scanner.BleakScanner")
@patch("bluetooth_connector.scanner.IS_LINUX", True)
async def test_non_matching_events_keep_scanning(mock_scanner_cls):
    scanner = _setup_scanner(mock_scanner_cls)
    session = await start_discovery(ADAPTER, TARGET)

    _detect(mock_scanner_cls, "11:22:33:44:55:66", "77:88:99:AA:BB:CC")
    await asyncio.sleep(0.02)

    assert not session.done.is_set()
    scanner.stop.assert_not_awaited()
    await session.cancel()


# ── cancellation ──────────────────────────────────────────────────


@pytest.mark.asyncio
@patch("bluetooth_connector.scanner.BleakScanner")
@patch("bluetooth_connector.scanner.IS_LINUX", True)
async def test_external_cancel_completes_without_match(mock_scanner_cls):
    scanner = _setup_scanner(mock_scanner_cls)
    session = await start_discovery(ADAPTER, TARGET)
    _detect(mock_scanner_cls, "11:22:33:44:55:66")

    await session.cancel()
    await _wait_done(session)

    assert session.matched is False
    scanner.stop.assert_awaited_once()


@pytest.mark.asyncio
@patch("bluetooth_connector.scanner.BleakScanner")
@patch("bluetooth_connector.scanner.IS_LINUX", True)
async def test_concurrent_cancel_stops_once(mock_scanner_cls):
    scanner = _setup_scanner(mock_scanner_cls)

    async def slow_stop():
        await asyncio.sleep(0.02)

    scanner.stop.side_effect = slow_stop
    session = await start_discovery(ADAPTER, TARGET)

    # Match path and several cleanup paths race each other
    _detect(mock_scanner_cls, "AA:BB:CC:DD:EE:FF")
    await asyncio.gather(*(session.cancel() for _ in range(5)))
    await _wait_done(session)

    scanner.stop.assert_awaited_once()


@pytest.mark.asyncio
@patch("bluetooth_connector.scanner.BleakScanner")
@patch("bluetooth_connector.scanner.IS_LINUX", True)
async def test_detections_after_cancel_are_ignored(mock_scanner_cls):
    _setup_scanner(mock_scanner_cls)
    session = await start_discovery(ADAPTER, TARGET)

    await session.cancel()
    await _wait_done(session)
    _detect(mock_scanner_cls, "AA:BB:CC:DD:EE:FF")
    await asyncio.sleep(0.01)

    assert session.matched is False


@pytest.mark.asyncio
@patch("bluetooth_connector.scanner.BleakScanner")
@patch("bluetooth_connector.scanner.IS_LINUX", True)
async def test_stop_failure_still_completes(mock_scanner_cls):
    scanner = _setup_scanner(mock_scanner_cls)
    scanner.stop.side_effect = BleakError("org.bluez.Error.Failed: No discovery started")
    session = await start_discovery(ADAPTER, TARGET)

    _detect(mock_scanner_cls, "AA:BB:CC:DD:EE:FF")
    await _wait_done(session)

    assert session.matched is True
    await session.cancel()  # Should not raise, stop already ran
    scanner.stop.assert_awaited_once()


# ── wait barrier ──────────────────────────────────────────────────


@pytest.mark.asyncio
@patch("bluetooth_connector.scanner.BleakScanner")
@patch("bluetooth_connector.scanner.IS_LINUX", True)
async def test_wait_returns_when_discovery_concludes(mock_scanner_cls):
    _setup_scanner(mock_scanner_cls)
    session = await start_discovery(ADAPTER, TARGET)
    ctx = RunContext()

    asyncio.get_running_loop().call_later(
        0.02, _detect, mock_scanner_cls, "AA:BB:CC:DD:EE:FF"
    )
    await asyncio.wait_for(session.wait(ctx), timeout=1.0)
    assert session.matched is True


@pytest.mark.asyncio
@patch("bluetooth_connector.scanner.BleakScanner")
@patch("bluetooth_connector.scanner.IS_LINUX", True)
async def test_wait_raises_when_context_cancelled(mock_scanner_cls):
    scanner = _setup_scanner(mock_scanner_cls)
    session = await start_discovery(ADAPTER, TARGET)
    ctx = RunContext()

    asyncio.get_running_loop().call_later(0.02, ctx.cancel, "interrupted")
    with pytest.raises(OperationCancelled, match="interrupted"):
        await asyncio.wait_for(session.wait(ctx), timeout=1.0)

    # Waiting does not stop discovery by itself
    scanner.stop.assert_not_awaited()
    assert not session.done.is_set()
    await session.cancel()
