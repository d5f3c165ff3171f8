from __future__ import annotations

import asyncio
import logging

import pytest

from tagbridge.core.device_match import parse_identity
from tagbridge.core.directory import PeripheralDirectory


def test_scan_reports_only_matching_address(scanner, make_handle) -> None:
    async def scenario() -> list[str]:
        found: list[str] = []
        directory = PeripheralDirectory(scanner)
        await directory.scan(parse_identity("C0:98:E5:00:00:01"), lambda h: found.append(h.address))
        scanner.advertise(make_handle("AA:BB:CC:DD:EE:FF"))
        scanner.advertise(make_handle("c0-98-e5-00-00-01"))
        scanner.advertise(make_handle("C0:98:E5:00:00:01"))
        await directory.stop_scan()
        return found

    assert asyncio.run(scenario()) == ["c0-98-e5-00-00-01", "C0:98:E5:00:00:01"]


def test_wildcard_reports_every_advertisement(scanner, make_handle) -> None:
    async def scenario() -> int:
        found = []
        directory = PeripheralDirectory(scanner)
        await directory.scan(parse_identity("*"), found.append)
        scanner.advertise(make_handle("AA:BB:CC:DD:EE:FF"))
        scanner.advertise(make_handle("11:22:33:44:55:66"))
        return len(found)

    assert asyncio.run(scenario()) == 2


def test_stop_scan_when_idle_is_noop(scanner) -> None:
    async def scenario() -> None:
        directory = PeripheralDirectory(scanner)
        await directory.stop_scan()
        await directory.stop_scan()

    asyncio.run(scenario())
    assert scanner.stops == 0


def test_rescan_replaces_previous_callback(scanner, make_handle) -> None:
    async def scenario() -> tuple[list, list]:
        first: list = []
        second: list = []
        directory = PeripheralDirectory(scanner)
        await directory.scan(parse_identity("*"), first.append)
        await directory.scan(parse_identity("*"), second.append)
        scanner.advertise(make_handle())
        assert directory.is_scanning
        return first, second

    first, second = asyncio.run(scenario())
    assert first == []
    assert len(second) == 1
    assert scanner.starts == 2
    assert scanner.stops == 1


def test_advertisement_details_are_logged_at_debug(scanner, make_handle, caplog: pytest.LogCaptureFixture) -> None:
    async def scenario() -> None:
        directory = PeripheralDirectory(scanner)
        await directory.scan(parse_identity("C0:98:E5:00:00:01"), lambda h: None)
        scanner.advertise(make_handle("AA:BB:CC:DD:EE:FF", "Beacon"))

    with caplog.at_level(logging.DEBUG, logger="tagbridge.core.directory"):
        asyncio.run(scenario())

    assert "Advertisement from AA:BB:CC:DD:EE:FF (name=Beacon, rssi=-60)" in caplog.text
    assert "'local_name': 'Beacon'" in caplog.text
