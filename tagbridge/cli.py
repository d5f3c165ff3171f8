"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from pathlib import Path

import typer

from tagbridge.core.config_loader import LoadedConfig, load_config
from tagbridge.core.controller import GatewayController
from tagbridge.core.device_match import matches
from tagbridge.core.directory import PeripheralDirectory
from tagbridge.core.errors import ConfigValidationError, TagbridgeError
from tagbridge.core.model import WILDCARD, DeviceIdentity, GatewayConfig
from tagbridge.transports.base import PeripheralHandle
from tagbridge.transports.ble_gatt import BleakScannerTransport

app = typer.Typer(help="Bridge a BLE sensor tag to an MQTT broker")
LOGGER = logging.getLogger(__name__)

LOGGING_LEVELS = {
    "FATAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

_CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to a YAML config file")


def _load(config_path: Path | None) -> LoadedConfig:
    loaded = load_config(config_path)
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return loaded


def _configure_logging(level_name: str) -> None:
    level = LOGGING_LEVELS.get(level_name.upper())
    if level is None:
        raise ConfigValidationError(
            f"Unknown log level '{level_name}'. Use one of: {', '.join(LOGGING_LEVELS)}"
        )
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        force=True,
    )


async def _run_gateway(config: GatewayConfig) -> None:
    controller = GatewayController(config)
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, stop_event.set)
    await controller.run(stop_event)


async def _scan(config: GatewayConfig, timeout_s: float) -> list[PeripheralHandle]:
    seen: dict[str, PeripheralHandle] = {}
    directory = PeripheralDirectory(BleakScannerTransport(adapter=config.ble.adapter))
    await directory.scan(DeviceIdentity(WILDCARD), lambda handle: seen.setdefault(handle.address, handle))
    try:
        await asyncio.sleep(timeout_s)
    finally:
        await directory.stop_scan()
    return sorted(seen.values(), key=lambda handle: handle.address)


@app.command("run")
def run_gateway(
    config: Path | None = _CONFIG_OPTION,
    log_level: str | None = typer.Option(None, "--log-level", help="FATAL, ERROR, INFO or DEBUG"),
) -> None:
    """Run the gateway until interrupted."""
    try:
        loaded = _load(config)
        _configure_logging(log_level or loaded.config.app.logging_level)
        asyncio.run(_run_gateway(loaded.config))
    except TagbridgeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    except Exception as exc:
        LOGGER.critical("Uncaught fault: %s", exc, exc_info=True)
        raise typer.Exit(code=1) from None


@app.command("config")
def show_config(config: Path | None = _CONFIG_OPTION) -> None:
    """Show the resolved configuration."""
    try:
        loaded = _load(config)
    except TagbridgeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    cfg = loaded.config
    typer.echo(f"Source: {loaded.source}")
    typer.echo(f"ble.target: {cfg.ble.target}")
    typer.echo(f"ble.adapter: {cfg.ble.adapter or '<default>'}")
    typer.echo(f"ble.restart_delay_ms: {cfg.ble.restart_delay_ms}")
    typer.echo(f"ble.profile.button_char_uuid: {cfg.ble.profile.button_char_uuid}")
    typer.echo(f"ble.profile.motion_char_uuid: {cfg.ble.profile.motion_char_uuid}")
    typer.echo(f"mqtt.endpoint: {cfg.mqtt.endpoint}")
    typer.echo(f"mqtt.topic: {cfg.mqtt.topic}")
    typer.echo(f"app.send_interval_ms: {cfg.app.send_interval_ms}")
    typer.echo(f"app.logging_level: {cfg.app.logging_level}")


@app.command("scan")
def scan_devices(
    config: Path | None = _CONFIG_OPTION,
    timeout: float = typer.Option(10.0, "--timeout", min=0.1, help="Seconds to scan"),
) -> None:
    """List advertising BLE devices and whether they match the configured target."""
    try:
        loaded = _load(config)
        handles = asyncio.run(_scan(loaded.config, timeout))
    except TagbridgeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    if not handles:
        typer.echo("No BLE devices found")
        return
    target = loaded.config.ble.target
    for handle in handles:
        marker = "target" if not target.is_wildcard and matches(target, handle.address) else "-"
        typer.echo(f"{handle.address} {handle.name or '<unknown>'} rssi={handle.rssi} -> {marker}")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
