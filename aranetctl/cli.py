"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

import typer

from aranetctl.core.errors import AranetError
from aranetctl.core.formatting import format_reading
from aranetctl.core.model import DeviceIdentity
from aranetctl.core.service import AranetService

app = typer.Typer(help="Read Aranet environmental sensors over Bluetooth Low Energy")

VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Show diagnostic trace output")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
    )


def _build_service() -> AranetService:
    service = AranetService()
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _label(device: DeviceIdentity) -> str:
    return device.name or "device"


@app.command("scan")
def scan(
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Scan timeout in seconds (default: scan_timeout_s setting)"
    ),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Scan for nearby Aranet devices."""
    _configure_logging(verbose)
    try:
        service = _build_service()
        typer.echo("Scanning for Aranet devices...")
        devices = asyncio.run(service.scan(timeout))
        if not devices:
            typer.echo("No devices found.")
            return

        typer.echo(f"Found {len(devices)} device(s):\n")
        for index, device in enumerate(devices, start=1):
            typer.echo(f"{index}. {device.name or 'Unknown'} ({device.id})")
    except AranetError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("read")
def read(
    device: str = typer.Argument(..., help="Device address/identifier or part of its name"),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Read current sensor values from an Aranet device."""
    _configure_logging(verbose)

    async def _run(service: AranetService) -> None:
        typer.echo(f"Scanning for device '{device}'...")
        target = await service.find_device(device)
        typer.echo(f"Connecting to {_label(target)}...")
        reading = await service.read_device(target)
        typer.echo(format_reading(reading))

    try:
        asyncio.run(_run(_build_service()))
    except AranetError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("monitor")
def monitor(
    device: str = typer.Argument(..., help="Device address/identifier or part of its name"),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Monitor sensor values, reading shortly after each device measurement."""
    _configure_logging(verbose)

    async def _run(service: AranetService) -> None:
        typer.echo(f"Scanning for device '{device}'...")
        target = await service.find_device(device)
        typer.echo(f"Found {_label(target)}")
        typer.echo("\nMonitoring started. Press Ctrl+C to stop.\n")
        async for reading in service.monitor_device(target).readings():
            typer.echo(f"{datetime.now():%Y-%m-%d %H:%M:%S}")
            typer.echo(format_reading(reading))
            typer.echo()

    try:
        asyncio.run(_run(_build_service()))
    except AranetError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        typer.echo("\nMonitoring stopped.")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
