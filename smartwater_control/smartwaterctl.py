# smartwater_control/smartwaterctl.py
"""Smart water dispenser CLI entrypoint.

Each device command connects to the given address, does one thing and
disconnects again. Errors are printed as a single line and exit with code 1.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

import typer
from rich import print
from rich.panel import Panel
from rich.table import Table
from typer import Context
from typing_extensions import Annotated

from .client import SmartWaterClient
from .codec import decode_captured_payload, decode_payload, parse_sample_list
from .config import Settings, load_settings
from .exception import SmartWaterError
from .models import DeviceMode, Granularity, HistoryResult

app = typer.Typer(help="Smart water dispenser control")


# ────────────────────────────────────────────────────────────────
# Global options
# ────────────────────────────────────────────────────────────────
@app.callback()
def _global_options(
    ctx: Context,
    debug: Annotated[
        bool,
        typer.Option("--debug/--no-debug", help="Enable verbose debug logging"),
    ] = False,
    config: Annotated[
        Optional[str],
        typer.Option("--config", help="JSON settings file"),
    ] = None,
) -> None:
    ctx.obj = ctx.obj or {}
    ctx.obj["debug"] = bool(debug)
    ctx.obj["config"] = config

    if debug:
        from rich.logging import RichHandler

        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(rich_tracebacks=True, show_time=False, show_level=True)],
        )
        logging.getLogger("bleak").setLevel(logging.DEBUG)
        logging.getLogger("smartwater_control").setLevel(logging.DEBUG)


# ────────────────────────────────────────────────────────────────
# Shared runners
# ────────────────────────────────────────────────────────────────
def _settings(ctx: Context) -> Settings:
    path = (ctx.obj or {}).get("config")
    try:
        return load_settings(path)
    except SmartWaterError as ex:
        print(f"[red]{ex}[/red]")
        raise typer.Exit(code=1)


def _make_client(settings: Settings) -> SmartWaterClient:
    return SmartWaterClient(settings)


def _run(coro_fn: Callable[[], Awaitable[Any]]) -> Any:
    try:
        return asyncio.run(coro_fn())
    except (SmartWaterError, ValueError) as ex:
        print(f"[red]{ex}[/red]")
        raise typer.Exit(code=1)


def _run_device_func(
    ctx: Context,
    device_address: str,
    fn: Callable[[SmartWaterClient], Awaitable[Any]],
) -> Any:
    """Connect to ``device_address``, await ``fn(client)``, then disconnect."""
    settings = _settings(ctx)

    async def _async_func() -> Any:
        async with _make_client(settings) as client:
            await client.connect(device_address)
            return await fn(client)

    return _run(_async_func)


def _print_history(result: HistoryResult) -> None:
    if result.error:
        print(f"[red]{result.error}[/red]")
    table = Table("Label", "Value", title=f"{result.granularity.value.capitalize()} history")
    for bucket in result.series:
        table.add_row(bucket.label, f"{bucket.value:.1f}")
    print(table)
    stats = result.stats
    generated = stats.generated_at.isoformat() if stats.generated_at else "N/A"
    print(
        Panel(
            f"Total: {stats.total:.1f} L\n"
            f"Average: {stats.average:.1f} L\n"
            f"Highest: {stats.peak:.1f} L\n"
            f"Last updated: {generated}",
            title="Summary",
        )
    )


# ────────────────────────────────────────────────────────────────
# Discovery
# ────────────────────────────────────────────────────────────────
@app.command(name="list-devices")
def list_devices(
    ctx: Context,
    timeout: Annotated[Optional[float], typer.Option(help="Scan window in seconds")] = None,
) -> None:
    """Scan for dispensers."""
    settings = _settings(ctx)
    print("Scanning for Bluetooth devices…")

    async def _scan():
        async with _make_client(settings) as client:
            return await client.scan(timeout)

    devices = _run(_scan)
    table = Table("Name", "Address", "RSSI")
    for device in devices:
        table.add_row(device.name or "(unknown)", device.identifier, str(device.rssi if device.rssi is not None else "?"))
    print("Discovered devices:")
    print(table)


# ────────────────────────────────────────────────────────────────
# Commands
# ────────────────────────────────────────────────────────────────
@app.command(name="pump-on")
def pump_on(ctx: Context, device_address: str) -> None:
    """Start the pump."""
    print(f"Connect to device {device_address} and start the pump")
    _run_device_func(ctx, device_address, lambda c: c.pump_on())


@app.command(name="pump-off")
def pump_off(ctx: Context, device_address: str) -> None:
    """Stop the pump."""
    print(f"Connect to device {device_address} and stop the pump")
    _run_device_func(ctx, device_address, lambda c: c.pump_off())


@app.command(name="set-mode")
def set_mode(ctx: Context, device_address: str, mode: DeviceMode) -> None:
    """Switch between AUTO and MANUAL."""
    _run_device_func(ctx, device_address, lambda c: c.set_mode(mode))
    print(f"Mode set to {mode.value}")


@app.command(name="toggle-mode")
def toggle_mode(ctx: Context, device_address: str) -> None:
    """Flip the current mode (read at connect)."""
    new_mode = _run_device_func(ctx, device_address, lambda c: c.toggle_mode())
    print(f"Mode is now {new_mode.value}")


@app.command(name="set-max-level")
def set_max_level(
    ctx: Context,
    device_address: str,
    level: Annotated[int, typer.Argument(min=0, max=100)],
) -> None:
    """Set the fill level the pump stops at."""
    _run_device_func(ctx, device_address, lambda c: c.set_max_level(level))
    print(f"Max level set to {level}")


@app.command(name="set-min-level")
def set_min_level(
    ctx: Context,
    device_address: str,
    level: Annotated[int, typer.Argument(min=0, max=100)],
) -> None:
    """Set the fill level the pump starts at."""
    _run_device_func(ctx, device_address, lambda c: c.set_min_level(level))
    print(f"Min level set to {level}")


@app.command(name="thresholds")
def thresholds(ctx: Context, device_address: str) -> None:
    """Show the configured max/min levels."""
    result = _run_device_func(ctx, device_address, lambda c: c.read_thresholds())
    table = Table("Threshold", "Level")
    table.add_row("Max", "N/A" if result.max_level is None else str(result.max_level))
    table.add_row("Min", "N/A" if result.min_level is None else str(result.min_level))
    print(table)


# ────────────────────────────────────────────────────────────────
# Telemetry / history
# ────────────────────────────────────────────────────────────────
@app.command(name="history")
def history(
    ctx: Context,
    device_address: str,
    granularity: Annotated[Granularity, typer.Option("--granularity", "-g")] = Granularity.DAILY,
) -> None:
    """Fetch and aggregate the device's consumption history."""
    result = _run_device_func(ctx, device_address, lambda c: c.request_history(granularity))
    _print_history(result)


@app.command(name="monitor")
def monitor(
    ctx: Context,
    device_address: str,
    duration: Annotated[float, typer.Option(min=0.1, help="Seconds to listen")] = 30.0,
) -> None:
    """Print live sensor readings for a while."""

    def _on_update(value: str, at: datetime) -> None:
        print(f"[{at.strftime('%H:%M:%S')}] {value}")

    async def _listen(client: SmartWaterClient) -> None:
        print(f"Status: {client.status}  Device: {client.device_label}  Mode: {client.mode.value}")
        unsubscribe = client.subscribe_to_sensor_updates(_on_update)
        try:
            await asyncio.sleep(duration)
        finally:
            unsubscribe()
        print(f"Last value: {client.latest_value or 'N/A'} at {client.last_updated_label}")

    _run_device_func(ctx, device_address, _listen)


# ────────────────────────────────────────────────────────────────
# Offline helpers
# ────────────────────────────────────────────────────────────────
@app.command(name="bytes-decode")
def bytes_decode(
    payload: Annotated[str, typer.Argument(help="Captured value as hex or base64")],
    samples: Annotated[bool, typer.Option("--samples/--no-samples", help="Parse as a history list")] = False,
) -> None:
    """Decode a captured characteristic value."""
    try:
        raw = decode_captured_payload(payload)
        text = decode_payload(raw)
    except SmartWaterError as ex:
        print(f"[red]{ex}[/red]")
        raise typer.Exit(code=1)
    typer.echo(f"bytes: {raw.hex(' ').upper()}")
    typer.echo(f"text: {text}")
    if samples:
        values = parse_sample_list(text)
        typer.echo(f"samples ({len(values)}): {values}")


if __name__ == "__main__":
    app()
