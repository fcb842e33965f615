"""
WINC Flasher CLI

Command-line interface for flashing and reading back WINC module firmware.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from winc_flasher.config import ADDRESS_SPACE, DEFAULT_BAUDRATE, FlashConfig, SerialConfig
from winc_flasher.core.actions import (
    check_programmer as core_check_programmer,
    flash_firmware as core_flash_firmware,
    read_region as core_read_region,
)
from winc_flasher.core.results import OperationResult
from winc_flasher.errors import FlasherError
from winc_flasher.image import FirmwareImage
from winc_flasher.index import load_index, load_index_no_sign
from winc_flasher.protocol.transport import list_serial_ports

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(help="WINC module firmware flasher")


@app.callback()
def _setup(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log wire traffic"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, console=err_console)],
        force=True,
    )


def print_header(text: str) -> None:
    console.print(Panel(text, expand=False, style="bold blue"))


def print_success(text: str) -> None:
    console.print(f"✓ {text}", style="green")


def print_warning(text: str) -> None:
    console.print(f"⚠️  {text}", style="yellow")


def print_error(text: str) -> None:
    console.print(f"❌ {text}", style="red")


def parse_int(value: Optional[str], label: str) -> Optional[int]:
    """Parse an integer from string (supports decimal and 0x hex)."""
    if value is None:
        return None
    try:
        return int(value, 0)
    except ValueError:
        raise typer.BadParameter(f"Invalid {label}: {value}")


def _serial_config(baud: int, timeout: Optional[float]) -> SerialConfig:
    return SerialConfig(baudrate=baud, read_timeout=timeout, write_timeout=timeout)


def _report(result: OperationResult, as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    elif result.ok:
        print_success(result.to_summary())
    else:
        print_error(result.to_summary())
    if not result.ok:
        raise typer.Exit(1)


@app.command()
def ports() -> None:
    """List available serial ports."""
    print_header("Available Serial Ports")
    found = list_serial_ports()
    if not found:
        print_warning("No serial ports found")
        return
    table = Table(title="Serial Ports")
    table.add_column("Port", style="cyan")
    for device in found:
        table.add_row(device)
    console.print(table)


@app.command()
def hello(
    port: str = typer.Option(..., "--port", "-p", help="Serial port of the programmer"),
    baud: int = typer.Option(DEFAULT_BAUDRATE, "--baud", help="Baud rate"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Read timeout in seconds"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
) -> None:
    """Check that the programmer sketch answers and report its payload size."""
    result = core_check_programmer(
        port,
        serial_config=_serial_config(baud, timeout),
        flash_config=FlashConfig(fill_timeout=timeout),
    )
    if result.ok and not as_json:
        console.print(f"Programmer {result.metadata['version']} on {port}, "
                      f"{result.payload_size} bytes per frame")
    _report(result, as_json)


@app.command()
def flash(
    port: str = typer.Option(..., "--port", "-p", help="Serial port of the programmer"),
    firmware: Path = typer.Option(
        ..., "--firmware", "-i", exists=True, dir_okay=False, help="Firmware binary"
    ),
    address: str = typer.Option("0x0", "--address", help="Flash base address"),
    verify_programmer: bool = typer.Option(
        False, "--hello", help="Run the HELLO version check before flashing"
    ),
    baud: int = typer.Option(DEFAULT_BAUDRATE, "--baud", help="Baud rate"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Read timeout in seconds"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
) -> None:
    """Erase, write and verify a firmware image."""
    base = parse_int(address, "address")
    try:
        image = FirmwareImage.from_file(firmware, base)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="'--firmware'")

    flash_config = FlashConfig(
        address=base, verify_programmer=verify_programmer, fill_timeout=timeout
    )
    serial_config = _serial_config(baud, timeout)

    if as_json:
        result = core_flash_firmware(
            port, image.data, serial_config=serial_config, flash_config=flash_config
        )
    else:
        print_header(f"Flashing {firmware.name} to {port}")
        with Progress(
            TextColumn("[{task.description}]"),
            BarColumn(),
            TextColumn("[{task.percentage:.0f}%]"),
            console=console,
        ) as progress:
            task = progress.add_task("Flashing", total=len(image))

            def on_progress(done: int, total: int) -> None:
                progress.update(task, completed=done, total=total)

            result = core_flash_firmware(
                port,
                image.data,
                serial_config=serial_config,
                flash_config=flash_config,
                progress_cb=on_progress,
            )
    _report(result, as_json)


@app.command()
def dump(
    port: str = typer.Option(..., "--port", "-p", help="Serial port of the programmer"),
    address: str = typer.Option("0x0", "--address", help="Start address"),
    length: str = typer.Option(..., "--length", help="Number of bytes to read"),
    out: Path = typer.Option(..., "--out", "-o", dir_okay=False, help="Output file"),
    baud: int = typer.Option(DEFAULT_BAUDRATE, "--baud", help="Baud rate"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Read timeout in seconds"),
) -> None:
    """Read a flash region back to a file."""
    start = parse_int(address, "address")
    count = parse_int(length, "length")
    if count <= 0:
        raise typer.BadParameter(f"Invalid length: {length}", param_hint="'--length'")
    if start < 0 or start + count > ADDRESS_SPACE:
        raise typer.BadParameter(
            f"region {address} + {count} bytes is outside the 32-bit address space",
            param_hint="'--address'",
        )

    result = core_read_region(
        port,
        start,
        count,
        serial_config=_serial_config(baud, timeout),
        flash_config=FlashConfig(fill_timeout=timeout),
    )
    if result.ok:
        out.write_bytes(result.metadata["data"])
        print_success(f"Saved {result.bytes_len} bytes to {out}")
    _report(result, False)


@app.command("firmware-url")
def firmware_url(
    index: Path = typer.Option(..., "--index", exists=True, dir_okay=False, help="module_firmware_index.json"),
    fqbn: str = typer.Option(..., "--fqbn", help="Board FQBN"),
    version: Optional[str] = typer.Option(None, "--version", help="Firmware version (default: latest)"),
    no_sign: bool = typer.Option(False, "--no-sign", help="Skip the signature check"),
) -> None:
    """Resolve a firmware download URL from a firmware index."""
    try:
        idx = load_index_no_sign(index) if no_sign else load_index(index)
        if version:
            url = idx.get_firmware_url(fqbn, version)
        else:
            url = idx.get_latest_firmware_url(fqbn)
    except FlasherError as e:
        print_error(str(e))
        raise typer.Exit(1)

    # stdout carries only the URL so it can be captured by scripts
    if not idx.is_trusted:
        err_console.print("⚠️  Firmware index signature not verified", style="yellow")
    typer.echo(url)


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        err_console.print(f"\n[red bold]Fatal error:[/red bold] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
