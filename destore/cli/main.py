"""
destore CLI.

Commands:
- dump: read the log partition from a device and decode it
- decode: decode a stored partition image
- proxy: run a flashing command and harvest the firmware schema
- schema: print the schema embedded in a firmware binary
- cache: inspect harvested schemas
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .. import __version__
from ..cache.store import SchemaCache
from ..config import DestoreConfig, load_config, generate_default_config
from ..core.errors import DestoreError, SchemaNotFound
from ..decoding import DecodedRecord, decode_partition, to_jsonable
from ..device import EsptoolReader
from ..elf.layout import BinaryLayoutDecoder
from ..formats.flash import FlashBuffer
from ..schema.fingerprint import fingerprint, fingerprint_hex, parse_fingerprint
from ..schema.types import SchemaNode
from .proxy import run_proxy


app = typer.Typer(
    name="destore",
    help="Decode destore log partitions from ESP devices",
    add_completion=False,
)
cache_app = typer.Typer(help="Inspect the schema cache")
app.add_typer(cache_app, name="cache")

console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)

_state = {'verbose': False}


class OutputFormat(str, Enum):
    text = "text"
    json = "json"


def _setup_logging(level: int) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_time=False, show_path=False)],
        force=True,
    )


def _load(config_path: Optional[Path]) -> DestoreConfig:
    """Load configuration and install logging for a command."""
    try:
        cfg = load_config(config_path)
    except (DestoreError, FileNotFoundError) as e:
        err_console.print(f"[red]Error:[/] {escape(str(e))}")
        raise typer.Exit(1)

    errors = cfg.validate()
    if errors:
        err_console.print("[red]Invalid configuration:[/]")
        for e in errors:
            err_console.print(f"  - {e}")
        raise typer.Exit(1)

    _setup_logging(logging.DEBUG if _state['verbose'] else cfg.logging.level_number)
    return cfg


def _fail(error: Exception) -> None:
    err_console.print(f"[red]Error:[/] {escape(str(error))}")
    raise typer.Exit(1)


def _load_elf_schema(elf: Path, symbol: str) -> SchemaNode:
    schema = BinaryLayoutDecoder.from_path(elf).load_schema(symbol)
    logger.info(f"Schema {fingerprint_hex(fingerprint(schema))}: {schema}")
    return schema


def _print_records(records: Iterable[DecodedRecord], format: OutputFormat) -> int:
    count = 0
    for record in records:
        count += 1
        if format == OutputFormat.json:
            typer.echo(json.dumps({
                'index': record.index,
                'offset': record.offset,
                'schema': fingerprint_hex(record.fingerprint),
                'value': to_jsonable(record.value),
            }))
        else:
            console.print(repr(record.value), markup=False)
    return count


def _decode_image(
    flash: FlashBuffer,
    cfg: DestoreConfig,
    elf: Optional[Path],
    symbol: Optional[str],
    format: OutputFormat,
) -> None:
    try:
        if elf is not None:
            schema = _load_elf_schema(elf, symbol or cfg.schema.symbol)
            records = decode_partition(
                flash, schema=schema, max_entry_size=cfg.flash.max_entry_size,
            )
        else:
            records = decode_partition(
                flash,
                cache=SchemaCache(cfg.cache.path),
                max_entry_size=cfg.flash.max_entry_size,
            )
        count = _print_records(records, format)
    except (DestoreError, FileNotFoundError) as e:
        _fail(e)

    logger.info(f"Decoded {count} records")


@app.callback()
def callback(
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
):
    """destore log tools."""
    _state['verbose'] = verbose


# === DUMP COMMAND ===

@app.command()
def dump(
    start: str = typer.Argument(..., help="Partition start address (decimal or 0x hex)"),
    size: str = typer.Argument(..., help="Partition size (decimal or 0x hex)"),
    store_partition: Optional[Path] = typer.Option(
        None, "--store-partition", help="Store the partition to this file for later decoding",
    ),
    elf: Optional[Path] = typer.Option(None, "--elf", help="Firmware binary carrying the schema"),
    port: Optional[str] = typer.Option(None, "-p", "--port", help="Serial port"),
    baud: Optional[int] = typer.Option(None, "-b", "--baud", help="Baud rate"),
    chip: Optional[str] = typer.Option(None, "--chip", help="Target chip"),
    format: OutputFormat = typer.Option(OutputFormat.text, "-f", "--format"),
    config_path: Optional[Path] = typer.Option(None, "-c", "--config"),
):
    """
    Dump the destore records from a connected device.

    Example:

    \b
      destore dump 0x110000 0x10000 --store-partition log.bin
    """
    cfg = _load(config_path)

    try:
        start_addr = int(start, 0)
        length = int(size, 0)
    except ValueError:
        _fail(f"Invalid address or size: {start} {size}")

    reader = EsptoolReader(
        port=port or cfg.device.port,
        baud=baud or cfg.device.baud,
        chip=chip or cfg.device.chip,
        esptool=cfg.device.esptool,
    )

    try:
        image = reader.dump(start_addr, length, cfg.flash.page_size)
    except DestoreError as e:
        _fail(e)

    if store_partition is not None:
        store_partition.write_bytes(image)
        logger.info(f"Partition stored to {store_partition}")

    _decode_image(
        FlashBuffer.padded(image, cfg.flash.page_size), cfg, elf, None, format,
    )


# === DECODE COMMAND ===

@app.command()
def decode(
    partition: Path = typer.Argument(..., help="The partition file to decode"),
    elf: Optional[Path] = typer.Option(None, "--elf", help="Firmware binary carrying the schema"),
    symbol: Optional[str] = typer.Option(None, "--symbol", help="Schema symbol name"),
    format: OutputFormat = typer.Option(OutputFormat.text, "-f", "--format"),
    config_path: Optional[Path] = typer.Option(None, "-c", "--config"),
):
    """
    Decode a destore partition file.

    Without --elf, schemas are resolved from the cache filled by `destore proxy`.
    """
    cfg = _load(config_path)

    try:
        flash = FlashBuffer.load(partition, cfg.flash.page_size)
    except FileNotFoundError as e:
        _fail(e)

    _decode_image(flash, cfg, elf, symbol, format)


# === PROXY COMMAND ===

@app.command(context_settings={"allow_interspersed_args": False})
def proxy(
    command: List[str] = typer.Argument(..., help="Command to run, after --"),
    config_path: Optional[Path] = typer.Option(None, "-c", "--config"),
):
    """
    Run a command and store the schema of the firmware it is given.

    Example:

    \b
      destore proxy -- espflash flash target/firmware.elf
    """
    cfg = _load(config_path)

    try:
        status = run_proxy(command, cfg.cache.path, cfg.schema.symbol)
    except FileNotFoundError as e:
        err_console.print(f"[red]Error:[/] {escape(str(e))}")
        raise typer.Exit(127)

    raise typer.Exit(status)


# === SCHEMA COMMAND ===

def print_schemas(schemas: dict, as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps({
            name: {
                'fingerprint': fingerprint_hex(fingerprint(schema)),
                'schema': schema.to_dict(),
            }
            for name, schema in schemas.items()
        }, indent=2))
        return

    for name, schema in schemas.items():
        console.print(
            f"[bold]{name}[/] [dim]{fingerprint_hex(fingerprint(schema))}[/]"
        )
        console.print(f"  {schema}", markup=False, highlight=False)


@app.command("schema")
def schema_cmd(
    elf: Path = typer.Argument(..., help="Firmware binary"),
    symbol: Optional[str] = typer.Option(None, "--symbol", help="Schema symbol name"),
    all_symbols: bool = typer.Option(False, "--all", help="All symbols with the schema prefix"),
    as_json: bool = typer.Option(False, "--json", help="JSON output"),
    config_path: Optional[Path] = typer.Option(None, "-c", "--config"),
):
    """Print the schema embedded in a firmware binary."""
    cfg = _load(config_path)
    name = symbol or cfg.schema.symbol

    try:
        decoder = BinaryLayoutDecoder.from_path(elf)
        if all_symbols:
            schemas = decoder.list_schemas(name)
        else:
            schemas = {name: decoder.load_schema(name)}
    except (DestoreError, FileNotFoundError) as e:
        _fail(e)

    print_schemas(schemas, as_json)


# === CACHE COMMANDS ===

@cache_app.command("list")
def cache_list(
    config_path: Optional[Path] = typer.Option(None, "-c", "--config"),
):
    """List cached schemas."""
    cfg = _load(config_path)

    try:
        cache = SchemaCache(cfg.cache.path)
        entries = [(h, cache.lookup(h)) for h in cache.fingerprints()]
    except DestoreError as e:
        _fail(e)

    if not entries:
        console.print(f"[yellow]No schemas in[/] {cache.directory}")
        return

    table = Table(title=f"Schemas in {cache.directory}")
    table.add_column("Fingerprint", style="cyan", no_wrap=True)
    table.add_column("Schema")
    for schema_hash, schema in entries:
        table.add_row(fingerprint_hex(schema_hash), escape(str(schema)))
    console.print(table)


@cache_app.command("show")
def cache_show(
    schema_hash: str = typer.Argument(..., help="Fingerprint (16 hex digits)"),
    as_json: bool = typer.Option(False, "--json", help="JSON output"),
    config_path: Optional[Path] = typer.Option(None, "-c", "--config"),
):
    """Show one cached schema."""
    cfg = _load(config_path)

    try:
        key = parse_fingerprint(schema_hash)
    except ValueError as e:
        _fail(e)

    try:
        schema = SchemaCache(cfg.cache.path).lookup(key)
        if schema is None:
            raise SchemaNotFound(fingerprint_hex(key))
    except DestoreError as e:
        _fail(e)

    if as_json:
        typer.echo(json.dumps(schema.to_dict(), indent=2))
    else:
        console.print(str(schema), markup=False, highlight=False)


# === CONFIG COMMAND ===

@app.command("config")
def config_cmd(
    action: str = typer.Argument(..., help="Action: init|validate|dump"),
    path: Optional[Path] = typer.Argument(None, help="Config file path"),
):
    """Configuration management."""
    if action == "init":
        typer.echo(generate_default_config())

    elif action == "validate":
        if not path:
            console.print("[red]Path required for validate[/]")
            raise typer.Exit(1)
        try:
            cfg = DestoreConfig.load(path)
        except (DestoreError, FileNotFoundError) as e:
            _fail(e)
        errors = cfg.validate()
        if errors:
            console.print("[red]Invalid configuration:[/]")
            for e in errors:
                console.print(f"  - {e}")
            raise typer.Exit(1)
        console.print(f"[green]Valid:[/] {path}")

    elif action == "dump":
        try:
            cfg = DestoreConfig.load(path) if path else load_config()
        except (DestoreError, FileNotFoundError) as e:
            _fail(e)
        typer.echo(cfg.to_yaml())

    else:
        console.print(f"[red]Unknown action:[/] {action}")
        console.print("Valid actions: init, validate, dump")
        raise typer.Exit(1)


# === VERSION COMMAND ===

@app.command()
def version():
    """Show version."""
    console.print(f"[bold blue]destore-tools v{__version__}[/]")


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
