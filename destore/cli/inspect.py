"""
destore-schema: print the schema a firmware binary carries.

    destore-schema target/firmware.elf
    destore-schema target/firmware.elf --symbol _DESTORE_SCHEMA_TUPLE --json
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from ..core.errors import DestoreError
from ..elf.layout import BinaryLayoutDecoder, DEFAULT_SYMBOL
from .main import print_schemas


app = typer.Typer(
    name="destore-schema",
    help="Print the destore schema embedded in a firmware binary",
    add_completion=False,
)
console = Console(stderr=True)


@app.command()
def inspect(
    elf: Path = typer.Argument(..., help="Firmware binary"),
    symbol: str = typer.Option(DEFAULT_SYMBOL, "--symbol", help="Schema symbol name"),
    all_symbols: bool = typer.Option(False, "--all", help="All symbols with the given prefix"),
    as_json: bool = typer.Option(False, "--json", help="JSON output"),
):
    """Print the reconstructed schema."""
    try:
        decoder = BinaryLayoutDecoder.from_path(elf)
        if all_symbols:
            schemas = decoder.list_schemas(symbol)
        else:
            schemas = {symbol: decoder.load_schema(symbol)}
    except (DestoreError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        raise typer.Exit(1)

    print_schemas(schemas, as_json)


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
