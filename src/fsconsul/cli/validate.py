"""
fsconsul validate - Check a config file and show the normalized mappings.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from fsconsul.config.loader import load_config
from fsconsul.exceptions import ConfigError

app = typer.Typer(name="validate", help="Validate a config file", invoke_without_command=True)


@app.callback()
def validate(
    ctx: typer.Context,
    config_file: Path = typer.Option(..., "--config", "-c", help="YAML/JSON config file"),
) -> None:
    """Validate a config file and print the mappings it defines."""
    if ctx.invoked_subcommand is not None:
        return

    try:
        config = load_config(config_file)
    except ConfigError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    console = Console()
    console.print(f"Store: {config.store.base_url}" + (f" (dc={config.store.datacenter})" if config.store.datacenter else ""))

    table = Table(title=f"{len(config.mappings)} mapping(s)")
    table.add_column("Prefix")
    table.add_column("Directory")
    table.add_column("On change")
    for mapping in config.mappings:
        table.add_row(mapping.source_prefix, mapping.target_directory, mapping.on_change or "-")
    console.print(table)
