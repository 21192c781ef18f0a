"""
Main CLI entry point.
"""

import typer

from fsconsul import __version__
from fsconsul.cli import purge, validate, watch


def version_callback(value: bool):
    """Callback to display version and exit."""
    if value:
        typer.echo(f"fsconsul version {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="fsconsul",
    help="fsconsul - Mirror key-value store prefixes onto the local filesystem",
    add_completion=False,
)

# Register subcommands
app.add_typer(watch.app, name="watch")
app.add_typer(validate.app, name="validate")
app.add_typer(purge.app, name="purge")


@app.callback(invoke_without_command=True)
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
):
    """
    fsconsul - Mirror key-value store prefixes onto the local filesystem.

    Run 'fsconsul <command> --help' for help on a specific command.
    """
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
