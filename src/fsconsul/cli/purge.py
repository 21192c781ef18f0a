"""
fsconsul purge - Delete every key under a prefix.

Administrative helper for resetting test or staging data; the daemon itself
never deletes anything.
"""

import asyncio

import typer

from fsconsul.cli._common import build_connection
from fsconsul.config.models import StoreConnection, normalize_prefix
from fsconsul.exceptions import StoreError
from fsconsul.store.consul import ConsulStoreClient

app = typer.Typer(
    name="purge",
    help="Delete every key under a prefix",
    invoke_without_command=True,
    context_settings={"allow_interspersed_args": True},
)


async def purge_prefix(prefix: str, connection: StoreConnection) -> bool:
    async with ConsulStoreClient() as client:
        return await client.delete_subtree(prefix, connection)


@app.callback()
def purge(
    ctx: typer.Context,
    prefix: str = typer.Argument(..., help="Key prefix to delete"),
    addr: str | None = typer.Option(None, "--addr", help="Store address (default: CONSUL_HTTP_ADDR or 127.0.0.1:8500)"),
    dc: str | None = typer.Option(None, "--dc", help="Datacenter"),
    token: str | None = typer.Option(None, "--token", help="ACL token (default: CONSUL_HTTP_TOKEN)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete every key under PREFIX from the store."""
    if ctx.invoked_subcommand is not None:
        return

    prefix = normalize_prefix(prefix)
    if not prefix:
        typer.echo("Error: refusing to purge an empty prefix", err=True)
        raise typer.Exit(1)

    if not yes:
        typer.confirm(f"Delete every key under '{prefix}'?", abort=True)

    connection = build_connection(addr, dc, token)
    try:
        deleted = asyncio.run(purge_prefix(prefix, connection))
    except StoreError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    if not deleted:
        typer.echo(f"Store did not confirm deletion of '{prefix}'", err=True)
        raise typer.Exit(1)
    typer.echo(f"Deleted '{prefix}'")
