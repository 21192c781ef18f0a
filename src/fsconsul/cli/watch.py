"""
fsconsul watch - Run the sync daemon.

Mirrors every configured prefix until SIGINT/SIGTERM.
"""

import asyncio
import signal
from pathlib import Path

import typer

from fsconsul.cli._common import build_config
from fsconsul.config.models import WatchConfig
from fsconsul.core.engine import SyncEngine
from fsconsul.exceptions import ConfigError
from fsconsul.utils.logging import get_logger, setup_logging

logger = get_logger("fsconsul.cli.watch")

app = typer.Typer(
    name="watch",
    help="Watch prefixes and mirror them to disk",
    invoke_without_command=True,
    # Options may follow PREFIX PATH
    context_settings={"allow_interspersed_args": True},
)


async def serve(config: WatchConfig) -> int:
    """Run a SyncEngine with SIGINT/SIGTERM wired to a clean stop."""
    engine = SyncEngine(config)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, engine.stop)
        except (NotImplementedError, RuntimeError):
            # No signal support on this platform/thread; Ctrl-C still cancels asyncio.run
            pass
    return await engine.run()


@app.callback()
def watch(
    ctx: typer.Context,
    prefix: str | None = typer.Argument(None, help="Key prefix to watch (when not using --config)"),
    path: str | None = typer.Argument(None, help="Directory to mirror the prefix into"),
    config_file: Path | None = typer.Option(None, "--config", "-c", help="YAML/JSON config file"),
    on_change: str | None = typer.Option(None, "--on-change", help="Command to run after files change"),
    addr: str | None = typer.Option(None, "--addr", help="Store address (default: CONSUL_HTTP_ADDR or 127.0.0.1:8500)"),
    dc: str | None = typer.Option(None, "--dc", help="Datacenter"),
    token: str | None = typer.Option(None, "--token", help="ACL token (default: CONSUL_HTTP_TOKEN)"),
    wait: float | None = typer.Option(None, "--wait", help="Long-poll bound in seconds"),
    log_level: str | None = typer.Option(None, "--log-level", "-l", help="DEBUG, INFO, WARNING, ERROR"),
    log_file: Path | None = typer.Option(None, "--log-file", help="Also write logs to this file"),
    plain: bool = typer.Option(False, "--plain", help="Plain console logs instead of rich output"),
) -> None:
    """
    Watch prefixes and mirror them to disk.

    Either pass PREFIX and PATH for a single mapping, or --config with a file
    listing several mappings.
    """
    if ctx.invoked_subcommand is not None:
        return

    try:
        config = build_config(
            config_file=config_file,
            prefix=prefix,
            path=path,
            on_change=on_change,
            addr=addr,
            dc=dc,
            token=token,
            wait=wait,
        )
    except ConfigError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    setup_logging(
        level=log_level or config.logging.get("level", "INFO"),
        log_file=log_file or config.logging.get("file"),
        use_rich=not plain,
    )
    logger.info(f"Watching {len(config.mappings)} mapping(s) on {config.store.base_url}")

    exit_code = asyncio.run(serve(config))
    raise typer.Exit(exit_code)
