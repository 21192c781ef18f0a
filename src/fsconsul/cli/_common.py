"""
Helpers shared by CLI commands.
"""

from pathlib import Path
from typing import Any

from fsconsul.config.loader import apply_env_defaults, read_config_file
from fsconsul.config.models import StoreConnection, WatchConfig, parse_config, parse_store
from fsconsul.exceptions import ConfigError


def _store_overrides(addr: str | None, dc: str | None, token: str | None) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if addr:
        overrides["address"] = addr
    if dc:
        overrides["datacenter"] = dc
    if token:
        overrides["token"] = token
    return overrides


def build_config(
    *,
    config_file: Path | None,
    prefix: str | None = None,
    path: str | None = None,
    on_change: str | None = None,
    addr: str | None = None,
    dc: str | None = None,
    token: str | None = None,
    wait: float | None = None,
) -> WatchConfig:
    """
    Build a WatchConfig from a config file and/or command-line arguments.

    With ``--config`` the file provides the mappings and flags override its
    store section. Without it, PREFIX and PATH define a single mapping.

    Raises:
        ConfigError: If neither source yields a valid configuration
    """
    if config_file is not None:
        if prefix or path:
            raise ConfigError("Pass either --config or PREFIX PATH, not both")
        if on_change:
            raise ConfigError("--on-change only applies to PREFIX PATH; set on_change per mapping in the config file")
        payload = read_config_file(config_file)
    else:
        if not prefix or not path:
            raise ConfigError("PREFIX and PATH are required when --config is not given")
        payload = {"store": {}, "mappings": [{"source_prefix": prefix, "target_directory": path, "on_change": on_change}]}
        apply_env_defaults(payload)

    store_key = "consul" if "consul" in payload and "store" not in payload else "store"
    store = payload.get(store_key) or {}
    if isinstance(store, dict):
        # Drop aliases so overrides win over either spelling
        overrides = _store_overrides(addr, dc, token)
        for canonical, alias in (("address", "addr"), ("datacenter", "dc")):
            if canonical in overrides:
                store.pop(alias, None)
        store.update(overrides)
        payload[store_key] = store
    if wait is not None:
        payload["wait_time"] = wait

    return parse_config(payload)


def build_connection(addr: str | None, dc: str | None, token: str | None) -> StoreConnection:
    """StoreConnection from flags, falling back to CONSUL_HTTP_* and defaults."""
    payload = {"store": _store_overrides(addr, dc, token)}
    apply_env_defaults(payload)
    return parse_store(payload["store"])
