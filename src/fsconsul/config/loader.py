"""
Configuration file loading.

Reads a YAML (or JSON, which YAML accepts) config file, substitutes
environment variables and parses the result into a WatchConfig.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml

from fsconsul.config.models import WatchConfig, parse_config
from fsconsul.exceptions import ConfigError

# Environment fallbacks for the store section, same names the Consul CLI uses
ENV_ADDRESS = "CONSUL_HTTP_ADDR"
ENV_TOKEN = "CONSUL_HTTP_TOKEN"

_ENV_VAR = re.compile(r"\${([^}]+)}")


def load_config(config_path: str | Path) -> WatchConfig:
    """
    Load and validate a configuration file.

    Args:
        config_path: Path to a YAML or JSON config file

    Returns:
        Validated WatchConfig

    Raises:
        ConfigError: If the file is missing, unreadable, malformed or invalid
    """
    return parse_config(read_config_file(config_path))


def read_config_file(config_path: str | Path) -> dict[str, Any]:
    """Read a config file into a payload with environment substitution applied."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}\n"
            f"  Suggestion: Pass --config with the path to your fsconsul config file"
        )
    if not config_path.is_file():
        raise ConfigError(f"Configuration path is not a file: {config_path}")

    try:
        with open(config_path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                error_msg = str(e)
                if hasattr(e, "problem_mark"):
                    mark = e.problem_mark
                    raise ConfigError(
                        f"Error parsing {config_path.name} at line {mark.line + 1}, column {mark.column + 1}:\n"
                        f"  {error_msg}\n"
                        f"  File: {config_path}\n"
                        f"  Suggestion: Check YAML/JSON syntax, ensure proper indentation and quotes"
                    ) from e
                raise ConfigError(f"Error parsing {config_path.name}: {error_msg}\n  File: {config_path}") from e
    except PermissionError as e:
        raise ConfigError(
            f"Permission denied reading {config_path}\n"
            f"  Error: {e}\n"
            f"  Suggestion: Check file permissions"
        ) from e

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration must be a mapping, got {type(data).__name__}\n  File: {config_path}")

    data = substitute_env_vars(data)
    apply_env_defaults(data)
    return data


def apply_env_defaults(data: dict[str, Any]) -> dict[str, Any]:
    """Fill in store address/token from CONSUL_HTTP_* when the config omits them."""
    store_key = "consul" if "consul" in data and "store" not in data else "store"
    store = data.get(store_key)
    if store is None:
        store = data[store_key] = {}
    if not isinstance(store, dict):
        # parse_config reports the type error
        return data

    if not (store.get("address") or store.get("addr")) and os.getenv(ENV_ADDRESS):
        store["address"] = os.environ[ENV_ADDRESS]
    if not (store.get("token") or store.get("auth_token")) and os.getenv(ENV_TOKEN):
        store["token"] = os.environ[ENV_TOKEN]
    return data


def substitute_env_vars(data: Any) -> Any:
    """
    Substitute environment variables in config.

    Supports ${VAR_NAME} syntax; unset variables are left as-is.
    """
    if isinstance(data, dict):
        return {k: substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [substitute_env_vars(item) for item in data]
    elif isinstance(data, str):

        def replace_var(match):
            return os.getenv(match.group(1), match.group(0))

        return _ENV_VAR.sub(replace_var, data)
    else:
        return data
