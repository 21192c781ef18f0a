"""
Typed configuration: store connection, mappings and daemon options.

``parse_config`` turns an already-decoded payload (from YAML, JSON or the CLI)
into a validated ``WatchConfig``. All normalization happens here.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import Any

from fsconsul.core.retry import RetryPolicy
from fsconsul.exceptions import ConfigError

DEFAULT_ADDRESS = "127.0.0.1:8500"
DEFAULT_WAIT_TIME = 300.0
# Consul rounds blocking waits to whole seconds and caps them at 10 minutes
MIN_WAIT_TIME = 1.0
MAX_WAIT_TIME = 600.0

_STRAY_QUOTES = ('"', "'")
_SEPARATORS = "/" + os.sep


def normalize_target_directory(path: str) -> str:
    """
    Normalize a configured target directory.

    Strips one trailing stray quote left over from shell-quoted input, then
    collapses trailing separators to exactly one. Idempotent: a normalized
    path always ends in a separator, so a second pass strips nothing.
    """
    if path.endswith(_STRAY_QUOTES):
        path = path[:-1]
    stripped = path.rstrip(_SEPARATORS)
    if not stripped:
        # Root directory (or a bare quote, caught by the caller)
        return "/" if path else ""
    return stripped + "/"


def normalize_prefix(prefix: str) -> str:
    """Strip surrounding slashes from a key prefix."""
    return prefix.strip("/")


@dataclass(frozen=True)
class StoreConnection:
    """Address and credentials for the key-value store, shared read-only by all watchers."""

    address: str = DEFAULT_ADDRESS
    datacenter: str = ""
    auth_token: str = ""

    @property
    def base_url(self) -> str:
        if "://" in self.address:
            return self.address.rstrip("/")
        return f"http://{self.address.rstrip('/')}"


@dataclass(frozen=True)
class Mapping:
    """A store key prefix mirrored into a local directory."""

    source_prefix: str
    target_directory: str
    on_change: str | None = None
    on_change_cwd: str | None = None

    def __post_init__(self) -> None:
        prefix = normalize_prefix(self.source_prefix or "")
        if not prefix:
            raise ConfigError("Mapping source prefix must not be empty", details={"mapping": self.source_prefix})

        target = normalize_target_directory(self.target_directory or "")
        if not target:
            raise ConfigError(
                f"Mapping '{prefix}' has an empty target directory",
                details={"mapping": prefix},
            )

        on_change = self.on_change.strip() if self.on_change else None

        object.__setattr__(self, "source_prefix", prefix)
        object.__setattr__(self, "target_directory", target)
        object.__setattr__(self, "on_change", on_change or None)

    def __str__(self) -> str:
        return f"{self.source_prefix} -> {self.target_directory}"


@dataclass(frozen=True)
class WatchConfig:
    """Complete daemon configuration."""

    store: StoreConnection
    mappings: tuple[Mapping, ...]
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    wait_time: float = DEFAULT_WAIT_TIME
    logging: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.mappings:
            raise ConfigError("At least one mapping is required")
        if not math.isfinite(self.wait_time) or not MIN_WAIT_TIME <= self.wait_time <= MAX_WAIT_TIME:
            raise ConfigError(
                f"wait_time must be between {MIN_WAIT_TIME:g} and {MAX_WAIT_TIME:g} seconds, got {self.wait_time}"
            )


# Accepted spellings per field, canonical first
_STORE_KEYS = ("store", "consul")
_ADDRESS_KEYS = ("address", "addr")
_DATACENTER_KEYS = ("datacenter", "dc")
_TOKEN_KEYS = ("token", "auth_token")
_PREFIX_KEYS = ("source_prefix", "sourcePrefix", "prefix")
_TARGET_KEYS = ("target_directory", "targetDirectory", "path")
_ON_CHANGE_KEYS = ("on_change", "onChangeCommand", "onchange")


def _pick(data: dict[str, Any], keys: tuple[str, ...], default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _as_str(value: Any, what: str) -> str:
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        return str(value)
    raise ConfigError(f"{what} must be a string, got {type(value).__name__}")


def parse_store(data: Any) -> StoreConnection:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"'store' must be a mapping, got {type(data).__name__}")

    return StoreConnection(
        address=_as_str(_pick(data, _ADDRESS_KEYS, DEFAULT_ADDRESS), "store address") or DEFAULT_ADDRESS,
        datacenter=_as_str(_pick(data, _DATACENTER_KEYS, ""), "store datacenter"),
        auth_token=_as_str(_pick(data, _TOKEN_KEYS, ""), "store token"),
    )


def parse_mapping(data: Any, index: int = 0) -> Mapping:
    if not isinstance(data, dict):
        raise ConfigError(f"Mapping #{index} must be a mapping, got {type(data).__name__}")

    prefix = _pick(data, _PREFIX_KEYS, "")
    target = _pick(data, _TARGET_KEYS, "")
    on_change = _pick(data, _ON_CHANGE_KEYS)
    cwd = data.get("on_change_cwd")

    return Mapping(
        source_prefix=_as_str(prefix, f"Mapping #{index} prefix"),
        target_directory=_as_str(target, f"Mapping #{index} target directory"),
        on_change=_as_str(on_change, f"Mapping #{index} on_change") if on_change is not None else None,
        on_change_cwd=_as_str(cwd, f"Mapping #{index} on_change_cwd") if cwd is not None else None,
    )


def parse_config(payload: Any) -> WatchConfig:
    """
    Build a validated WatchConfig from a decoded configuration payload.

    Args:
        payload: Dictionary with ``store`` and ``mappings`` sections

    Returns:
        WatchConfig with normalized mappings

    Raises:
        ConfigError: If the payload is structurally invalid or incomplete
    """
    if not isinstance(payload, dict):
        raise ConfigError(f"Configuration must be a mapping, got {type(payload).__name__}")

    mappings_data = payload.get("mappings")
    if mappings_data is None:
        raise ConfigError("Configuration has no 'mappings' section")
    if not isinstance(mappings_data, list):
        raise ConfigError(f"'mappings' must be a list, got {type(mappings_data).__name__}")

    mappings = tuple(parse_mapping(item, i) for i, item in enumerate(mappings_data))

    wait_time = payload.get("wait_time", DEFAULT_WAIT_TIME)
    try:
        wait_time = float(wait_time)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"wait_time must be a number, got {wait_time!r}") from e

    logging_section = payload.get("logging") or {}
    if not isinstance(logging_section, dict):
        raise ConfigError(f"'logging' must be a mapping, got {type(logging_section).__name__}")

    return WatchConfig(
        store=parse_store(_pick(payload, _STORE_KEYS)),
        mappings=mappings,
        retry=RetryPolicy.from_dict(payload.get("retry")),
        wait_time=wait_time,
        logging=logging_section,
    )
