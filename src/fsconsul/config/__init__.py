"""
Configuration model and file loading.
"""

from fsconsul.config.loader import load_config, read_config_file
from fsconsul.config.models import (
    DEFAULT_ADDRESS,
    DEFAULT_WAIT_TIME,
    Mapping,
    StoreConnection,
    WatchConfig,
    normalize_target_directory,
    parse_config,
)

__all__ = [
    "DEFAULT_ADDRESS",
    "DEFAULT_WAIT_TIME",
    "Mapping",
    "StoreConnection",
    "WatchConfig",
    "load_config",
    "normalize_target_directory",
    "parse_config",
    "read_config_file",
]
