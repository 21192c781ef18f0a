"""
fsconsul - Mirror key-value store prefixes onto the local filesystem.

Watches one or more prefixes with blocking queries, writes each key to a file
under the mapped directory and runs an optional command when anything changed.
"""

__version__ = "0.2.0"

# Configuration
from fsconsul.config import Mapping, StoreConnection, WatchConfig, load_config, parse_config

# Engine
from fsconsul.core.engine import EXIT_FAILURE, EXIT_OK, SyncEngine
from fsconsul.core.retry import RetryPolicy
from fsconsul.core.watcher import MappingWatcher, WatcherState, WatchState

# Exceptions
from fsconsul.exceptions import (
    ConfigError,
    FilesystemError,
    FsConsulError,
    HookError,
    PermanentStoreError,
    StaleIndexError,
    StoreError,
    TransientStoreError,
)

# Store clients
from fsconsul.store import ConsulStoreClient, InMemoryStoreClient, KVEntry, StoreClient

# Logging utilities
from fsconsul.utils.logging import get_logger, setup_logging, setup_logging_from_config

__all__ = [
    # Config
    "Mapping",
    "StoreConnection",
    "WatchConfig",
    "load_config",
    "parse_config",
    # Engine
    "SyncEngine",
    "MappingWatcher",
    "WatcherState",
    "WatchState",
    "RetryPolicy",
    "EXIT_OK",
    "EXIT_FAILURE",
    # Store
    "StoreClient",
    "KVEntry",
    "ConsulStoreClient",
    "InMemoryStoreClient",
    # Logging
    "setup_logging",
    "setup_logging_from_config",
    "get_logger",
    # Exceptions
    "FsConsulError",
    "ConfigError",
    "StoreError",
    "TransientStoreError",
    "StaleIndexError",
    "PermanentStoreError",
    "FilesystemError",
    "HookError",
]
