"""
fsconsul exception hierarchy.

All domain-specific exceptions inherit from FsConsulError, making it easy
to catch any daemon error with a single base class while still allowing
fine-grained handling when needed.

Hierarchy::

    FsConsulError
    ├── ConfigError               - config loading, parsing, validation
    ├── StoreError                - key-value store access
    │   ├── TransientStoreError   - timeouts, resets, 5xx (retried with backoff)
    │   ├── StaleIndexError       - change-index no longer available (full resync)
    │   └── PermanentStoreError   - auth rejection, malformed prefix (watcher fails)
    ├── FilesystemError           - directory creation / file write
    └── HookError                 - on-change command could not be launched
"""

from __future__ import annotations


class FsConsulError(Exception):
    """Base exception for all fsconsul errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigError(FsConsulError):
    """Raised when configuration loading, parsing, or validation fails."""


# --- Store -------------------------------------------------------------------


class StoreError(FsConsulError):
    """Raised when the key-value store cannot serve a request."""

    def __init__(self, message: str, *, status: int | None = None, prefix: str | None = None) -> None:
        super().__init__(message, details={"status": status, "prefix": prefix})
        self.status = status
        self.prefix = prefix


class TransientStoreError(StoreError):
    """Network timeout, connection reset or transient server error."""


class StaleIndexError(StoreError):
    """The requested change-index is no longer available from the store."""


class PermanentStoreError(StoreError):
    """Authentication/authorization rejection or a request the store will never accept."""


# --- Filesystem --------------------------------------------------------------


class FilesystemError(FsConsulError):
    """Raised when a mirrored entry cannot be written to disk."""

    def __init__(self, message: str, *, path: str | None = None, cause: Exception | None = None) -> None:
        super().__init__(message, details={"path": path})
        self.path = path
        if cause is not None:
            self.__cause__ = cause


# --- Hooks -------------------------------------------------------------------


class HookError(FsConsulError):
    """Raised when an on-change command cannot be started."""

    def __init__(self, command: str, message: str) -> None:
        super().__init__(f"On-change command '{command}' failed: {message}", details={"command": command})
        self.command = command
