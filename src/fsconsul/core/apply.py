"""
Applying a prefix listing to the filesystem.

Translates store keys to paths under the mapping's target directory and
writes values verbatim when their SHA256 fingerprint changed. Local files
are never removed.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, MutableMapping, Optional

from fsconsul.config.models import Mapping
from fsconsul.exceptions import FilesystemError
from fsconsul.store.base import KVEntry
from fsconsul.utils.logging import get_logger

logger = get_logger("fsconsul.core.apply")


@dataclass
class ApplyResult:
    """Outcome of applying one listing."""

    # Relative paths written this cycle
    written: List[str] = field(default_factory=list)
    # Relative paths whose fingerprint matched (no write)
    unchanged: List[str] = field(default_factory=list)
    # Keys that map to no file (prefix node, outside prefix, unsafe path)
    skipped: List[str] = field(default_factory=list)
    # Directories created for folder keys ("a/b/")
    directories: List[str] = field(default_factory=list)
    # Per-entry write failures, retried on the next poll
    errors: List[FilesystemError] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.written)


def fingerprint(value: bytes) -> str:
    """SHA256 hex digest of an entry value."""
    return hashlib.sha256(value).hexdigest()


def relative_path(key: str, prefix: str) -> Optional[str]:
    """
    Strip ``prefix`` and one separator from the front of ``key``.

    Returns None for the prefix node itself, for keys that merely share a
    string prefix ("app" vs "apple/x"), and for keys whose remainder would
    escape the target directory.
    """
    lead = prefix + "/"
    if not key.startswith(lead):
        return None

    remainder = key[len(lead):]
    parts = [part for part in remainder.split("/") if part]
    if not parts or any(part in (".", "..") for part in parts):
        return None

    rel = "/".join(parts)
    # Folder keys keep their trailing slash so callers can tell them apart
    if remainder.endswith("/"):
        rel += "/"
    return rel


def write_entry(path: Path, value: bytes) -> None:
    """Create parent directories and write ``value`` to ``path``, overwriting."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(value)
    except OSError as e:
        raise FilesystemError(f"Failed to write {path}: {e}", path=str(path), cause=e) from e


def apply_entries(
    mapping: Mapping,
    entries: Iterable[KVEntry],
    known_entries: MutableMapping[str, str],
) -> ApplyResult:
    """
    Mirror a full listing into ``mapping.target_directory``.

    Args:
        mapping: Mapping the listing belongs to
        entries: Every entry currently under the mapping's prefix
        known_entries: Relative path -> fingerprint of what was last written,
            updated in place for each successful write

    Returns:
        ApplyResult describing what was written, skipped and failed
    """
    result = ApplyResult()
    target = Path(mapping.target_directory)

    for entry in entries:
        rel = relative_path(entry.key, mapping.source_prefix)
        if rel is None:
            if entry.key.strip("/") != mapping.source_prefix:
                logger.debug(f"Skipping key '{entry.key}' (not under '{mapping.source_prefix}/')")
            result.skipped.append(entry.key)
            continue

        if rel.endswith("/"):
            try:
                (target / rel).mkdir(parents=True, exist_ok=True)
                result.directories.append(rel)
            except OSError as e:
                error = FilesystemError(f"Failed to create {target / rel}: {e}", path=str(target / rel), cause=e)
                logger.warning(error.message)
                result.errors.append(error)
            continue

        digest = fingerprint(entry.value)
        if known_entries.get(rel) == digest:
            result.unchanged.append(rel)
            continue

        try:
            write_entry(target / rel, entry.value)
        except FilesystemError as e:
            logger.warning(f"[{mapping}] {e.message}; will retry on next change")
            result.errors.append(e)
            continue

        known_entries[rel] = digest
        result.written.append(rel)
        logger.debug(f"[{mapping}] Wrote {rel} ({len(entry.value)} bytes)")

    return result
