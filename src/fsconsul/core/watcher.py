"""
Per-mapping watch loop.

A MappingWatcher long-polls one prefix, mirrors the listing into its target
directory and fires the mapping's on-change command once per cycle that
wrote something. Each watcher owns its WatchState exclusively.

State machine::

    IDLE -> POLLING -> APPLYING -> IDLE ...
    POLLING -> POLLING   (transient error: backoff; stale index: reset to 0)
    POLLING -> FAILED    (permanent error or retries exhausted)
    any     -> STOPPED   (stop() / task cancellation)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from fsconsul.config.models import Mapping, StoreConnection
from fsconsul.core.apply import ApplyResult, apply_entries
from fsconsul.core.hooks import HookRunner, run_hook
from fsconsul.core.retry import DEFAULT_RETRY_POLICY, RetryPolicy
from fsconsul.exceptions import (
    HookError,
    StaleIndexError,
    StoreError,
    TransientStoreError,
)
from fsconsul.store.base import StoreClient
from fsconsul.utils.logging import get_logger

logger = get_logger("fsconsul.core.watcher")


class WatcherState(str, Enum):
    """Lifecycle states of a MappingWatcher."""

    IDLE = "idle"
    POLLING = "polling"
    APPLYING = "applying"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass
class WatchState:
    """Change-index and fingerprints of what this watcher last wrote."""

    last_index: int = 0
    known_entries: Dict[str, str] = field(default_factory=dict)


class MappingWatcher:
    """
    Keeps one mapping's target directory in sync with its store prefix.

    Args:
        mapping: Prefix/directory pairing to watch
        client: Store client shared with other watchers
        connection: Store address and credentials
        retry_policy: Backoff for transient store failures
        hook_runner: Coroutine used to run the on-change command
    """

    def __init__(
        self,
        mapping: Mapping,
        client: StoreClient,
        connection: StoreConnection,
        *,
        retry_policy: RetryPolicy | None = None,
        hook_runner: HookRunner = run_hook,
    ):
        self.mapping = mapping
        self.client = client
        self.connection = connection
        self.retry_policy = retry_policy or DEFAULT_RETRY_POLICY
        self.hook_runner = hook_runner

        self.state = WatcherState.IDLE
        self.watch_state = WatchState()
        self.failure: Optional[BaseException] = None
        self.cycles = 0
        self.hook_runs = 0
        self._stopping = asyncio.Event()

    @property
    def name(self) -> str:
        return str(self.mapping)

    @property
    def is_stopping(self) -> bool:
        return self._stopping.is_set()

    def stop(self) -> None:
        """Ask the loop to exit before its next poll."""
        self._stopping.set()

    async def run(self) -> None:
        """
        Watch until stopped or failed.

        Store errors never escape: transient ones are retried, permanent ones
        end the loop in FAILED with ``self.failure`` set. Cancellation ends the
        loop in STOPPED and is re-raised.
        """
        failures = 0
        logger.info(f"Watching {self.name}")
        try:
            while not self._stopping.is_set():
                try:
                    await self.poll_once()
                except StaleIndexError as e:
                    if self.watch_state.last_index == 0:
                        # Already at a full resync; nothing left to reset
                        failures += 1
                        if not await self._backoff(e, failures):
                            return
                        continue
                    logger.warning(f"[{self.name}] {e.message}; resyncing from index 0")
                    self.watch_state.last_index = 0
                except TransientStoreError as e:
                    failures += 1
                    if not await self._backoff(e, failures):
                        return
                except StoreError as e:
                    # PermanentStoreError, or anything the client did not classify
                    self._fail(e)
                    return
                else:
                    if failures:
                        logger.info(f"[{self.name}] Store reachable again after {failures} failed attempt(s)")
                    failures = 0
            self.state = WatcherState.STOPPED
            logger.info(f"Stopped watching {self.name}")
        except asyncio.CancelledError:
            if self.state != WatcherState.FAILED:
                self.state = WatcherState.STOPPED
            raise

    async def poll_once(self) -> Optional[ApplyResult]:
        """
        Run one POLLING -> APPLYING -> IDLE cycle.

        Returns:
            ApplyResult, or None if a stop arrived while polling

        Raises:
            StoreError: Whatever the store client raised
        """
        self.state = WatcherState.POLLING
        last_index = self.watch_state.last_index
        entries, new_index = await self.client.list_under_prefix(
            self.mapping.source_prefix,
            last_index,
            self.connection,
        )
        if self._stopping.is_set():
            return None
        if new_index < last_index:
            raise StaleIndexError(
                f"Change-index went backwards ({last_index} -> {new_index})",
                prefix=self.mapping.source_prefix,
            )

        self.state = WatcherState.APPLYING
        result = apply_entries(self.mapping, entries, self.watch_state.known_entries)
        if result.written:
            logger.info(f"[{self.name}] Updated {len(result.written)} file(s) at index {new_index}")

        if result.changed and self.mapping.on_change:
            await self._run_hook()

        self.watch_state.last_index = new_index
        self.cycles += 1
        self.state = WatcherState.IDLE
        return result

    async def _run_hook(self) -> None:
        self.hook_runs += 1
        try:
            await self.hook_runner(self.mapping.on_change, self.mapping.on_change_cwd)
        except HookError as e:
            logger.error(f"[{self.name}] {e.message}")

    async def _backoff(self, error: StoreError, failures: int) -> bool:
        """Sleep before the next attempt. Returns False if the watcher gave up."""
        if not self.retry_policy.should_retry(failures):
            logger.error(f"[{self.name}] Giving up after {failures} failed attempt(s): {error.message}")
            self._fail(error)
            return False

        delay = self.retry_policy.get_delay(failures - 1)
        logger.warning(f"[{self.name}] Poll attempt {failures} failed: {error.message}. Retrying in {delay:.2f}s...")
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
        return True

    def _fail(self, error: StoreError) -> None:
        self.failure = error
        self.state = WatcherState.FAILED
        logger.error(f"[{self.name}] Watcher failed: {error.message}")
