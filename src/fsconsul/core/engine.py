"""
Sync engine: supervises one MappingWatcher per configured mapping.

Watchers run as independent asyncio tasks. A watcher that fails is reported
and the rest keep running; only stop() (or cancelling run()) ends the engine
while any watcher is alive.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from fsconsul.config.models import WatchConfig
from fsconsul.core.hooks import HookRunner, run_hook
from fsconsul.core.watcher import MappingWatcher, WatcherState
from fsconsul.exceptions import FsConsulError
from fsconsul.store.base import StoreClient
from fsconsul.utils.logging import get_logger

logger = get_logger("fsconsul.core.engine")

EXIT_OK = 0
EXIT_FAILURE = 1


class SyncEngine:
    """
    Runs every mapping of a WatchConfig until stopped.

    Args:
        config: Validated configuration
        client: Store client to share between watchers. When omitted a
            ConsulStoreClient is created, connected and closed by the engine;
            a client passed in must already be connected.
        hook_runner: Coroutine used to run on-change commands

    Example:
        engine = SyncEngine(load_config("fsconsul.yaml"))
        loop.add_signal_handler(signal.SIGTERM, engine.stop)
        exit_code = await engine.run()
    """

    def __init__(
        self,
        config: WatchConfig,
        client: Optional[StoreClient] = None,
        *,
        hook_runner: HookRunner = run_hook,
    ):
        self.config = config
        self._owns_client = client is None
        if client is None:
            from fsconsul.store.consul import ConsulStoreClient

            client = ConsulStoreClient(wait_time=config.wait_time)
        self.client = client
        self.hook_runner = hook_runner

        self.watchers: List[MappingWatcher] = []
        self.failures: Dict[str, BaseException] = {}
        self._tasks: Dict[asyncio.Task, MappingWatcher] = {}
        self._stopping = asyncio.Event()

    def build_watchers(self) -> List[MappingWatcher]:
        """Create one watcher per mapping (no tasks are started)."""
        return [
            MappingWatcher(
                mapping,
                self.client,
                self.config.store,
                retry_policy=self.config.retry,
                hook_runner=self.hook_runner,
            )
            for mapping in self.config.mappings
        ]

    def stop(self) -> None:
        """Signal every watcher to stop; run() returns once they have."""
        if not self._stopping.is_set():
            logger.info("Stopping sync engine...")
        self._stopping.set()
        for watcher in self.watchers:
            watcher.stop()

    @property
    def running(self) -> List[MappingWatcher]:
        return [w for w in self.watchers if w.state not in (WatcherState.STOPPED, WatcherState.FAILED)]

    async def run(self) -> int:
        """
        Start all watchers and block until stopped.

        Returns:
            EXIT_OK after a requested stop, EXIT_FAILURE if no watcher could be
            started or every watcher ended in FAILED
        """
        try:
            self.watchers = self.build_watchers()
        except (FsConsulError, ValueError) as e:
            logger.error(f"Could not start watchers: {e}")
            return EXIT_FAILURE
        if not self.watchers:
            logger.error("No mappings to watch")
            return EXIT_FAILURE

        if self._owns_client:
            await self.client.connect()

        try:
            return await self._supervise()
        finally:
            if self._owns_client:
                await self.client.disconnect()

    async def _supervise(self) -> int:
        self._tasks = {
            asyncio.create_task(watcher.run(), name=f"fsconsul:{watcher.mapping.source_prefix}"): watcher
            for watcher in self.watchers
        }
        logger.info(f"Sync engine started with {len(self._tasks)} mapping(s)")

        waiting = set(self._tasks)
        stop_waiter = asyncio.ensure_future(self._stopping.wait())
        try:
            while waiting and not self._stopping.is_set():
                done, _ = await asyncio.wait(waiting | {stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    if task is stop_waiter:
                        continue
                    waiting.discard(task)
                    self._collect(task)
                    if waiting:
                        logger.info(f"{len(waiting)} mapping(s) still running")
        finally:
            stop_waiter.cancel()
            await self._shutdown()

        if self._stopping.is_set():
            logger.info("Sync engine stopped")
            return EXIT_OK

        if len(self.failures) == len(self.watchers):
            logger.error("All watchers failed")
            return EXIT_FAILURE
        return EXIT_OK

    def _collect(self, task: asyncio.Task) -> None:
        """Record why a watcher task finished."""
        watcher = self._tasks[task]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            watcher.state = WatcherState.FAILED
            watcher.failure = error
            logger.error(f"Watcher {watcher.name} crashed: {error}", exc_info=error)
        if watcher.state == WatcherState.FAILED:
            self.failures[watcher.name] = watcher.failure

    async def _shutdown(self) -> None:
        """Stop and cancel every watcher, then wait for all of them."""
        for watcher in self.watchers:
            watcher.stop()
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for task in pending:
            self._collect(task)
        for watcher in self.watchers:
            if watcher.state != WatcherState.FAILED:
                watcher.state = WatcherState.STOPPED
