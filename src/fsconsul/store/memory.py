"""
In-memory store client for testing.

Behaves like a single-datacenter Consul KV: every write bumps a global
change-index and blocking listings park until the index moves past the
caller's. Failures and index compaction can be injected deterministically.

Example:
    from fsconsul.store import InMemoryStoreClient

    store = InMemoryStoreClient(wait_time=1.0)
    await store.put("app/config.json", b"{}")

    entries, index = await store.list_under_prefix("app", 0, connection)
    # Parks until the next write under any key
    entries, index = await store.list_under_prefix("app", index, connection)
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Deque, Dict, List, Tuple

from fsconsul.config.models import StoreConnection
from fsconsul.exceptions import StaleIndexError, StoreError
from fsconsul.store.base import KVEntry, StoreClient


class InMemoryStoreClient(StoreClient):
    """
    In-process key-value store with long-poll semantics.

    Features:
    - No external dependencies
    - Blocking listings bounded by ``wait_time``
    - ``fail_next()`` to inject store errors (also wakes parked pollers)
    - ``compact()`` to make old indexes stale
    - ``calls`` records every ``(prefix, after_index)`` listing request
    """

    def __init__(self, wait_time: float = 1.0):
        self.wait_time = wait_time
        self.calls: List[Tuple[str, int]] = []
        self._data: Dict[str, KVEntry] = {}
        self._index = 1
        self._compacted_index = 0
        self._failures: Deque[StoreError] = deque()
        self._changed = asyncio.Condition()
        self._connected = False

    async def connect(self) -> None:
        """No-op for in-memory store."""
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    @property
    def index(self) -> int:
        return self._index

    async def list_under_prefix(
        self,
        prefix: str,
        after_index: int,
        connection: StoreConnection,
    ) -> Tuple[List[KVEntry], int]:
        self.calls.append((prefix, after_index))

        if after_index > 0 and not self._failures:
            if after_index < self._compacted_index or after_index > self._index:
                raise StaleIndexError(f"Index {after_index} is no longer available", prefix=prefix)

            async with self._changed:
                try:
                    await asyncio.wait_for(
                        self._changed.wait_for(lambda: self._index > after_index or bool(self._failures)),
                        timeout=self.wait_time,
                    )
                except asyncio.TimeoutError:
                    pass

        if self._failures:
            raise self._failures.popleft()

        return self.get_entries(prefix), self._index

    async def delete_subtree(self, prefix: str, connection: StoreConnection) -> bool:
        doomed = [key for key in self._data if key.startswith(prefix)]
        if doomed:
            for key in doomed:
                del self._data[key]
            await self._bump()
        return True

    async def put(self, key: str, value: bytes, flags: int = 0) -> int:
        """Set a key and return the new change-index."""
        self._data[key] = KVEntry(key=key, value=bytes(value), flags=flags, modify_index=self._index + 1)
        return await self._bump()

    async def delete_key(self, key: str) -> int:
        """Remove a single key and return the new change-index."""
        self._data.pop(key, None)
        return await self._bump()

    async def fail_next(self, error: StoreError, times: int = 1) -> None:
        """Make the next ``times`` listings raise ``error``, including any parked one."""
        self._failures.extend([error] * times)
        async with self._changed:
            self._changed.notify_all()

    def compact(self, index: int | None = None) -> None:
        """Discard history: listings after an index below ``index`` become stale."""
        self._compacted_index = self._index if index is None else index

    def get_entries(self, prefix: str) -> List[KVEntry]:
        """Current entries under a raw string prefix, sorted by key (for testing)."""
        return [self._data[key] for key in sorted(self._data) if key.startswith(prefix)]

    async def _bump(self) -> int:
        self._index += 1
        async with self._changed:
            self._changed.notify_all()
        return self._index
