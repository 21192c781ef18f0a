"""
Base store client interface.

The watch engine only talks to the key-value store through this interface,
so the Consul HTTP client can be swapped for the in-memory store in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Tuple

from fsconsul.config.models import StoreConnection


@dataclass(frozen=True)
class KVEntry:
    """
    A single key returned by a prefix listing.

    ``value`` is opaque: it is written to disk exactly as received and
    ``flags`` is never interpreted.
    """

    key: str
    value: bytes = b""
    flags: int = 0
    modify_index: int = 0


class StoreClient(ABC):
    """
    Abstract base class for key-value store clients.

    Implementations provided:
    - ConsulStoreClient: Consul HTTP API long-poll (requires aiohttp)
    - InMemoryStoreClient: In-process store for tests

    Pending calls must honor task cancellation so the engine can stop
    watchers that are parked in a long-poll.

    Example:
        async with ConsulStoreClient(wait_time=60) as client:
            entries, index = await client.list_under_prefix("app/config", 0, connection)
    """

    @abstractmethod
    async def connect(self) -> None:
        """Acquire client resources (sessions, pools)."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Release client resources."""
        ...

    @abstractmethod
    async def list_under_prefix(
        self,
        prefix: str,
        after_index: int,
        connection: StoreConnection,
    ) -> Tuple[List[KVEntry], int]:
        """
        List every entry under a prefix, blocking until it changes.

        Args:
            prefix: Key prefix to list
            after_index: Last observed change-index (0 returns immediately)
            connection: Store address and credentials

        Returns:
            Full current set of entries and the new change-index

        Raises:
            TransientStoreError: Retryable transport or server failure
            StaleIndexError: ``after_index`` is no longer valid
            PermanentStoreError: Request rejected for good
        """
        ...

    @abstractmethod
    async def delete_subtree(self, prefix: str, connection: StoreConnection) -> bool:
        """
        Delete every key under a prefix.

        Administrative operation, not used by the sync loop.

        Returns:
            True if the store acknowledged the delete
        """
        ...

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, *exc):
        await self.disconnect()
