"""
Key-value store clients.
"""

from fsconsul.store.base import KVEntry, StoreClient
from fsconsul.store.consul import ConsulStoreClient
from fsconsul.store.memory import InMemoryStoreClient

__all__ = [
    "KVEntry",
    "StoreClient",
    "ConsulStoreClient",
    "InMemoryStoreClient",
]
