"""
Shared fixtures: in-memory store, connection and a polling wait helper.
"""

import asyncio

import pytest

from fsconsul.config.models import StoreConnection
from fsconsul.store.memory import InMemoryStoreClient


async def _wait_until(predicate, timeout: float = 3.0, interval: float = 0.01) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met within timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_until():
    """Await until predicate() is truthy, failing the test after a timeout."""
    return _wait_until


@pytest.fixture
def connection():
    return StoreConnection(address="127.0.0.1:8500", datacenter="dc1", auth_token="")


@pytest.fixture
def store():
    return InMemoryStoreClient(wait_time=0.2)


class RecordingHook:
    """Hook runner that records calls instead of spawning a shell."""

    def __init__(self, returncode: int = 0, error: Exception | None = None):
        self.calls: list[tuple[str, str | None]] = []
        self.returncode = returncode
        self.error = error

    async def __call__(self, command: str, cwd: str | None = None) -> int:
        self.calls.append((command, cwd))
        if self.error is not None:
            raise self.error
        return self.returncode


@pytest.fixture
def hook():
    return RecordingHook()


@pytest.fixture
def make_hook():
    return RecordingHook
