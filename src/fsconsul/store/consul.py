"""
Consul HTTP store client.

Lists keys with blocking queries against the Consul KV endpoint:

    GET /v1/kv/<prefix>?recurse=true&index=<n>&wait=<s>s

The response body is a JSON array of entries with base64-encoded values and
the change-index is carried in the ``X-Consul-Index`` header.

Example:
    from fsconsul.store import ConsulStoreClient

    async with ConsulStoreClient(wait_time=60) as client:
        entries, index = await client.list_under_prefix("app", 0, connection)
        entries, index = await client.list_under_prefix("app", index, connection)  # blocks
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import math
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import aiohttp

from fsconsul.config.models import DEFAULT_WAIT_TIME, MAX_WAIT_TIME, MIN_WAIT_TIME, StoreConnection
from fsconsul.exceptions import PermanentStoreError, StaleIndexError, TransientStoreError
from fsconsul.store.base import KVEntry, StoreClient
from fsconsul.utils.logging import get_logger

logger = get_logger("fsconsul.store.consul")

INDEX_HEADER = "X-Consul-Index"
TOKEN_HEADER = "X-Consul-Token"


class ConsulStoreClient(StoreClient):
    """
    Consul KV client using aiohttp blocking queries.

    One client (and one HTTP session) is shared by every watcher; each call
    carries its own StoreConnection so the datacenter and token travel with
    the request.

    Args:
        wait_time: Long-poll bound in seconds passed as Consul's ``wait``
        connect_timeout: TCP connect timeout in seconds
    """

    def __init__(self, wait_time: float = DEFAULT_WAIT_TIME, connect_timeout: float = 10.0):
        if not math.isfinite(wait_time) or not MIN_WAIT_TIME <= wait_time <= MAX_WAIT_TIME:
            raise ValueError(f"wait_time must be between {MIN_WAIT_TIME:g} and {MAX_WAIT_TIME:g} seconds, got {wait_time}")
        self.wait_time = wait_time
        self.connect_timeout = connect_timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def connect(self) -> None:
        """Initialize HTTP session."""
        if self._session is not None:
            return
        # Consul adds up to wait/16 of jitter to blocking queries
        read_timeout = self.wait_time + self.wait_time / 16 + 5.0
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=self.connect_timeout, sock_read=read_timeout)
        self._session = aiohttp.ClientSession(timeout=timeout)
        logger.debug(f"Consul client session opened (wait={self.wait_time:g}s)")

    async def disconnect(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("Consul client not connected. Call connect() first.")
        return self._session

    def _url(self, prefix: str, connection: StoreConnection) -> str:
        return f"{connection.base_url}/v1/kv/{quote(prefix, safe='/')}"

    def _headers(self, connection: StoreConnection) -> Dict[str, str]:
        if connection.auth_token:
            return {TOKEN_HEADER: connection.auth_token}
        return {}

    def _params(self, connection: StoreConnection) -> Dict[str, str]:
        params = {"recurse": "true"}
        if connection.datacenter:
            params["dc"] = connection.datacenter
        return params

    async def list_under_prefix(
        self,
        prefix: str,
        after_index: int,
        connection: StoreConnection,
    ) -> Tuple[List[KVEntry], int]:
        params = self._params(connection)
        if after_index > 0:
            params["index"] = str(after_index)
            params["wait"] = f"{int(self.wait_time)}s"

        url = self._url(prefix, connection)
        try:
            async with self.session.get(url, params=params, headers=self._headers(connection)) as resp:
                if resp.status == 404:
                    # No keys under the prefix yet; the index is still valid
                    body: Any = []
                elif resp.status == 200:
                    body = await resp.json(content_type=None)
                else:
                    text = await resp.text()
                    raise self._status_error(resp.status, text, prefix)
                new_index = self._parse_index(resp.headers.get(INDEX_HEADER), prefix)
        except asyncio.TimeoutError as e:
            raise TransientStoreError(f"Timed out listing '{prefix}'", prefix=prefix) from e
        except aiohttp.ClientError as e:
            raise TransientStoreError(f"Transport error listing '{prefix}': {e}", prefix=prefix) from e
        except ValueError as e:
            raise TransientStoreError(f"Malformed response listing '{prefix}': {e}", prefix=prefix) from e

        if new_index < after_index:
            # Consul's index went backwards (snapshot restore, leader change): resync
            raise StaleIndexError(
                f"Change-index for '{prefix}' went backwards ({after_index} -> {new_index})",
                prefix=prefix,
            )

        entries = self._decode_entries(body, prefix)
        logger.debug(f"Listed {len(entries)} key(s) under '{prefix}' at index {new_index}")
        return entries, new_index

    async def delete_subtree(self, prefix: str, connection: StoreConnection) -> bool:
        url = self._url(prefix, connection)
        try:
            async with self.session.delete(url, params=self._params(connection), headers=self._headers(connection)) as resp:
                text = await resp.text()
                if resp.status != 200:
                    logger.warning(f"Delete of '{prefix}' rejected (status={resp.status}): {text[:200]}")
                    return False
                return text.strip() == "true"
        except asyncio.TimeoutError as e:
            raise TransientStoreError(f"Timed out deleting '{prefix}'", prefix=prefix) from e
        except aiohttp.ClientError as e:
            raise TransientStoreError(f"Transport error deleting '{prefix}': {e}", prefix=prefix) from e

    @staticmethod
    def _status_error(status: int, text: str, prefix: str) -> Exception:
        detail = text.strip()[:200]
        if status in (401, 403):
            return PermanentStoreError(f"Access to '{prefix}' denied (status={status}): {detail}", status=status, prefix=prefix)
        if status == 429 or status >= 500:
            return TransientStoreError(f"Store error for '{prefix}' (status={status}): {detail}", status=status, prefix=prefix)
        return PermanentStoreError(f"Request for '{prefix}' rejected (status={status}): {detail}", status=status, prefix=prefix)

    @staticmethod
    def _parse_index(raw: Optional[str], prefix: str) -> int:
        try:
            index = int(raw) if raw is not None else -1
        except ValueError:
            index = -1
        if index < 0:
            raise TransientStoreError(f"Missing or invalid {INDEX_HEADER} header for '{prefix}': {raw!r}", prefix=prefix)
        # An index of 0 would turn every later query into a non-blocking one
        return max(index, 1)

    @staticmethod
    def _decode_entries(body: Any, prefix: str) -> List[KVEntry]:
        if not isinstance(body, list):
            raise TransientStoreError(f"Unexpected listing payload for '{prefix}': {type(body).__name__}", prefix=prefix)

        entries = []
        for item in body:
            if not isinstance(item, dict) or "Key" not in item:
                raise TransientStoreError(f"Unexpected listing item for '{prefix}': {item!r}"[:300], prefix=prefix)
            raw = item.get("Value")
            try:
                value = base64.b64decode(raw) if raw else b""
            except (binascii.Error, TypeError) as e:
                raise TransientStoreError(f"Undecodable value for key '{item.get('Key')}': {e}", prefix=prefix) from e
            entries.append(
                KVEntry(
                    key=item["Key"],
                    value=value,
                    flags=int(item.get("Flags") or 0),
                    modify_index=int(item.get("ModifyIndex") or 0),
                )
            )
        return entries
