"""
Tests for the Consul HTTP store client.

HTTP traffic is mocked with aioresponses.
"""

import asyncio
import base64
import re

import aiohttp
import pytest
from aioresponses import aioresponses

from fsconsul.config.models import StoreConnection
from fsconsul.exceptions import PermanentStoreError, StaleIndexError, TransientStoreError
from fsconsul.store.consul import ConsulStoreClient

KV_URL = re.compile(r"^http://consul\.test:8500/v1/kv/app(\?.*)?$")


@pytest.fixture
def consul():
    return StoreConnection(address="consul.test:8500", datacenter="dc1", auth_token="s3cr3t")


def b64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def only_request(m):
    (calls,) = m.requests.values()
    return calls[0]


class TestConnectionModel:
    def test_base_url_adds_scheme(self):
        assert StoreConnection(address="consul.test:8500").base_url == "http://consul.test:8500"

    def test_base_url_keeps_scheme(self):
        assert StoreConnection(address="https://consul.test/").base_url == "https://consul.test"


class TestListUnderPrefix:
    @pytest.mark.asyncio
    async def test_decodes_entries_and_index(self, consul):
        with aioresponses() as m:
            m.get(
                KV_URL,
                payload=[
                    {"Key": "app/a", "Value": b64(b"hello"), "Flags": 42, "ModifyIndex": 7},
                    {"Key": "app/empty", "Value": None, "Flags": 0, "ModifyIndex": 6},
                ],
                headers={"X-Consul-Index": "7"},
            )
            async with ConsulStoreClient(wait_time=30) as client:
                entries, index = await client.list_under_prefix("app", 0, consul)

        assert index == 7
        assert [e.key for e in entries] == ["app/a", "app/empty"]
        assert entries[0].value == b"hello"
        assert entries[0].flags == 42
        assert entries[1].value == b""

    @pytest.mark.asyncio
    async def test_first_listing_does_not_block(self, consul):
        with aioresponses() as m:
            m.get(KV_URL, payload=[], headers={"X-Consul-Index": "3"})
            async with ConsulStoreClient(wait_time=30) as client:
                await client.list_under_prefix("app", 0, consul)
            call = only_request(m)

        params = call.kwargs["params"]
        assert params["recurse"] == "true"
        assert params["dc"] == "dc1"
        assert "index" not in params
        assert "wait" not in params
        assert call.kwargs["headers"]["X-Consul-Token"] == "s3cr3t"

    @pytest.mark.asyncio
    async def test_blocking_query_parameters(self, consul):
        with aioresponses() as m:
            m.get(KV_URL, payload=[], headers={"X-Consul-Index": "12"})
            async with ConsulStoreClient(wait_time=30) as client:
                _, index = await client.list_under_prefix("app", 11, consul)
            call = only_request(m)

        assert index == 12
        assert call.kwargs["params"]["index"] == "11"
        assert call.kwargs["params"]["wait"] == "30s"

    @pytest.mark.asyncio
    async def test_no_token_header_without_token(self):
        anonymous = StoreConnection(address="consul.test:8500")
        with aioresponses() as m:
            m.get(KV_URL, payload=[], headers={"X-Consul-Index": "1"})
            async with ConsulStoreClient() as client:
                await client.list_under_prefix("app", 0, anonymous)
            call = only_request(m)

        assert "X-Consul-Token" not in call.kwargs["headers"]
        assert "dc" not in call.kwargs["params"]

    @pytest.mark.asyncio
    async def test_missing_prefix_is_empty(self, consul):
        with aioresponses() as m:
            m.get(KV_URL, status=404, headers={"X-Consul-Index": "9"})
            async with ConsulStoreClient() as client:
                entries, index = await client.list_under_prefix("app", 0, consul)

        assert entries == []
        assert index == 9

    @pytest.mark.asyncio
    async def test_index_went_backwards(self, consul):
        with aioresponses() as m:
            m.get(KV_URL, payload=[], headers={"X-Consul-Index": "4"})
            async with ConsulStoreClient() as client:
                with pytest.raises(StaleIndexError):
                    await client.list_under_prefix("app", 50, consul)

    @pytest.mark.asyncio
    async def test_missing_index_header_is_transient(self, consul):
        with aioresponses() as m:
            m.get(KV_URL, payload=[])
            async with ConsulStoreClient() as client:
                with pytest.raises(TransientStoreError):
                    await client.list_under_prefix("app", 0, consul)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_rejection_is_permanent(self, consul, status):
        with aioresponses() as m:
            m.get(KV_URL, status=status, body="ACL not found")
            async with ConsulStoreClient() as client:
                with pytest.raises(PermanentStoreError) as exc_info:
                    await client.list_under_prefix("app", 0, consul)

        assert exc_info.value.status == status
        assert exc_info.value.prefix == "app"

    @pytest.mark.asyncio
    async def test_bad_request_is_permanent(self, consul):
        with aioresponses() as m:
            m.get(KV_URL, status=400, body="Invalid key")
            async with ConsulStoreClient() as client:
                with pytest.raises(PermanentStoreError):
                    await client.list_under_prefix("app", 0, consul)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_server_errors_are_transient(self, consul, status):
        with aioresponses() as m:
            m.get(KV_URL, status=status, body="No cluster leader")
            async with ConsulStoreClient() as client:
                with pytest.raises(TransientStoreError):
                    await client.list_under_prefix("app", 0, consul)

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self, consul):
        with aioresponses() as m:
            m.get(KV_URL, exception=aiohttp.ClientConnectionError("Connection refused"))
            async with ConsulStoreClient() as client:
                with pytest.raises(TransientStoreError):
                    await client.list_under_prefix("app", 0, consul)

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self, consul):
        with aioresponses() as m:
            m.get(KV_URL, exception=asyncio.TimeoutError())
            async with ConsulStoreClient() as client:
                with pytest.raises(TransientStoreError):
                    await client.list_under_prefix("app", 5, consul)

    @pytest.mark.asyncio
    async def test_malformed_payload_is_transient(self, consul):
        with aioresponses() as m:
            m.get(KV_URL, payload={"not": "a list"}, headers={"X-Consul-Index": "2"})
            async with ConsulStoreClient() as client:
                with pytest.raises(TransientStoreError):
                    await client.list_under_prefix("app", 0, consul)

    @pytest.mark.asyncio
    async def test_zero_index_still_blocks(self, consul):
        """An index of 0 from the store is treated as 1 so the next query blocks."""
        with aioresponses() as m:
            m.get(KV_URL, status=404, headers={"X-Consul-Index": "0"}, repeat=True)
            async with ConsulStoreClient(wait_time=30) as client:
                _, index = await client.list_under_prefix("app", 0, consul)
                _, again = await client.list_under_prefix("app", index, consul)
            calls = [call for key_calls in m.requests.values() for call in key_calls]

        assert index == again == 1
        assert calls[1].kwargs["params"]["index"] == "1"
        assert calls[1].kwargs["params"]["wait"] == "30s"

    @pytest.mark.asyncio
    async def test_prefix_is_escaped(self, consul):
        url = re.compile(r"^http://consul\.test:8500/v1/kv/team%20a/cfg%3Fv2(\?.*)?$")
        with aioresponses() as m:
            m.get(url, payload=[], headers={"X-Consul-Index": "3"})
            async with ConsulStoreClient() as client:
                entries, index = await client.list_under_prefix("team a/cfg?v2", 0, consul)

        assert entries == []
        assert index == 3

    @pytest.mark.parametrize("wait_time", [0, 0.5, 601, float("nan"), float("inf")])
    def test_rejects_unusable_wait_time(self, wait_time):
        with pytest.raises(ValueError, match="wait_time"):
            ConsulStoreClient(wait_time=wait_time)

    @pytest.mark.asyncio
    async def test_not_connected(self, consul):
        client = ConsulStoreClient()
        with pytest.raises(RuntimeError, match="not connected"):
            await client.list_under_prefix("app", 0, consul)


class TestDeleteSubtree:
    @pytest.mark.asyncio
    async def test_delete_acknowledged(self, consul):
        with aioresponses() as m:
            m.delete(KV_URL, body="true")
            async with ConsulStoreClient() as client:
                assert await client.delete_subtree("app", consul) is True
            call = only_request(m)

        assert call.kwargs["params"]["recurse"] == "true"

    @pytest.mark.asyncio
    async def test_delete_rejected(self, consul):
        with aioresponses() as m:
            m.delete(KV_URL, status=403, body="Permission denied")
            async with ConsulStoreClient() as client:
                assert await client.delete_subtree("app", consul) is False

    @pytest.mark.asyncio
    async def test_delete_transport_error(self, consul):
        with aioresponses() as m:
            m.delete(KV_URL, exception=aiohttp.ClientConnectionError("Connection refused"))
            async with ConsulStoreClient() as client:
                with pytest.raises(TransientStoreError):
                    await client.delete_subtree("app", consul)
