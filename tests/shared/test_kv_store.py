"""
Unit tests for the Redis-backed key-value store.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.errors import StoreUnavailableError
from shared.kv_store import RedisKeyValueStore


class TestRedisKeyValueStore:
    """Test cases for RedisKeyValueStore."""

    @pytest.fixture
    def mock_redis(self):
        """Mock async Redis client."""
        return AsyncMock()

    @pytest.fixture
    def store(self, mock_redis):
        store = RedisKeyValueStore("redis://localhost:6379/0")
        store._redis = mock_redis
        return store

    @pytest.mark.asyncio
    async def test_put_single_item_with_expiry(self, store, mock_redis):
        item = {"cityKey": "paris", "data": {"city": "Paris"}, "ttl": 1700086400}

        await store.put_item("EnvCache", "paris", item, expires_at=1700086400)

        mock_redis.set.assert_awaited_once_with("EnvCache:paris", json.dumps(item), exat=1700086400)

    @pytest.mark.asyncio
    async def test_get_single_item(self, store, mock_redis):
        mock_redis.get.return_value = json.dumps({"cityKey": "paris"})

        assert await store.get_item("EnvCache", "paris") == {"cityKey": "paris"}
        mock_redis.get.assert_awaited_once_with("EnvCache:paris")

    @pytest.mark.asyncio
    async def test_get_missing_item(self, store, mock_redis):
        mock_redis.get.return_value = None

        assert await store.get_item("EnvCache", "paris") is None

    @pytest.mark.asyncio
    async def test_get_undecodable_item(self, store, mock_redis):
        mock_redis.get.return_value = "{broken"

        assert await store.get_item("EnvCache", "paris") is None

    @pytest.mark.asyncio
    async def test_sorted_items_use_hash(self, store, mock_redis):
        record = {"ownerId": "u1", "id": "id-1"}

        await store.put_item("SymptomLogs", "u1", record, sort_key="id-1")
        await store.delete_item("SymptomLogs", "u1", sort_key="id-1")

        mock_redis.hset.assert_awaited_once_with("SymptomLogs:u1", "id-1", json.dumps(record))
        mock_redis.hdel.assert_awaited_once_with("SymptomLogs:u1", "id-1")

    @pytest.mark.asyncio
    async def test_query_orders_by_sort_key(self, store, mock_redis):
        mock_redis.hgetall.return_value = {
            "id-2": json.dumps({"id": "id-2"}),
            "id-1": json.dumps({"id": "id-1"}),
            "id-3": "not json"
        }

        assert await store.query("SymptomLogs", "u1") == [{"id": "id-1"}, {"id": "id-2"}]

    @pytest.mark.asyncio
    async def test_conditional_put(self, store, mock_redis):
        mock_redis.set.return_value = True

        with patch("shared.kv_store.time.time", return_value=1700000000):
            written = await store.put_item_if_absent("EnvCacheLease", "paris", {"token": "t"}, 1700000010)

        assert written is True
        mock_redis.set.assert_awaited_once_with(
            "EnvCacheLease:paris", json.dumps({"token": "t"}), nx=True, exat=1700000010
        )

    @pytest.mark.asyncio
    async def test_conditional_put_contended(self, store, mock_redis):
        mock_redis.set.return_value = None

        assert await store.put_item_if_absent("EnvCacheLease", "paris", {"token": "t"}, 9999999999) is False

    @pytest.mark.asyncio
    async def test_delete_single_item(self, store, mock_redis):
        await store.delete_item("EnvCacheLease", "paris")

        mock_redis.delete.assert_awaited_once_with("EnvCacheLease:paris")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation, args", [
        ("get_item", ("EnvCache", "paris")),
        ("put_item", ("EnvCache", "paris", {"a": 1})),
        ("delete_item", ("EnvCache", "paris")),
        ("query", ("SymptomLogs", "u1")),
    ])
    async def test_redis_errors_become_store_unavailable(self, store, mock_redis, operation, args):
        error = RedisConnectionError("connection refused")
        for method in ("get", "set", "delete", "hgetall"):
            getattr(mock_redis, method).side_effect = error

        with pytest.raises(StoreUnavailableError):
            await getattr(store, operation)(*args)

    @pytest.mark.asyncio
    async def test_health_check(self, store, mock_redis):
        mock_redis.ping.return_value = True
        assert await store.health_check() is True

        mock_redis.ping.side_effect = RedisConnectionError("down")
        assert await store.health_check() is False

    @pytest.mark.asyncio
    async def test_stop_closes_client(self, store, mock_redis):
        await store.stop()

        mock_redis.aclose.assert_awaited_once()
        assert store._redis is None
