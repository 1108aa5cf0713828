"""
Key-value store capability shared by AirCare services.

Items are JSON objects addressed by a table name, a partition key and an
optional sort key. A table is used either with sort keys (owner-scoped
collections) or without them (single items); never both.
"""

import json
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.logging import get_logger
from shared.errors import StoreUnavailableError


class KeyValueStore(ABC):
    """Get/put store with attribute-based expiry."""

    async def start(self) -> None:
        """Open connections. Optional for implementations."""

    async def stop(self) -> None:
        """Release connections. Optional for implementations."""

    async def health_check(self) -> bool:
        return True

    @abstractmethod
    async def get_item(
        self,
        table: str,
        partition_key: str,
        sort_key: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Return the item or None when absent."""

    @abstractmethod
    async def put_item(
        self,
        table: str,
        partition_key: str,
        item: Dict[str, Any],
        sort_key: Optional[str] = None,
        expires_at: Optional[int] = None
    ) -> None:
        """Create or overwrite an item. ``expires_at`` is epoch seconds."""

    @abstractmethod
    async def put_item_if_absent(
        self,
        table: str,
        partition_key: str,
        item: Dict[str, Any],
        expires_at: int
    ) -> bool:
        """Write a single item only when none exists. Returns True on write."""

    @abstractmethod
    async def delete_item(
        self,
        table: str,
        partition_key: str,
        sort_key: Optional[str] = None
    ) -> None:
        """Delete an item. Deleting a missing item is not an error."""

    @abstractmethod
    async def query(self, table: str, partition_key: str) -> List[Dict[str, Any]]:
        """Return every item stored under a partition key, ordered by sort key."""


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed store.

    Single items live at ``<table>:<partition_key>`` as JSON strings with a
    native ``EXPIREAT`` when an expiry is given. Sorted items live in a hash
    at ``<table>:<partition_key>`` keyed by sort key.
    """

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.logger = get_logger("shared.kv_store")
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )
        return self._redis

    async def start(self) -> None:
        try:
            redis_client = await self._get_redis()
            await redis_client.ping()
            self.logger.info("Redis store started")
        except RedisError as e:
            self.logger.error("Failed to start Redis store", error=str(e))
            raise StoreUnavailableError(str(e))

    async def stop(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("Redis store stopped")

    async def health_check(self) -> bool:
        try:
            redis_client = await self._get_redis()
            return bool(await redis_client.ping())
        except RedisError:
            return False

    @staticmethod
    def _make_key(table: str, partition_key: str) -> str:
        return f"{table}:{partition_key}"

    def _decode(self, raw: Optional[str], key: str) -> Optional[Dict[str, Any]]:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            self.logger.warning("Discarding undecodable stored item", key=key)
            return None

    async def get_item(self, table, partition_key, sort_key=None):
        key = self._make_key(table, partition_key)
        try:
            redis_client = await self._get_redis()
            if sort_key is None:
                raw = await redis_client.get(key)
            else:
                raw = await redis_client.hget(key, sort_key)
        except RedisError as e:
            self.logger.error("Store get failed", key=key, sort_key=sort_key, error=str(e))
            raise StoreUnavailableError(str(e), details={"key": key})
        return self._decode(raw, key)

    async def put_item(self, table, partition_key, item, sort_key=None, expires_at=None):
        key = self._make_key(table, partition_key)
        payload = json.dumps(item)
        try:
            redis_client = await self._get_redis()
            if sort_key is None:
                await redis_client.set(key, payload, exat=expires_at)
            else:
                await redis_client.hset(key, sort_key, payload)
        except RedisError as e:
            self.logger.error("Store put failed", key=key, sort_key=sort_key, error=str(e))
            raise StoreUnavailableError(str(e), details={"key": key})
        self.logger.debug("Stored item", key=key, sort_key=sort_key, expires_at=expires_at)

    async def put_item_if_absent(self, table, partition_key, item, expires_at):
        key = self._make_key(table, partition_key)
        # EXAT must lie in the future for a conditional write to be meaningful
        expires_at = max(int(expires_at), int(time.time()) + 1)
        try:
            redis_client = await self._get_redis()
            written = await redis_client.set(key, json.dumps(item), nx=True, exat=expires_at)
        except RedisError as e:
            self.logger.error("Store conditional put failed", key=key, error=str(e))
            raise StoreUnavailableError(str(e), details={"key": key})
        return bool(written)

    async def delete_item(self, table, partition_key, sort_key=None):
        key = self._make_key(table, partition_key)
        try:
            redis_client = await self._get_redis()
            if sort_key is None:
                await redis_client.delete(key)
            else:
                await redis_client.hdel(key, sort_key)
        except RedisError as e:
            self.logger.error("Store delete failed", key=key, sort_key=sort_key, error=str(e))
            raise StoreUnavailableError(str(e), details={"key": key})

    async def query(self, table, partition_key):
        key = self._make_key(table, partition_key)
        try:
            redis_client = await self._get_redis()
            raw_items = await redis_client.hgetall(key)
        except RedisError as e:
            self.logger.error("Store query failed", key=key, error=str(e))
            raise StoreUnavailableError(str(e), details={"key": key})

        items = []
        for sort_key in sorted(raw_items):
            item = self._decode(raw_items[sort_key], key)
            if item is not None:
                items.append(item)
        return items
