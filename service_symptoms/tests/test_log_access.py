"""
Unit tests for LogAccess.
"""

import pytest

from service_symptoms.app.logs import LogAccess
from shared.errors import InvalidInputError, StoreUnavailableError
from shared.test_helpers import InMemoryKeyValueStore

TABLE = "SymptomLogs"


async def seed(store, owner_id, record_id, **fields):
    record = {"ownerId": owner_id, "id": record_id, "createdAt": "2023-11-14T22:13:20.000Z", **fields}
    await store.put_item(TABLE, owner_id, record, sort_key=record_id)
    return record


class TestLogAccess:
    """Test cases for LogAccess."""

    @pytest.fixture
    def store(self):
        return InMemoryKeyValueStore()

    @pytest.fixture
    def logs(self, store):
        return LogAccess(store, TABLE)

    @pytest.mark.asyncio
    async def test_list_returns_only_owner_records(self, logs, store):
        mine = await seed(store, "u1", "id-2", severity=3)
        await seed(store, "u2", "id-1", severity=5)

        assert await logs.list("u1") == [mine]

    @pytest.mark.asyncio
    async def test_list_ordered_by_id(self, logs, store):
        await seed(store, "u1", "id-1700000000200-bbbbbbbbbbbb")
        await seed(store, "u1", "id-1700000000100-aaaaaaaaaaaa")

        ids = [record["id"] for record in await logs.list("u1")]

        assert ids == ["id-1700000000100-aaaaaaaaaaaa", "id-1700000000200-bbbbbbbbbbbb"]

    @pytest.mark.asyncio
    async def test_list_empty(self, logs):
        assert await logs.list("nobody") == []

    @pytest.mark.asyncio
    async def test_remove_deletes_record(self, logs, store):
        await seed(store, "u1", "id-1")

        result = await logs.remove("u1", "id-1")

        assert result == {"message": "Deleted log id-1"}
        assert await logs.list("u1") == []

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self, logs):
        assert await logs.remove("u1", "id-missing") == {"message": "Deleted log id-missing"}
        assert await logs.remove("u1", "id-missing") == {"message": "Deleted log id-missing"}

    @pytest.mark.asyncio
    async def test_remove_cannot_touch_other_owner(self, logs, store):
        theirs = await seed(store, "u2", "id-1")

        await logs.remove("u1", "id-1")

        assert await logs.list("u2") == [theirs]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("record_id", [None, "", " "])
    async def test_remove_requires_id(self, logs, record_id):
        with pytest.raises(InvalidInputError) as exc_info:
            await logs.remove("u1", record_id)

        assert exc_info.value.message == "Missing ID for deletion"

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, logs, store):
        store.fail_reads = True

        with pytest.raises(StoreUnavailableError):
            await logs.list("u1")
