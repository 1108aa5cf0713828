"""
Unit tests for IngestionConsumer.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from service_symptom_worker.app.consumer import BatchResult, IngestionConsumer, MessageOutcome
from shared.test_helpers import InMemoryKeyValueStore, InMemoryMessageQueue

TABLE = "SymptomLogs"


def entry(owner_id="u1", record_id="id-1700000000000-aaaaaaaaaaaa", **fields):
    return {"ownerId": owner_id, "id": record_id, "createdAt": "2023-11-14T22:13:20.000Z", **fields}


class TestIngestionConsumer:
    """Test cases for IngestionConsumer."""

    @pytest.fixture
    def store(self):
        return InMemoryKeyValueStore()

    @pytest.fixture
    def queue(self):
        return InMemoryMessageQueue()

    @pytest.fixture
    def consumer(self, queue, store):
        return IngestionConsumer(queue, store, TABLE, batch_size=10, redelivery_delay=0)

    @pytest.mark.asyncio
    async def test_persists_entry_under_owner(self, consumer, queue, store):
        await queue.send(entry(severity=3), key="u1")

        result = await consumer.poll_once()

        assert len(result.persisted) == 1
        assert await store.query(TABLE, "u1") == [entry(severity=3)]
        assert queue.pending == 0
        assert queue.committed == 1

    @pytest.mark.asyncio
    async def test_empty_poll(self, consumer):
        result = await consumer.poll_once()

        assert result.acked == []
        assert consumer.stats["batches"] == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        b"{not json",
        b"[1, 2]",
        b'{"id": "id-1"}',
        b'{"ownerId": "", "id": "id-1"}',
        b'{"ownerId": "u1", "id": 7}',
        b"\xff\xfe",
    ])
    async def test_poison_message_dropped_and_acked(self, consumer, queue, store, body):
        queue.enqueue_raw(body)

        result = await consumer.poll_once()

        assert len(result.dropped) == 1
        assert queue.pending == 0
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_poison_does_not_block_batch(self, consumer, queue, store):
        queue.enqueue_raw(b"garbage")
        await queue.send(entry(record_id="id-2"))

        result = await consumer.poll_once()

        assert len(result.dropped) == 1
        assert len(result.persisted) == 1
        assert [r["id"] for r in await store.query(TABLE, "u1")] == ["id-2"]

    @pytest.mark.asyncio
    async def test_deeply_nested_body_does_not_lose_batch(self, consumer, queue, store):
        queue.enqueue_raw(("[" * 100000 + "]" * 100000).encode("utf-8"))
        await queue.send({"ownerId": "u1", "id": "id-1", "severity": 3})

        result = await consumer.poll_once()

        assert len(result.dropped) == 1
        assert len(result.persisted) == 1
        assert await store.query(TABLE, "u1") == [{"ownerId": "u1", "id": "id-1", "severity": 3}]
        assert queue.pending == 0

    @pytest.mark.asyncio
    async def test_unexpected_store_error_leaves_message_for_redelivery(self, consumer, queue, store):
        put_item = store.put_item
        calls = []

        async def flaky_put_item(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                raise RuntimeError("connection reset")
            await put_item(*args, **kwargs)

        store.put_item = flaky_put_item
        await queue.send(entry(record_id="id-1"))
        await queue.send(entry(record_id="id-2"))

        result = await consumer.poll_once()

        assert [m.offset for m in result.retry] == [0]
        assert [m.offset for m in result.persisted] == [1]
        assert queue.pending == 2

        await consumer.poll_once()

        assert sorted(r["id"] for r in await store.query(TABLE, "u1")) == ["id-1", "id-2"]
        assert queue.pending == 0

    @pytest.mark.asyncio
    async def test_aborted_batch_is_still_settled(self, queue, store):
        metrics = MagicMock()
        metrics.increment_counter.side_effect = [None, RuntimeError("registry closed")]
        consumer = IngestionConsumer(queue, store, TABLE, redelivery_delay=0, metrics=metrics)
        for n in range(3):
            await queue.send(entry(record_id=f"id-{n}"))

        result = await consumer.poll_once()

        assert [m.offset for m in result.persisted] == [0]
        assert [m.offset for m in result.retry] == [1, 2]
        assert queue.committed == 1
        assert queue.pending == 2

        metrics.increment_counter.side_effect = None
        result = await consumer.poll_once()

        assert len(result.persisted) == 2
        assert [r["id"] for r in sorted(await store.query(TABLE, "u1"), key=lambda r: r["id"])] == [
            "id-0", "id-1", "id-2"
        ]

    @pytest.mark.asyncio
    async def test_store_failure_leaves_message_for_redelivery(self, consumer, queue, store):
        await queue.send(entry(severity=3))
        store.fail_writes = True

        result = await consumer.poll_once()

        assert len(result.retry) == 1
        assert queue.pending == 1
        assert queue.committed == 0

        store.fail_writes = False
        result = await consumer.poll_once()

        assert len(result.persisted) == 1
        assert await store.query(TABLE, "u1") == [entry(severity=3)]
        assert queue.pending == 0

    @pytest.mark.asyncio
    async def test_redelivery_is_idempotent(self, consumer, queue, store):
        """Processing the same message twice leaves one record."""
        await queue.send(entry(severity=3))
        await consumer.poll_once()
        queue.position = 0

        await consumer.poll_once()

        assert await store.query(TABLE, "u1") == [entry(severity=3)]
        assert consumer.stats["persisted"] == 2

    @pytest.mark.asyncio
    async def test_batch_size_respected(self, queue, store):
        consumer = IngestionConsumer(queue, store, TABLE, batch_size=2)
        for n in range(5):
            await queue.send(entry(record_id=f"id-{n}"))

        result = await consumer.poll_once()

        assert len(result.persisted) == 2
        assert queue.pending == 3

    @pytest.mark.asyncio
    async def test_outcome_metrics(self, queue, store):
        metrics = MagicMock()
        consumer = IngestionConsumer(queue, store, TABLE, metrics=metrics)
        queue.enqueue_raw(b"garbage")
        await queue.send(entry())

        await consumer.poll_once()

        metrics.increment_counter.assert_any_call("messages_processed_total", outcome="dropped")
        metrics.increment_counter.assert_any_call("messages_processed_total", outcome="persisted")

    @pytest.mark.asyncio
    async def test_consume_loop_drains_queue(self, consumer, queue, store):
        for n in range(3):
            await queue.send(entry(record_id=f"id-{n}"))

        await consumer.start()
        try:
            for _ in range(100):
                if queue.pending == 0:
                    break
                await asyncio.sleep(0.01)
        finally:
            await consumer.stop()

        assert not consumer.is_running()
        assert len(await store.query(TABLE, "u1")) == 3

    @pytest.mark.asyncio
    async def test_stop_without_start(self, consumer):
        await consumer.stop()

        assert not consumer.is_running()


class TestBatchResult:
    """Test cases for BatchResult."""

    def test_acked_includes_persisted_and_dropped(self):
        result = BatchResult()
        persisted, dropped, retried = MagicMock(), MagicMock(), MagicMock()

        result.add(persisted, MessageOutcome.PERSISTED)
        result.add(dropped, MessageOutcome.DROPPED)
        result.add(retried, MessageOutcome.RETRY)

        assert result.acked == [persisted, dropped]
        assert result.retry == [retried]
