"""
Queue consumer that persists symptom entries.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from shared.logging import get_logger
from shared.errors import QueueUnavailableError, StoreUnavailableError
from shared.kv_store import KeyValueStore
from shared.message_queue import MessageQueue, QueueMessage
from shared.telemetry import ID_FIELD, OWNER_FIELD, MalformedMessageError, parse_message

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class MessageOutcome(str, Enum):
    """What happened to one delivered message."""
    PERSISTED = "persisted"
    DROPPED = "dropped"
    RETRY = "retry"


@dataclass
class BatchResult:
    """Messages of one batch grouped by outcome."""
    persisted: List[QueueMessage] = field(default_factory=list)
    dropped: List[QueueMessage] = field(default_factory=list)
    retry: List[QueueMessage] = field(default_factory=list)

    @property
    def acked(self) -> List[QueueMessage]:
        return self.persisted + self.dropped

    def add(self, message: QueueMessage, outcome: MessageOutcome) -> None:
        if outcome is MessageOutcome.PERSISTED:
            self.persisted.append(message)
        elif outcome is MessageOutcome.DROPPED:
            self.dropped.append(message)
        else:
            self.retry.append(message)


class IngestionConsumer:
    """Drains queued symptom entries into the store.

    Unparseable messages are acknowledged and dropped. Store failures leave
    the message unacknowledged so the queue redelivers it; there is no
    retry inside the consumer.
    """

    def __init__(
        self,
        queue: MessageQueue,
        store: KeyValueStore,
        table: str,
        *,
        batch_size: int = 10,
        poll_timeout_ms: int = 1000,
        redelivery_delay: float = 1.0,
        metrics: Optional["MetricsCollector"] = None
    ):
        self.queue = queue
        self.store = store
        self.table = table
        self.batch_size = batch_size
        self.poll_timeout_ms = poll_timeout_ms
        self.redelivery_delay = redelivery_delay
        self.metrics = metrics
        self.logger = get_logger("symptom_worker.consumer")

        self.running = False
        self._consumer_task: Optional[asyncio.Task] = None
        self.stats: Dict[str, Any] = {
            "persisted": 0,
            "dropped": 0,
            "retried": 0,
            "batches": 0,
            "last_batch": None
        }

    async def persist(self, message: QueueMessage) -> MessageOutcome:
        """Persist one message and report its outcome."""
        try:
            record = parse_message(message.body)
        except MalformedMessageError as e:
            self.logger.error(
                "Dropping poison message",
                topic=message.topic,
                partition=message.partition,
                offset=message.offset,
                error=str(e)
            )
            return MessageOutcome.DROPPED

        try:
            await self.store.put_item(self.table, record[OWNER_FIELD], record, sort_key=record[ID_FIELD])
        except StoreUnavailableError as e:
            self.logger.error(
                "Failed to persist symptom entry, leaving for redelivery",
                owner_id=record[OWNER_FIELD],
                id=record[ID_FIELD],
                offset=message.offset,
                error=e.message
            )
            return MessageOutcome.RETRY
        except Exception as e:
            self.logger.error(
                "Unexpected error persisting symptom entry, leaving for redelivery",
                owner_id=record[OWNER_FIELD],
                id=record[ID_FIELD],
                offset=message.offset,
                error=str(e),
                exc_info=True
            )
            return MessageOutcome.RETRY

        self.logger.info("Saved", owner_id=record[OWNER_FIELD], id=record[ID_FIELD])
        return MessageOutcome.PERSISTED

    async def process_batch(self, messages: List[QueueMessage], result: Optional[BatchResult] = None) -> BatchResult:
        """Persist every message of a batch, in delivery order.

        Outcomes are added to ``result`` as they happen, so a caller holding
        it still knows which messages were handled if this raises midway.
        """
        result = result if result is not None else BatchResult()
        for message in messages:
            outcome = await self.persist(message)
            result.add(message, outcome)
            if self.metrics:
                self.metrics.increment_counter("messages_processed_total", outcome=outcome.value)

        self.stats["persisted"] += len(result.persisted)
        self.stats["dropped"] += len(result.dropped)
        self.stats["retried"] += len(result.retry)
        self.stats["batches"] += 1
        self.stats["last_batch"] = datetime.now().isoformat()
        return result

    async def poll_once(self) -> BatchResult:
        """Receive, process and settle one batch.

        The batch is always settled. Messages left unhandled by an unexpected
        error are settled as retries so the queue redelivers them.
        """
        messages = await self.queue.receive_batch(self.batch_size, self.poll_timeout_ms)
        if not messages:
            return BatchResult()

        result = BatchResult()
        try:
            await self.process_batch(messages, result)
        except Exception as e:
            handled = {id(message) for message in result.persisted + result.dropped + result.retry}
            unhandled = [message for message in messages if id(message) not in handled]
            self.logger.error(
                "Batch aborted, leaving remainder for redelivery",
                remaining=len(unhandled),
                error=str(e),
                exc_info=True
            )
            result.retry.extend(unhandled)

        await self.queue.settle(result.acked, result.retry)

        self.logger.debug(
            "Batch processed",
            size=len(messages),
            persisted=len(result.persisted),
            dropped=len(result.dropped),
            retry=len(result.retry)
        )
        return result

    async def start(self):
        """Start the consume loop in the background."""
        self.running = True
        self._consumer_task = asyncio.create_task(self._consume_loop())
        self.logger.info("Symptom consumer started", table=self.table)

    async def stop(self):
        """Stop the consume loop."""
        self.running = False
        if self._consumer_task:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None

        self.logger.info("Symptom consumer stopped")

    async def _consume_loop(self):
        """Main consumption loop."""
        while self.running:
            try:
                result = await self.poll_once()
                if result.retry:
                    # Stand-in for a visibility timeout before redelivery
                    await asyncio.sleep(self.redelivery_delay)
                else:
                    await asyncio.sleep(0)

            except QueueUnavailableError as e:
                self.logger.error("Queue error in consume loop", error=e.message)
                await asyncio.sleep(5)

            except asyncio.CancelledError:
                break

            except Exception as e:
                self.logger.error("Unexpected error in consume loop", error=str(e), exc_info=True)
                await asyncio.sleep(1)

    def is_running(self) -> bool:
        """Check if consumer is running."""
        return self.running
