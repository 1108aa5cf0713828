"""
Message queue capability shared by AirCare services.

Delivery is at-least-once: a message that is not acknowledged through
``settle`` is delivered again, so consumers must be idempotent.
"""

import asyncio
import functools
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import kafka
from kafka import TopicPartition
from kafka.errors import KafkaError

from shared.logging import get_logger
from shared.errors import AccessLayerException, QueueUnavailableError


@dataclass
class QueueMessage:
    """A delivered message plus the position needed to settle it."""
    body: bytes
    key: Optional[str]
    topic: str
    partition: int
    offset: int


class MessageQueue(ABC):
    """Enqueue / dequeue-batch abstraction."""

    async def start(self, produce: bool = True, consume: bool = False) -> None:
        """Open producer and/or consumer sides. Optional for implementations."""

    async def stop(self) -> None:
        """Release connections. Optional for implementations."""

    async def health_check(self) -> bool:
        return True

    @abstractmethod
    async def send(self, body: Dict[str, Any], key: Optional[str] = None) -> None:
        """Enqueue a JSON body. Raises QueueUnavailableError on failure."""

    @abstractmethod
    async def receive_batch(self, max_messages: int, timeout_ms: int) -> List[QueueMessage]:
        """Dequeue up to ``max_messages`` messages."""

    @abstractmethod
    async def settle(self, acked: List[QueueMessage], retry: List[QueueMessage]) -> None:
        """Acknowledge ``acked``; leave ``retry`` for redelivery."""


class KafkaMessageQueue(MessageQueue):
    """Kafka-backed queue with manual offset commits."""

    def __init__(
        self,
        bootstrap_servers: str,
        topic: str,
        group_id: Optional[str] = None,
        send_timeout: float = 10.0
    ):
        self.bootstrap_servers = bootstrap_servers
        self.topic = topic
        self.group_id = group_id
        self.send_timeout = send_timeout
        self.logger = get_logger("shared.message_queue")
        self.producer: Optional[kafka.KafkaProducer] = None
        self.consumer: Optional[kafka.KafkaConsumer] = None

    async def start(self, produce: bool = True, consume: bool = False) -> None:
        if produce and self.producer is None:
            try:
                self.producer = kafka.KafkaProducer(
                    bootstrap_servers=self.bootstrap_servers,
                    value_serializer=lambda x: json.dumps(x).encode('utf-8'),
                    key_serializer=lambda x: x.encode('utf-8') if x else None,
                    acks='all',
                    retries=3,
                    linger_ms=10
                )
                self.logger.info("Kafka producer started", topic=self.topic)
            except Exception as e:
                self.logger.error("Failed to start Kafka producer", error=str(e))
                raise AccessLayerException("KAFKA_PRODUCER_START_FAILED", str(e))

        if consume and self.consumer is None:
            try:
                self.consumer = kafka.KafkaConsumer(
                    self.topic,
                    bootstrap_servers=self.bootstrap_servers,
                    group_id=self.group_id,
                    key_deserializer=lambda x: x.decode('utf-8') if x else None,
                    auto_offset_reset='earliest',
                    enable_auto_commit=False,
                    session_timeout_ms=30000,
                    heartbeat_interval_ms=10000
                )
                self.logger.info("Kafka consumer started", topic=self.topic, group_id=self.group_id)
            except Exception as e:
                self.logger.error("Failed to start Kafka consumer", error=str(e))
                raise AccessLayerException("KAFKA_CONSUMER_START_FAILED", str(e))

    async def stop(self) -> None:
        if self.producer:
            self.producer.flush()
            self.producer.close()
            self.producer = None
            self.logger.info("Kafka producer stopped")
        if self.consumer:
            self.consumer.close()
            self.consumer = None
            self.logger.info("Kafka consumer stopped")

    async def health_check(self) -> bool:
        client = self.producer or self.consumer
        if client is None:
            return False
        return bool(client.bootstrap_connected())

    async def send(self, body: Dict[str, Any], key: Optional[str] = None) -> None:
        if not self.producer:
            raise QueueUnavailableError("Producer not started")

        loop = asyncio.get_running_loop()
        try:
            future = self.producer.send(self.topic, value=body, key=key)
            # Block off-loop until the broker confirms the write
            record_metadata = await loop.run_in_executor(None, future.get, self.send_timeout)
        except KafkaError as e:
            self.logger.error("Kafka error sending message", topic=self.topic, error=str(e))
            raise QueueUnavailableError(str(e), details={"topic": self.topic})

        self.logger.debug(
            "Message sent successfully",
            topic=self.topic,
            partition=record_metadata.partition,
            offset=record_metadata.offset
        )

    async def receive_batch(self, max_messages: int, timeout_ms: int) -> List[QueueMessage]:
        if not self.consumer:
            raise QueueUnavailableError("Consumer not started")

        loop = asyncio.get_running_loop()
        poll = functools.partial(self.consumer.poll, timeout_ms=timeout_ms, max_records=max_messages)
        try:
            message_batch = await loop.run_in_executor(None, poll)
        except KafkaError as e:
            self.logger.error("Kafka error polling messages", topic=self.topic, error=str(e))
            raise QueueUnavailableError(str(e), details={"topic": self.topic})

        messages = []
        for records in (message_batch or {}).values():
            for record in records:
                messages.append(QueueMessage(
                    body=record.value,
                    key=record.key,
                    topic=record.topic,
                    partition=record.partition,
                    offset=record.offset
                ))
        return messages

    async def settle(self, acked: List[QueueMessage], retry: List[QueueMessage]) -> None:
        if not self.consumer:
            raise QueueUnavailableError("Consumer not started")

        # Rewind each partition to its first unacknowledged offset; the commit
        # then covers everything before it and the rest is redelivered.
        rewind: Dict[TopicPartition, int] = {}
        for message in retry:
            partition = TopicPartition(message.topic, message.partition)
            rewind[partition] = min(rewind.get(partition, message.offset), message.offset)

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._rewind_and_commit, rewind)
        except KafkaError as e:
            self.logger.error("Kafka error committing offsets", topic=self.topic, error=str(e))
            raise QueueUnavailableError(str(e), details={"topic": self.topic})

        self.logger.debug(
            "Batch settled",
            acked=len(acked),
            retried=len(retry),
            rewound_partitions=len(rewind)
        )

    def _rewind_and_commit(self, rewind: Dict[TopicPartition, int]) -> None:
        for partition, offset in rewind.items():
            self.consumer.seek(partition, offset)
        self.consumer.commit()
