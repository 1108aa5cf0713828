"""
Queueing producer for symptom entries.
"""

import time
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

from shared.logging import get_logger
from shared.errors import AuthenticationError, InvalidInputError, QueueUnavailableError
from shared.message_queue import MessageQueue
from shared.telemetry import build_message, format_timestamp, generate_record_id

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class IngestionProducer:
    """Stamps symptom entries and hands them to the queue.

    A successful ``submit`` means accepted-for-processing only; the record
    becomes visible to readers once the worker has persisted it.
    """

    def __init__(
        self,
        queue: MessageQueue,
        *,
        id_factory: Callable[[], str] = generate_record_id,
        clock: Callable[[], float] = time.time,
        metrics: Optional["MetricsCollector"] = None
    ):
        self.queue = queue
        self.id_factory = id_factory
        self.clock = clock
        self.metrics = metrics
        self.logger = get_logger("symptoms.producer")

    async def submit(self, owner_id: Optional[str], fields: Any) -> Dict[str, str]:
        """Enqueue one entry for ``owner_id`` and return its id.

        Raises:
            AuthenticationError: no owner.
            InvalidInputError: ``fields`` is not a JSON object.
            QueueUnavailableError: the queue rejected the message.
        """
        if not owner_id or not owner_id.strip():
            raise AuthenticationError("Missing user ID in authorizer claims")
        if not isinstance(fields, dict):
            raise InvalidInputError("Symptom entry must be a JSON object")

        record_id = self.id_factory()
        message = build_message(owner_id, record_id, fields, format_timestamp(self.clock()))

        try:
            await self.queue.send(message, key=owner_id)
        except QueueUnavailableError as e:
            self.logger.error("Failed to queue symptom entry", owner_id=owner_id, id=record_id, error=e.message)
            raise
        except Exception as e:
            self.logger.error("Failed to queue symptom entry", owner_id=owner_id, id=record_id, error=str(e))
            raise QueueUnavailableError(str(e))

        if self.metrics:
            self.metrics.increment_counter("symptoms_queued_total")
        self.logger.info("Symptom entry queued", owner_id=owner_id, id=record_id)
        return {"id": record_id}
