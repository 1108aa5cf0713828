"""
Telemetry (symptom) record shape shared by the producer, the worker and
the log reader.

A record is the caller's JSON object plus three server-stamped keys. The
stamped keys always win over caller keys of the same name.
"""

import json
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict

OWNER_FIELD = "ownerId"
ID_FIELD = "id"
CREATED_AT_FIELD = "createdAt"


class MalformedMessageError(ValueError):
    """Queued body that can never become a record."""


def generate_record_id(clock: Callable[[], float] = time.time) -> str:
    """Time-ordered identifier with a random suffix.

    The millisecond prefix keeps ids sortable by submission time; the
    suffix keeps them unique for bursts within the same millisecond.
    """
    return f"id-{int(clock() * 1000)}-{uuid.uuid4().hex[:12]}"


def format_timestamp(epoch_seconds: float) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    moment = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_message(owner_id: str, record_id: str, fields: Dict[str, Any], created_at: str) -> Dict[str, Any]:
    message = dict(fields)
    message[OWNER_FIELD] = owner_id
    message[ID_FIELD] = record_id
    message[CREATED_AT_FIELD] = created_at
    return message


def parse_message(body: Any) -> Dict[str, Any]:
    """Decode a queued body into a record.

    Raises:
        MalformedMessageError: not JSON, not an object, or missing identity.
    """
    if isinstance(body, (bytes, bytearray)):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedMessageError(f"Body is not UTF-8: {exc}")
    try:
        record = json.loads(body)
    except (TypeError, ValueError, RecursionError) as exc:
        raise MalformedMessageError(f"Body is not JSON: {exc}")

    if not isinstance(record, dict):
        raise MalformedMessageError("Body is not a JSON object")
    for field in (OWNER_FIELD, ID_FIELD):
        value = record.get(field)
        if not isinstance(value, str) or not value:
            raise MalformedMessageError(f"Missing {field}")
    return record
