"""
Structured logging for AirCare Access Services.

Every event is a JSON line carrying the emitting service, the request id
of the HTTP call it belongs to and, for symptom calls, the owner id.
Symptom payloads themselves are never logged; only their ids are.
"""

import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
owner_id_var: ContextVar[Optional[str]] = ContextVar('owner_id', default=None)


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Route structlog through stdlib logging as JSON on stdout."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _service_from_logger(service_name),
            add_correlation_context,
            add_epoch,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def _service_from_logger(default_service: str):
    # Logger names are "<service>.<component>"; shared components log
    # under the service that configured logging.
    def add_service(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        logger_name = event_dict.get("logger", "")
        prefix = logger_name.split(".")[0] if "." in logger_name else ""
        event_dict["service"] = default_service if prefix in ("", "shared") else prefix
        return event_dict

    return add_service


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    owner_id = owner_id_var.get()
    if owner_id:
        event_dict.setdefault("owner_id", owner_id)

    return event_dict


def add_epoch(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict["epoch"] = time.time()
    return event_dict


def bind_request(request_id: Optional[str] = None) -> str:
    """Bind the request id for this context, generating one when absent."""
    request_id = request_id or str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def bind_owner(owner_id: Optional[str]) -> None:
    """Bind the caller's owner id for this context."""
    if owner_id:
        owner_id_var.set(owner_id)


def clear_context() -> None:
    request_id_var.set(None)
    owner_id_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)
