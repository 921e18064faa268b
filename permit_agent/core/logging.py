"""
Logging configuration for Permit Agent.

Every acquisition gets a short request id bound into structlog's
contextvars, so all log lines emitted while a pipeline runs (crawler,
detectors, cache) can be correlated without passing a logger around.
"""

import logging
import sys
import time
import uuid
from typing import Any

import structlog
from structlog.types import Processor


def bind_request_context(request_id: str | None = None, **fields: Any) -> str:
    """
    Bind acquisition-scoped fields to every subsequent log entry.

    Returns:
        The request id that was bound
    """
    request_id = request_id or str(uuid.uuid4())[:8]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        started_at=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        **fields,
    )
    return request_id


def clear_request_context() -> None:
    """Drop acquisition-scoped fields."""
    structlog.contextvars.clear_contextvars()


def add_request_id(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Processor that keeps request_id at the front of the event dict."""
    request_id = event_dict.pop("request_id", None)
    if request_id:
        return {"request_id": request_id, **event_dict}
    return event_dict


def configure_logging(json_logs: bool = True, log_level: str = "INFO") -> None:
    """
    Configure structlog.

    Args:
        json_logs: If True, output JSON format (for production).
                   If False, output colored console format (for development).
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR).
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        add_request_id,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Third-party libraries (httpx, openai) log through stdlib logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
    )
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
