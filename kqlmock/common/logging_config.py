"""
Logging setup for the query service.

Records are written as JSON lines. Each line carries the id of the HTTP
request being served and, while a batch is resolved, the id of the batch
item the line belongs to. Both come from context variables, so they
follow asyncio tasks and worker threads started with asyncio.to_thread.
"""

import json
import logging
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

request_id_ctx: ContextVar[Optional[str]] = ContextVar(
    "request_id", default=None)
batch_item_ctx: ContextVar[Optional[str]] = ContextVar(
    "batch_item", default=None)

TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


class StructuredFormatter(logging.Formatter):
    """Renders a log record as one JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        for key, ctx in (("request_id", request_id_ctx), ("batch_item", batch_item_ctx)):
            value = ctx.get()
            if value is not None:
                payload[key] = value

        # extra={"extra_fields": {...}}
        payload.update(getattr(record, "extra_fields", {}))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=False)


class PerformanceTracker:
    """
    Times a block and logs how it ended.

    Usage:
        with PerformanceTracker("ingest_table", logger, table="Events"):
            ...

    The elapsed time is kept in duration_ms after the block exits.
    """

    def __init__(
        self,
        operation: str,
        logger: logging.Logger,
        log_level: int = logging.INFO,
        **extra_fields,
    ):
        self.operation = operation
        self.logger = logger
        self.log_level = log_level
        self.fields = {"operation": operation, **extra_fields}
        self.duration_ms: Optional[float] = None
        self._started = 0.0

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = round((time.perf_counter() - self._started) * 1000, 2)
        fields = dict(self.fields, duration_ms=self.duration_ms)

        if exc_type is None:
            self.logger.log(
                self.log_level,
                f"Operation completed: {self.operation}",
                extra={"extra_fields": fields},
            )
        else:
            fields.update(error=str(exc_val), error_type=exc_type.__name__)
            self.logger.error(
                f"Operation failed: {self.operation}",
                extra={"extra_fields": fields},
            )
        return False


def setup_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """
    Send every logger through a single stderr handler on the root logger.

    Args:
        log_level: Level name for the root logger, e.g. "DEBUG"
        json_format: StructuredFormatter if True, plain text otherwise
    """
    handler = logging.StreamHandler()
    handler.setFormatter(
        StructuredFormatter() if json_format else logging.Formatter(TEXT_FORMAT))

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    # RequestTrackingMiddleware writes the access log
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request id to the current context, generating one if needed."""
    request_id = request_id or str(uuid.uuid4())
    request_id_ctx.set(request_id)
    return request_id


def get_request_id() -> Optional[str]:
    return request_id_ctx.get()


def clear_request_id() -> None:
    request_id_ctx.set(None)


def set_batch_item(item_id: Optional[str]) -> None:
    """Bind a batch item id to the current task."""
    batch_item_ctx.set(item_id)
