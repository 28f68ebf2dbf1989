from __future__ import annotations

import logging
import json
import sys
from datetime import datetime, timezone
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

from assetdesk.core.config import settings

# Context variables for request-scoped data
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
current_actor_ctx: ContextVar[Optional[str]] = ContextVar("current_actor", default=None)
loan_request_id_ctx: ContextVar[Optional[str]] = ContextVar("loan_request_id", default=None)


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        req_id = request_id_ctx.get()
        if req_id:
            log_entry["request_id"] = req_id

        actor = current_actor_ctx.get()
        if actor:
            log_entry["actor"] = actor

        loan_request_id = loan_request_id_ctx.get()
        if loan_request_id:
            log_entry["loan_request_id"] = loan_request_id

        if hasattr(record, "extra_data"):
            log_entry.update(record.extra_data)

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


def setup_logging() -> None:
    """Configure structured JSON logging for the application."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    # Reduce noise from third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger."""
    return logging.getLogger(name)


@contextmanager
def loan_request_context(loan_request_id: str) -> Iterator[None]:
    """Tag every log entry inside the block with ``loan_request_id``."""
    token = loan_request_id_ctx.set(loan_request_id)
    try:
        yield
    finally:
        loan_request_id_ctx.reset(token)
