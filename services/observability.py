from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any


_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def set_request_id(value: str | None) -> None:
    _request_id.set(value)


def get_request_id() -> str | None:
    return _request_id.get()


def log_event(
    logger: logging.Logger,
    event: str,
    *,
    outcome: str,
    level: int = logging.INFO,
    correlation_id: str | None = None,
    **fields: Any,
) -> None:
    """
    Emit one structured event record.

    The message stays a flat key=value line for humans; the same data is
    attached to the LogRecord (record.event, record.outcome,
    record.correlation_id, record.fields) so tests and log shippers can read it
    without parsing text.
    """
    cid = correlation_id or get_request_id()
    parts = [f"event={event}", f"outcome={outcome}", f"correlation_id={cid}"]
    parts.extend(f"{k}={v}" for k, v in fields.items())
    logger.log(
        level,
        " ".join(parts),
        extra={
            "event": event,
            "outcome": outcome,
            "correlation_id": cid,
            "fields": dict(fields),
        },
    )
