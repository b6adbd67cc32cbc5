"""
Structured logging for the relay.

Loggers accept keyword fields (``logger.info("New connection", identity=...)``)
which the formatters render as JSON in production and as a colored line in
development. Records emitted while serving a connection carry its identity
(see relay_shared.infrastructure.correlation).
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from relay_shared.config.settings import settings


def _connection_id(record: logging.LogRecord) -> str | None:
    """Identity stamped by ConnectionIdFilter, None outside a connection."""
    connection_id = getattr(record, "connection_id", None)
    if not connection_id or connection_id == "-":
        return None
    return connection_id


def _fields(record: logging.LogRecord) -> dict[str, Any] | None:
    return getattr(record, "extra_data", None) or None


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation in production."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        connection_id = _connection_id(record)
        if connection_id:
            entry["connection_id"] = connection_id
        fields = _fields(record)
        if fields:
            entry["data"] = fields
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Colored single-line output for a terminal."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, self.RESET)
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        parts = [f"{color}[{clock}] {record.levelname:8}{self.RESET}"]

        connection_id = _connection_id(record)
        if connection_id:
            parts.append(f"{self.DIM}[{connection_id}]{self.RESET}")
        parts.append(f"{record.name}: {record.getMessage()}")

        fields = _fields(record)
        if fields:
            parts.append("(" + ", ".join(f"{k}={v}" for k, v in fields.items()) + ")")

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.Logger):
    """Logger whose level methods take keyword fields instead of ``extra``."""

    def _log_with_data(
        self,
        level: int,
        msg: str,
        args: tuple,
        exc_info: Any = None,
        **fields: Any,
    ) -> None:
        if self.isEnabledFor(level):
            self._log(level, msg, args, exc_info=exc_info, extra={"extra_data": fields or None})

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.DEBUG, msg, args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.INFO, msg, args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.WARNING, msg, args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.ERROR, msg, args, **kwargs)

    def critical(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.CRITICAL, msg, args, **kwargs)


logging.setLoggerClass(StructuredLogger)


def setup_logging() -> None:
    """Install the stdout handler on the root logger. Call once per process."""
    from relay_shared.infrastructure.correlation import ConnectionIdFilter

    level = logging.DEBUG if settings.debug else logging.INFO
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(ConnectionIdFilter())
    if settings.environment == "production":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(DevelopmentFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # Per-request access lines and frame-level websockets chatter
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    return logging.getLogger(name)  # type: ignore


relay_logger = get_logger("relay_gateway")
audit_logger = get_logger("relay.audit")


def audit_ws_connection(
    event_type: str,
    identity: str | None = None,
    remote_address: str | None = None,
    origin: str | None = None,
    reason: str | None = None,
    **extra: Any,
) -> None:
    """
    Record a connection lifecycle event on the audit logger.

    Args:
        event_type: CONNECT, DISCONNECT, EVICTED or REJECTED
        identity: Connection identity, when one was assigned
        remote_address: Peer address
        origin: Origin header value
        reason: Close or rejection reason
        **extra: Additional fields
    """
    audit_logger.info(
        f"WS_AUDIT: {event_type}",
        event_type=event_type,
        identity=identity,
        remote_address=remote_address,
        origin=origin,
        reason=reason,
        **extra,
    )
