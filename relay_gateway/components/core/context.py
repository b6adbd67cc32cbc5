"""
Connection context helpers for logging.

Sanitizes user-provided payloads before they reach log output and collects
the handshake metadata logged for every connection.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from relay_gateway.components.core.constants import RelayConstants

if TYPE_CHECKING:
    from fastapi import WebSocket


# Pattern to remove control characters from log data
_CONTROL_CHAR_PATTERN = re.compile(
    r'[\x00-\x1f\x7f-\x9f'  # ASCII control characters
    r'\u200b-\u200f'  # Zero-width and direction marks
    r'\u202a-\u202e'  # Bidirectional text formatting (RTL override, etc.)
    r'\u2066-\u2069'  # Isolate formatting characters
    r'\ufeff]'  # BOM / Zero-width no-break space
)


def sanitize_log_data(
    data: str,
    max_length: int = RelayConstants.LOG_PAYLOAD_MAX_LENGTH,
) -> str:
    """
    Sanitize user-provided data before logging.

    Truncates first so escape sequences are never cut in half, then strips
    control and direction-override characters and escapes quotes,
    backslashes and whitespace escapes.

    Args:
        data: Raw user data.
        max_length: Maximum length to include in logs.

    Returns:
        Sanitized, truncated string safe for structured logging.
    """
    truncated = data[:max_length] if len(data) > max_length else data
    was_truncated = len(data) > max_length

    # Remove control characters and direction overrides
    sanitized = _CONTROL_CHAR_PATTERN.sub('', truncated)

    # Replace backslashes first to avoid double-escaping
    sanitized = sanitized.replace('\\', '\\\\')
    sanitized = sanitized.replace('"', '\\"')
    sanitized = sanitized.replace('\n', '\\n')
    sanitized = sanitized.replace('\r', '\\r')
    sanitized = sanitized.replace('\t', '\\t')

    if was_truncated:
        return sanitized + "..."
    return sanitized


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


@dataclass(frozen=True)
class HandshakeInfo:
    """Peer metadata captured when a WebSocket connection is accepted."""

    remote_address: str
    origin: str | None = None
    user_agent: str | None = None

    @classmethod
    def from_websocket(cls, websocket: "WebSocket") -> "HandshakeInfo":
        """Extract peer address and relevant headers from a WebSocket."""
        client = websocket.client
        if client is not None:
            remote_address = f"{client.host}:{client.port}"
        else:
            remote_address = "unknown"
        return cls(
            remote_address=remote_address,
            origin=websocket.headers.get("origin"),
            user_agent=websocket.headers.get("user-agent"),
        )
