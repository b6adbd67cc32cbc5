"""
Structured envelopes sent by the relay.

Color tokens always travel bare. Only administrative notices and errors are
wrapped, as compact JSON.
"""

from __future__ import annotations

import json
from typing import Any

from relay_gateway.components.core.constants import MSG_TYPE_ERROR, MSG_TYPE_SYSTEM
from relay_gateway.components.core.context import utc_now_iso


def _dump(payload: dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def system_notice(text: str, timestamp: str | None = None) -> str:
    """``{"type": "system", "message": text, "timestamp": <ISO-8601>}``"""
    return _dump({
        "type": MSG_TYPE_SYSTEM,
        "message": text,
        "timestamp": timestamp or utc_now_iso(),
    })


def error_notice(text: str, detail: str) -> str:
    """``{"type": "error", "message": text, "error": detail}``"""
    return _dump({
        "type": MSG_TYPE_ERROR,
        "message": text,
        "error": detail,
    })
