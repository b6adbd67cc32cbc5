"""
Core components: constants and context helpers.
"""

from relay_gateway.components.core.constants import (
    WSCloseCode,
    ClientRole,
    LifecycleState,
    RelayConstants,
)
from relay_gateway.components.core.context import (
    HandshakeInfo,
    sanitize_log_data,
    utc_now_iso,
)

__all__ = [
    "WSCloseCode",
    "ClientRole",
    "LifecycleState",
    "RelayConstants",
    "HandshakeInfo",
    "sanitize_log_data",
    "utc_now_iso",
]
