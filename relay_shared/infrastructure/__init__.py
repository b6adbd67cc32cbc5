"""
Infrastructure helpers shared by relay services.
"""

from relay_shared.infrastructure.correlation import (
    ConnectionIdFilter,
    bind_connection_id,
    get_connection_id,
    reset_connection_id,
)

__all__ = [
    "ConnectionIdFilter",
    "bind_connection_id",
    "get_connection_id",
    "reset_connection_id",
]
