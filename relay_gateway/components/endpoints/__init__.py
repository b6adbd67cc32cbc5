"""
WebSocket endpoints.
"""

from relay_gateway.components.endpoints.mixins import (
    ConnectionLifecycleMixin,
    MessageValidationMixin,
)
from relay_gateway.components.endpoints.relay import RelayEndpoint

__all__ = [
    "ConnectionLifecycleMixin",
    "MessageValidationMixin",
    "RelayEndpoint",
]
