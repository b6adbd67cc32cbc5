"""
Relay Gateway Components.

- core/       - Foundational pieces (constants, context helpers)
- connection/ - Per-connection state (channel, registry, heartbeat)
- messages/   - Inbound classification and outbound envelopes
- endpoints/  - WebSocket endpoint and mixins
"""

from relay_gateway.components.core.constants import (
    WSCloseCode,
    ClientRole,
    LifecycleState,
    RelayConstants,
)
from relay_gateway.components.core.context import HandshakeInfo, sanitize_log_data
from relay_gateway.components.connection.channel import Channel, WebSocketChannel
from relay_gateway.components.connection.registry import ConnectionRecord, ConnectionRegistry
from relay_gateway.components.connection.heartbeat import HeartbeatMonitor
from relay_gateway.components.messages.classifier import (
    ClassifiedMessage,
    MessageKind,
    classify_message,
)

__all__ = [
    # Core
    "WSCloseCode",
    "ClientRole",
    "LifecycleState",
    "RelayConstants",
    "HandshakeInfo",
    "sanitize_log_data",
    # Connection
    "Channel",
    "WebSocketChannel",
    "ConnectionRecord",
    "ConnectionRegistry",
    "HeartbeatMonitor",
    # Messages
    "ClassifiedMessage",
    "MessageKind",
    "classify_message",
]
