"""
Connection management components.

Handles per-connection state: transport channel, registry, heartbeat.
"""

from relay_gateway.components.connection.channel import (
    Channel,
    WebSocketChannel,
    is_ws_connected,
)
from relay_gateway.components.connection.registry import ConnectionRecord, ConnectionRegistry
from relay_gateway.components.connection.heartbeat import HeartbeatCycleResult, HeartbeatMonitor

__all__ = [
    "Channel",
    "WebSocketChannel",
    "is_ws_connected",
    "ConnectionRecord",
    "ConnectionRegistry",
    "HeartbeatCycleResult",
    "HeartbeatMonitor",
]
