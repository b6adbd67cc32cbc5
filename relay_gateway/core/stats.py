"""
Connection Statistics.

Aggregates statistics from the relay components for the health endpoints
and the periodic status log.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TYPE_CHECKING

import psutil

from relay_gateway.components.core.context import utc_now_iso

if TYPE_CHECKING:
    from relay_gateway.components.connection.heartbeat import HeartbeatMonitor
    from relay_gateway.components.connection.registry import ConnectionRegistry
    from relay_gateway.core.broadcaster import RelayBroadcaster
    from relay_gateway.core.lifecycle import LifecycleController

logger = logging.getLogger(__name__)


class ConnectionStats:
    """
    Read-only view over the relay components.

    Everything here is synchronous so it can back plain (non-async) health
    check endpoints.
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        broadcaster: "RelayBroadcaster",
        heartbeat: "HeartbeatMonitor",
        lifecycle: "LifecycleController",
        get_messages_received: Callable[[], int],
    ) -> None:
        self._registry = registry
        self._broadcaster = broadcaster
        self._heartbeat = heartbeat
        self._lifecycle = lifecycle
        self._get_messages_received = get_messages_received
        self._process = psutil.Process()

    def get_health(self) -> dict[str, Any]:
        """Health payload: connection count at the instant of the call."""
        return {
            "status": "ok",
            "connections": self._registry.size(),
            "timestamp": utc_now_iso(),
        }

    def get_stats_sync(self) -> dict[str, Any]:
        """Detailed statistics for diagnostics."""
        registry_stats = self._registry.get_stats()
        return {
            **self._lifecycle.get_stats(),
            "connections": registry_stats["connections"],
            "peak_connections": registry_stats["peak_connections"],
            "suspect_connections": registry_stats["suspect_connections"],
            "connections_by_role": registry_stats["by_role"],
            "messages_received": self._get_messages_received(),
            "memory_rss_mb": self.memory_rss_mb(),
            "broadcast": self._broadcaster.get_stats(),
            "heartbeat": self._heartbeat.get_stats(),
        }

    def memory_rss_mb(self) -> float:
        """Resident set size of this process in MiB."""
        return round(self._process.memory_info().rss / (1024 * 1024), 1)

    def log_status(self) -> None:
        """Log a one-line server status summary."""
        registry_stats = self._registry.get_stats()
        broadcast_stats = self._broadcaster.get_stats()
        logger.info(
            "Server Status",
            active_connections=registry_stats["connections"],
            peak_connections=registry_stats["peak_connections"],
            uptime_seconds=round(self._lifecycle.uptime_seconds),
            messages_received=self._get_messages_received(),
            deliveries=broadcast_stats["deliveries_total"],
            failed_sends=broadcast_stats["failed_sends_total"],
            memory_rss_mb=self.memory_rss_mb(),
        )
