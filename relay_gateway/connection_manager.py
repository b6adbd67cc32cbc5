"""
Relay Connection Manager.

Thin orchestrator that composes the relay components:
- ConnectionRegistry: identity allocation and per-connection state
- RelayBroadcaster: fan-out to all-but-sender
- HeartbeatMonitor: two-strike liveness and eviction
- LifecycleController: disconnect path, shutdown, fault escalation
- ConnectionStats: health and status reporting

Endpoints talk to the manager only; no component is reached directly.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from relay_shared.config.logging import audit_ws_connection
from relay_shared.config.settings import settings
from relay_gateway.components.connection.heartbeat import HeartbeatMonitor
from relay_gateway.components.connection.registry import ConnectionRegistry
from relay_gateway.components.core.constants import ClientRole
from relay_gateway.components.core.context import sanitize_log_data
from relay_gateway.components.messages.classifier import classify_message
from relay_gateway.components.messages.envelopes import error_notice
from relay_gateway.core.broadcaster import RelayBroadcaster
from relay_gateway.core.lifecycle import LifecycleController
from relay_gateway.core.stats import ConnectionStats

if TYPE_CHECKING:
    from relay_gateway.components.connection.channel import Channel
    from relay_gateway.components.connection.registry import ConnectionRecord
    from relay_gateway.components.core.context import HandshakeInfo

logger = logging.getLogger(__name__)

__all__ = ["ConnectionManager"]


class ConnectionManager:
    """
    Manages relay connections.

    Configuration from settings (overridable per instance):
    - heartbeat_interval: Seconds between heartbeat cycles (default: 30)
    - shutdown_grace_period: Seconds allowed for shutdown (default: 5)
    - ws_broadcast_batch_size: Parallel broadcast batch size (default: 50)
    """

    def __init__(
        self,
        heartbeat_interval: float | None = None,
        grace_period: float | None = None,
        batch_size: int | None = None,
    ) -> None:
        self._registry = ConnectionRegistry()
        self._broadcaster = RelayBroadcaster(
            self._registry,
            batch_size=batch_size or settings.ws_broadcast_batch_size,
        )
        self._heartbeat = HeartbeatMonitor(
            self._registry,
            disconnect_callback=self._evict,
            interval=heartbeat_interval or settings.heartbeat_interval,
        )
        self._lifecycle = LifecycleController(
            self._registry,
            self._broadcaster,
            self._heartbeat,
            grace_period=grace_period or settings.shutdown_grace_period,
        )
        self._messages_received = 0
        self._stats = ConnectionStats(
            self._registry,
            self._broadcaster,
            self._heartbeat,
            self._lifecycle,
            get_messages_received=lambda: self._messages_received,
        )

    # =========================================================================
    # Component access
    # =========================================================================

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def broadcaster(self) -> RelayBroadcaster:
        return self._broadcaster

    @property
    def heartbeat(self) -> HeartbeatMonitor:
        return self._heartbeat

    @property
    def lifecycle(self) -> LifecycleController:
        return self._lifecycle

    @property
    def stats(self) -> ConnectionStats:
        return self._stats

    @property
    def total_connections(self) -> int:
        """Total number of registered connections."""
        return self._registry.size()

    # =========================================================================
    # Lifecycle (delegate to lifecycle controller)
    # =========================================================================

    def start(self, host: str, port: int, mark_running: bool = True) -> None:
        """
        Start the heartbeat timer.

        Enters RUNNING immediately unless mark_running is False, in which case
        the caller marks RUNNING once the listening socket is bound.
        """
        self._lifecycle.watch(self._heartbeat.start())
        if mark_running:
            self._lifecycle.mark_running(host, port)

    async def shutdown(self, reason: str = "signal") -> int:
        """Run the shutdown sequence. Returns the process exit status."""
        return await self._lifecycle.shutdown(reason)

    # =========================================================================
    # Connection management
    # =========================================================================

    def connect(self, channel: "Channel", handshake: "HandshakeInfo") -> str:
        """
        Register an accepted connection.

        Raises:
            ConnectionError: If the server is not accepting connections.
        """
        if not self._lifecycle.is_accepting:
            raise ConnectionError("Server is shutting down")

        identity = self._registry.register(channel, handshake.remote_address)
        logger.info(
            "New connection",
            identity=identity,
            remote_address=handshake.remote_address,
            origin=handshake.origin or "unknown",
            total_connections=self._registry.size(),
        )
        audit_ws_connection(
            "CONNECT",
            identity=identity,
            remote_address=handshake.remote_address,
            origin=handshake.origin,
        )
        return identity

    async def disconnect(
        self,
        identity: str,
        code: int | None = None,
        reason: str | None = None,
    ) -> "ConnectionRecord | None":
        """Close path for a connection (idempotent)."""
        return await self._lifecycle.disconnect(identity, code, reason)

    async def _evict(self, identity: str, code: int, reason: str) -> None:
        audit_ws_connection("EVICTED", identity=identity, reason=reason)
        await self._lifecycle.disconnect(identity, code, reason)

    # =========================================================================
    # Messages
    # =========================================================================

    async def handle_message(self, identity: str, payload: bytes | str) -> int:
        """
        Classify an inbound payload and relay its token to the other clients.

        Args:
            identity: Sender identity.
            payload: Raw frame.

        Returns:
            Number of clients the token was delivered to.
        """
        self._heartbeat.record_activity(identity)
        try:
            message = classify_message(payload)
            if self._registry.increment_message_count(identity) is None:
                return 0  # Sender closed concurrently
            self._messages_received += 1

            if message.declared_role is not None:
                self._apply_role(identity, message.declared_role)

            size = len(payload) if isinstance(payload, bytes) else len(payload.encode("utf-8"))
            logger.info(
                "Message received",
                identity=self._registry.describe(identity),
                content=sanitize_log_data(message.token),
                kind=message.kind.value,
                size_bytes=size,
            )

            sent = await self._broadcaster.broadcast(message.token, identity)
            logger.info(
                "Broadcast complete",
                token=sanitize_log_data(message.token),
                recipients=sent,
            )
            return sent
        except Exception as e:
            logger.error(
                "Error processing message",
                identity=identity,
                error=str(e),
                exc_info=True,
            )
            await self._broadcaster.send_to(
                identity, error_notice("Failed to process message", str(e))
            )
            return 0

    def _apply_role(self, identity: str, role: ClientRole) -> None:
        record = self._registry.lookup(identity)
        if record is None:
            return
        if record.role is ClientRole.UNKNOWN:
            self._registry.set_role(identity, role)
            logger.info("Client type identified", identity=identity, role=role.value)
        elif record.role is not role:
            logger.debug(
                "Ignoring role change",
                identity=identity,
                current=record.role.value,
                declared=role.value,
            )
