"""
Relay Lifecycle Controller.

Owns the server state machine (STARTING -> RUNNING -> STOPPING -> STOPPED),
the per-connection disconnect path, orderly shutdown under a grace timer and
escalation of fatal faults.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, TYPE_CHECKING

from relay_shared.config.logging import audit_ws_connection
from relay_gateway.components.core.constants import (
    EXIT_FAILURE,
    EXIT_SUCCESS,
    NOTICE_CLIENT_LEFT,
    NOTICE_SHUTDOWN,
    REASON_SHUTDOWN,
    LifecycleState,
    RelayConstants,
    WSCloseCode,
)

if TYPE_CHECKING:
    from relay_gateway.components.connection.heartbeat import HeartbeatMonitor
    from relay_gateway.components.connection.registry import (
        ConnectionRecord,
        ConnectionRegistry,
    )
    from relay_gateway.core.broadcaster import RelayBroadcaster

logger = logging.getLogger(__name__)

# Called with force=True when the grace period expired
ListenerCloser = Callable[[bool], None]


class LifecycleController:
    """
    Drives startup, per-connection teardown and process shutdown.

    Shutdown is idempotent: signals, fatal faults and the application
    lifespan may all request it, and every caller awaits the same teardown.
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        broadcaster: "RelayBroadcaster",
        heartbeat: "HeartbeatMonitor",
        grace_period: float = 5.0,
    ) -> None:
        """
        Args:
            registry: Connection registry.
            broadcaster: Used for departure and shutdown notices.
            heartbeat: Monitor whose timer is cancelled on shutdown.
            grace_period: Seconds allowed for teardown before forcing exit.
        """
        self._registry = registry
        self._broadcaster = broadcaster
        self._heartbeat = heartbeat
        self._grace_period = grace_period

        self._state = LifecycleState.STARTING
        self._started_at: float | None = None
        self._shutdown_task: asyncio.Task | None = None
        self._shutdown_reason: str | None = None
        self._listener_closers: list[ListenerCloser] = []
        self._exit_code: int | None = None
        self._fatal = False
        self._forced = False

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def is_accepting(self) -> bool:
        """New connections are accepted only while RUNNING."""
        return self._state is LifecycleState.RUNNING

    @property
    def exit_code(self) -> int | None:
        """Process exit status, None until STOPPED."""
        return self._exit_code

    @property
    def forced(self) -> bool:
        """Whether teardown was cut short by the grace timer."""
        return self._forced

    @property
    def uptime_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        return time.monotonic() - self._started_at

    def add_listener_closer(self, closer: ListenerCloser) -> None:
        """Register a callback that closes the listening endpoint."""
        self._listener_closers.append(closer)

    def mark_running(self, host: str, port: int) -> None:
        """STARTING -> RUNNING once the listening endpoint is bound."""
        if self._state is not LifecycleState.STARTING:
            logger.warning("mark_running ignored", state=self._state.value)
            return
        self._state = LifecycleState.RUNNING
        self._started_at = time.monotonic()
        display_host = "localhost" if host in ("0.0.0.0", "::") else host
        logger.info(
            "WebSocket Server Started",
            port=port,
            websocket_url=f"ws://{display_host}:{port}",
            health_url=f"http://{display_host}:{port}/health",
            heartbeat_interval=self._heartbeat.interval,
            grace_period=self._grace_period,
        )

    # =========================================================================
    # Per-connection teardown
    # =========================================================================

    async def disconnect(
        self,
        identity: str,
        code: int | None = None,
        reason: str | None = None,
    ) -> "ConnectionRecord | None":
        """
        Close path for one connection.

        Removes the record, logs session duration and message count, and
        tells the remaining peers the connection left. Safe to call more
        than once: only the call that removed the record has any effect.

        Returns:
            The removed record, or None if it was already gone.
        """
        record = self._registry.remove(identity)
        if record is None:
            return None

        remaining = self._registry.size()
        logger.info(
            "Connection closed",
            identity=record.label,
            code=code,
            reason=reason or "No reason provided",
            duration_seconds=record.session_seconds(),
            messages_sent=record.message_count,
            remaining_connections=remaining,
        )
        audit_ws_connection(
            "DISCONNECT",
            identity=identity,
            remote_address=record.remote_address,
            reason=reason,
            code=code,
        )

        # During shutdown every peer gets the shutdown notice instead
        if self._state is LifecycleState.RUNNING and remaining:
            await self._broadcaster.broadcast_system_notice(
                NOTICE_CLIENT_LEFT.format(identity=identity)
            )
        return record

    # =========================================================================
    # Shutdown
    # =========================================================================

    def begin_shutdown(self, reason: str = "signal") -> asyncio.Task:
        """
        Start shutdown without waiting for it (usable from loop callbacks).

        Returns:
            The shared shutdown task.
        """
        if self._shutdown_task is None:
            self._shutdown_reason = reason
            self._state = LifecycleState.STOPPING
            self._shutdown_task = asyncio.get_running_loop().create_task(
                self._run_shutdown(reason), name="relay_shutdown"
            )
        return self._shutdown_task

    async def shutdown(self, reason: str = "signal") -> int:
        """
        Shut the server down and wait for teardown.

        Returns:
            Exit status: 0 after a clean teardown, 1 if the grace period
            expired or a fatal fault triggered the shutdown.
        """
        task = self.begin_shutdown(reason)
        return await asyncio.shield(task)

    async def _run_shutdown(self, reason: str) -> int:
        logger.info(
            "Shutting down server",
            reason=reason,
            connections=self._registry.size(),
            grace_period=self._grace_period,
        )

        try:
            await asyncio.wait_for(self._teardown(), timeout=self._grace_period)
        except asyncio.TimeoutError:
            self._forced = True
            logger.error(
                "Forced shutdown after timeout",
                grace_period=self._grace_period,
                remaining_connections=self._registry.size(),
            )

        self._close_listener(force=self._forced)

        self._exit_code = EXIT_FAILURE if (self._forced or self._fatal) else EXIT_SUCCESS
        self._state = LifecycleState.STOPPED
        logger.info("Server stopped", exit_code=self._exit_code)
        return self._exit_code

    async def _teardown(self) -> None:
        await self._heartbeat.stop()

        notified = await self._broadcaster.broadcast_system_notice(NOTICE_SHUTDOWN)
        logger.info("Shutdown notice sent", recipients=notified)

        identities = self._registry.all_identities_except(None)
        await asyncio.gather(
            *[self._close_connection(identity) for identity in identities]
        )
        logger.info("All connections closed", closed=len(identities))

    async def _close_connection(self, identity: str) -> None:
        record = self._registry.lookup(identity)
        if record is None:
            return
        if record.channel.is_open:
            try:
                await asyncio.wait_for(
                    record.channel.close(WSCloseCode.GOING_AWAY, REASON_SHUTDOWN),
                    timeout=RelayConstants.CLOSE_TIMEOUT,
                )
            except (ConnectionError, RuntimeError, OSError, asyncio.TimeoutError) as e:
                logger.debug(
                    "Failed to close connection during shutdown",
                    identity=identity,
                    error=str(e),
                )
        await self.disconnect(identity, WSCloseCode.GOING_AWAY, REASON_SHUTDOWN)

    def _close_listener(self, force: bool) -> None:
        for closer in self._listener_closers:
            try:
                closer(force)
            except Exception as e:
                logger.error("Error closing listener", error=str(e), exc_info=True)

    # =========================================================================
    # Fault escalation
    # =========================================================================

    def escalate(self, exc: BaseException, source: str = "unknown") -> None:
        """
        Fatal process fault: log it and run the full shutdown path.

        Only faults not attributable to a single connection end up here.
        """
        logger.critical(
            "Fatal fault, shutting down",
            source=source,
            error=str(exc),
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        self._fatal = True
        if self._shutdown_task is None:
            self.begin_shutdown("fatal")

    def watch(self, task: asyncio.Task) -> asyncio.Task:
        """Escalate if a background task dies with an exception."""
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.escalate(exc, source=task.get_name())

    def handle_loop_exception(
        self,
        loop: asyncio.AbstractEventLoop,
        context: dict[str, Any],
    ) -> None:
        """
        asyncio exception handler for failures nobody observed.

        Logged only, never escalated.
        """
        exc = context.get("exception")
        origin = context.get("task") or context.get("future")
        logger.error(
            "Unobserved async failure",
            message=context.get("message"),
            origin=repr(origin) if origin is not None else None,
            exc_info=(type(exc), exc, exc.__traceback__) if exc is not None else None,
        )

    def get_stats(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "uptime_seconds": round(self.uptime_seconds),
            "shutdown_reason": self._shutdown_reason,
        }
