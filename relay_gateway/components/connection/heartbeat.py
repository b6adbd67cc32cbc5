"""
Heartbeat Monitor for the relay.

Two-strike liveness: every cycle each registered connection that is still
flagged alive is marked suspect and probed; a probe answer (or any inbound
message) marks it alive again. A connection still suspect at the next cycle
missed a full probe round and is evicted through the regular disconnect path.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TYPE_CHECKING

from relay_gateway.components.core.constants import (
    REASON_HEARTBEAT_TIMEOUT,
    RelayConstants,
    WSCloseCode,
)

if TYPE_CHECKING:
    from relay_gateway.components.connection.channel import Channel
    from relay_gateway.components.connection.registry import ConnectionRegistry

_heartbeat_logger = logging.getLogger(__name__)

DisconnectCallback = Callable[[str, int, str], Awaitable[object]]


@dataclass(frozen=True)
class HeartbeatCycleResult:
    """Outcome of one heartbeat cycle."""

    cycle: int
    probed: int
    evicted: list[str]


class HeartbeatMonitor:
    """
    Periodically probes every registered connection and evicts non-responders.

    The timer runs as a single named task started by start() and cancelled by
    stop(). Probes run as background tasks so a slow peer never delays the
    cycle for the others.
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        disconnect_callback: DisconnectCallback,
        interval: float = 30.0,
    ) -> None:
        """
        Args:
            registry: Connection registry to read and mark.
            disconnect_callback: Teardown path, called as
                ``callback(identity, close_code, reason)`` for evicted
                connections.
            interval: Seconds between cycles.
        """
        self._registry = registry
        self._disconnect = disconnect_callback
        self._interval = interval
        self._task: asyncio.Task | None = None
        self._probes: dict[str, asyncio.Task] = {}
        self._cycle = 0
        self._stopped = False
        self._evicted_total = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def task(self) -> asyncio.Task | None:
        """The timer task, None before start()."""
        return self._task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def cycles(self) -> int:
        return self._cycle

    # =========================================================================
    # Timer
    # =========================================================================

    def start(self) -> asyncio.Task:
        """Start the heartbeat timer on the running loop."""
        if self.running:
            _heartbeat_logger.warning("Heartbeat monitor already running")
            return self._task
        self._stopped = False
        self._task = asyncio.create_task(self._run(), name="heartbeat_monitor")
        _heartbeat_logger.info("Heartbeat monitor started", interval=self._interval)
        return self._task

    async def stop(self) -> bool:
        """
        Cancel the timer and any in-flight probes.

        Returns:
            True on the call that cancelled the timer, False afterwards.
        """
        if self._stopped:
            return False
        self._stopped = True

        pending = list(self._probes.values())
        self._probes.clear()
        for probe in pending:
            probe.cancel()

        task = self._task
        if task is not None and not task.done():
            task.cancel()
            pending.append(task)

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        _heartbeat_logger.info("Heartbeat monitor stopped", cycles=self._cycle)
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.run_cycle()
            except Exception as e:
                _heartbeat_logger.error(
                    "Error in heartbeat cycle",
                    cycle=self._cycle,
                    error=str(e),
                    exc_info=True,
                )

    # =========================================================================
    # Cycle
    # =========================================================================

    async def run_cycle(self) -> HeartbeatCycleResult:
        """
        Run one heartbeat cycle over a snapshot of the registry.

        Returns:
            HeartbeatCycleResult with the number of probes sent and the
            identities evicted.
        """
        self._cycle += 1
        stale: list[tuple[str, "Channel"]] = []
        probed = 0

        for identity in self._registry.all_identities_except(None):
            record = self._registry.lookup(identity)
            if record is None:
                continue  # Closed since the snapshot was taken

            previous = self._probes.pop(identity, None)
            if previous is not None and not previous.done():
                previous.cancel()

            if not record.is_alive:
                stale.append((identity, record.channel))
                continue

            self._registry.mark_suspect(identity)
            self._probes[identity] = asyncio.create_task(
                self._probe(identity, record.channel),
                name=f"heartbeat_probe_{identity}",
            )
            probed += 1

        # Evicted channels close concurrently
        if stale:
            await asyncio.gather(*[self._evict(i, channel) for i, channel in stale])
        evicted = [identity for identity, _ in stale]

        # Forget probes of connections that are gone
        for identity in [i for i, t in self._probes.items() if t.done()]:
            del self._probes[identity]

        if evicted:
            self._evicted_total += len(evicted)
            _heartbeat_logger.info(
                "Heartbeat evicted inactive connections",
                cycle=self._cycle,
                count=len(evicted),
            )
        else:
            _heartbeat_logger.debug("Heartbeat cycle", cycle=self._cycle, probed=probed)

        return HeartbeatCycleResult(cycle=self._cycle, probed=probed, evicted=evicted)

    async def wait_for_probes(self) -> None:
        """Wait until every probe sent so far has finished."""
        pending = [t for t in self._probes.values() if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def record_activity(self, identity: str) -> None:
        """Any inbound message counts as a liveness response."""
        self._registry.mark_alive(identity)

    async def _probe(self, identity: str, channel: "Channel") -> None:
        try:
            answered = await channel.probe()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            _heartbeat_logger.debug("Liveness probe failed", identity=identity, error=str(e))
            return
        if answered:
            self._registry.mark_alive(identity)

    async def _evict(self, identity: str, channel: "Channel") -> None:
        _heartbeat_logger.warning("Terminating inactive connection", identity=identity)
        # Deregister first: a peer that stopped reading holds the close
        # handshake open for up to CLOSE_TIMEOUT
        await self._disconnect(identity, WSCloseCode.GOING_AWAY, REASON_HEARTBEAT_TIMEOUT)
        try:
            await asyncio.wait_for(
                channel.close(WSCloseCode.GOING_AWAY, REASON_HEARTBEAT_TIMEOUT),
                timeout=RelayConstants.CLOSE_TIMEOUT,
            )
        except (ConnectionError, RuntimeError, OSError, asyncio.TimeoutError) as e:
            # Peer is already gone
            _heartbeat_logger.debug(
                "Failed to close inactive connection",
                identity=identity,
                error=str(e),
            )

    def get_stats(self) -> dict[str, float | int]:
        """Heartbeat monitor statistics."""
        return {
            "interval_seconds": self._interval,
            "cycles": self._cycle,
            "probes_in_flight": sum(1 for t in self._probes.values() if not t.done()),
            "evicted_total": self._evicted_total,
        }
