"""
Relay Broadcaster.

Fans a token out to every connection except its sender.

Delivery is best-effort and at-most-once per target: a failed send is
logged and the target is marked suspect so the heartbeat monitor reaps it,
but the failure never aborts the fan-out and never reaches the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from relay_gateway.components.messages.envelopes import system_notice

if TYPE_CHECKING:
    from relay_gateway.components.connection.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class RelayBroadcaster:
    """
    Delivers tokens and system notices to registered connections.

    Sends within a batch are issued concurrently, so one slow peer does not
    stall delivery to the others.
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        batch_size: int = 50,
    ) -> None:
        """
        Args:
            registry: Connection registry to read targets from.
            batch_size: Number of connections to send to in parallel.
        """
        self._registry = registry
        self._batch_size = max(1, batch_size)
        self._broadcasts_total = 0
        self._deliveries_total = 0
        self._failures_total = 0

    async def broadcast(self, token: str, exclude_identity: str | None = None) -> int:
        """
        Send ``token`` verbatim to every connection except ``exclude_identity``.

        Args:
            token: Text to deliver, no envelope added.
            exclude_identity: Sender to skip (None delivers to everyone).

        Returns:
            Number of successful deliveries.
        """
        targets = self._registry.all_identities_except(exclude_identity)
        self._broadcasts_total += 1
        if not targets:
            return 0

        sent = 0
        for i in range(0, len(targets), self._batch_size):
            batch = targets[i : i + self._batch_size]
            results = await asyncio.gather(
                *[self.send_to(identity, token) for identity in batch],
                return_exceptions=True,
            )
            for identity, result in zip(batch, results):
                if result is True:
                    sent += 1
                elif isinstance(result, Exception):
                    logger.warning(
                        "Broadcast send raised",
                        identity=identity,
                        error=str(result),
                    )
        return sent

    async def broadcast_system_notice(
        self,
        text: str,
        exclude_identity: str | None = None,
    ) -> int:
        """Wrap ``text`` in a system envelope and broadcast it."""
        return await self.broadcast(system_notice(text), exclude_identity)

    async def send_to(self, identity: str, text: str) -> bool:
        """
        Send to a single connection, returning success status.

        Skips connections that are gone or whose channel is not open.
        """
        record = self._registry.lookup(identity)
        if record is None or not record.channel.is_open:
            return False
        try:
            await record.channel.send_text(text)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failures_total += 1
            logger.warning(
                "Send failed, isolating connection",
                identity=identity,
                error_type=type(e).__name__,
                error=str(e),
            )
            self._registry.mark_suspect(identity)
            return False
        self._deliveries_total += 1
        return True

    def get_stats(self) -> dict[str, int]:
        """Broadcast counters since startup."""
        return {
            "broadcasts_total": self._broadcasts_total,
            "deliveries_total": self._deliveries_total,
            "failed_sends_total": self._failures_total,
        }
