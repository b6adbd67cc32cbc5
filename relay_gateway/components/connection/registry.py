"""
Connection Registry for the relay.

Single owner of per-connection state. Identities are allocated from a
process-wide monotonic counter and never reused.

All operations are short synchronous critical sections guarded by a
threading.Lock, so async handlers and sync readers (health endpoint) always
observe a consistent snapshot. Records handed out by lookup() and remove()
are copies: callers must re-validate with lookup() after any await.
"""

from __future__ import annotations

import dataclasses
import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from relay_gateway.components.core.constants import ClientRole, RelayConstants

if TYPE_CHECKING:
    from relay_gateway.components.connection.channel import Channel

logger = logging.getLogger(__name__)


@dataclass
class ConnectionRecord:
    """Metadata for one registered connection."""

    identity: str
    remote_address: str
    channel: "Channel"
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    role: ClientRole = ClientRole.UNKNOWN
    is_alive: bool = True
    message_count: int = 0

    @property
    def label(self) -> str:
        """Log label, e.g. ``client_3 (unity)``."""
        return f"{self.identity} ({self.role.value})"

    def session_seconds(self, now: datetime | None = None) -> int:
        """Whole seconds since the connection was accepted."""
        now = now or datetime.now(timezone.utc)
        return round((now - self.connected_at).total_seconds())


class ConnectionRegistry:
    """
    Tracks open connections keyed by identity.

    Usage:
        registry = ConnectionRegistry()
        identity = registry.register(channel, "10.0.0.5:51234")
        registry.set_role(identity, ClientRole.UNITY)
        for target in registry.all_identities_except(identity):
            record = registry.lookup(target)
    """

    def __init__(self) -> None:
        self._records: dict[str, ConnectionRecord] = {}
        self._counter = itertools.count(1)
        self._peak = 0
        self._lock = threading.Lock()

    # =========================================================================
    # Registration
    # =========================================================================

    def register(self, channel: "Channel", remote_address: str) -> str:
        """
        Allocate a fresh identity and store a new record for the channel.

        Args:
            channel: Transport handle, owned by the record from now on.
            remote_address: Peer address captured at accept time.

        Returns:
            The new identity.
        """
        with self._lock:
            identity = f"{RelayConstants.IDENTITY_PREFIX}{next(self._counter)}"
            self._records[identity] = ConnectionRecord(
                identity=identity,
                remote_address=remote_address,
                channel=channel,
            )
            total = len(self._records)
            self._peak = max(self._peak, total)

        logger.debug(
            "Connection registered",
            identity=identity,
            remote_address=remote_address,
            total_connections=total,
        )
        return identity

    def remove(self, identity: str) -> ConnectionRecord | None:
        """
        Delete a record.

        Idempotent: removing an identity that is already gone returns None.
        """
        with self._lock:
            record = self._records.pop(identity, None)
        return record

    # =========================================================================
    # Lookup
    # =========================================================================

    def lookup(self, identity: str) -> ConnectionRecord | None:
        """Snapshot of the record for ``identity``, or None if not registered."""
        with self._lock:
            record = self._records.get(identity)
            return dataclasses.replace(record) if record is not None else None

    def all_identities_except(self, identity: str | None = None) -> list[str]:
        """Identities registered right now, excluding ``identity``."""
        with self._lock:
            return [key for key in self._records if key != identity]

    def size(self) -> int:
        """Current number of registered connections."""
        with self._lock:
            return len(self._records)

    def describe(self, identity: str) -> str:
        """Log label for an identity, falling back to the bare identity."""
        with self._lock:
            record = self._records.get(identity)
            return record.label if record is not None else identity

    # =========================================================================
    # Mutation
    # =========================================================================

    def set_role(self, identity: str, role: ClientRole) -> bool:
        """
        Set the declared role.

        Returns:
            False if the record was removed concurrently (no-op).
        """
        with self._lock:
            record = self._records.get(identity)
            if record is None:
                return False
            record.role = role
            return True

    def increment_message_count(self, identity: str) -> int | None:
        """Count one inbound message. Returns the new count, None if gone."""
        with self._lock:
            record = self._records.get(identity)
            if record is None:
                return None
            record.message_count += 1
            return record.message_count

    def mark_alive(self, identity: str) -> bool:
        """Record a liveness response."""
        return self._set_alive(identity, True)

    def mark_suspect(self, identity: str) -> bool:
        """Clear the liveness flag ahead of a probe."""
        return self._set_alive(identity, False)

    def _set_alive(self, identity: str, value: bool) -> bool:
        with self._lock:
            record = self._records.get(identity)
            if record is None:
                return False
            record.is_alive = value
            return True

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> dict[str, int | dict[str, int]]:
        """Connection counts by role and the peak connection count."""
        with self._lock:
            by_role = {role.value: 0 for role in ClientRole}
            suspects = 0
            for record in self._records.values():
                by_role[record.role.value] += 1
                if not record.is_alive:
                    suspects += 1
            return {
                "connections": len(self._records),
                "peak_connections": self._peak,
                "suspect_connections": suspects,
                "by_role": by_role,
            }
