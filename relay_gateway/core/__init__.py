"""
Relay Gateway Core Module.

Components composed by ConnectionManager:
- broadcaster.py: Fan-out to all-but-sender
- lifecycle.py: State machine, disconnect path, shutdown
- stats.py: Health and status aggregation
"""

from relay_gateway.core.broadcaster import RelayBroadcaster
from relay_gateway.core.lifecycle import LifecycleController
from relay_gateway.core.stats import ConnectionStats

__all__ = [
    "RelayBroadcaster",
    "LifecycleController",
    "ConnectionStats",
]
