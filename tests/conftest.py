"""
Pytest configuration and fixtures for relay tests.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from relay_gateway.components.connection.registry import ConnectionRegistry
from relay_gateway.components.core.context import HandshakeInfo
from relay_gateway.connection_manager import ConnectionManager
from relay_gateway.core.broadcaster import RelayBroadcaster
from relay_gateway.main import create_app


class FakeChannel:
    """
    In-memory Channel: records sends and closes.

    Args:
        answers_probe: Value returned by probe().
        fail_send: Raise ConnectionError from send_text().
        hang_on_close: close() never completes.
    """

    def __init__(
        self,
        answers_probe: bool = True,
        fail_send: bool = False,
        hang_on_close: bool = False,
    ):
        self.answers_probe = answers_probe
        self.fail_send = fail_send
        self.hang_on_close = hang_on_close
        self.sent: list[str] = []
        self.closed: tuple[int, str] | None = None
        self.probes = 0
        self.open = True

    @property
    def is_open(self) -> bool:
        return self.open

    async def send_text(self, text: str) -> None:
        if self.fail_send:
            raise ConnectionError("broken pipe")
        self.sent.append(text)

    async def probe(self) -> bool:
        self.probes += 1
        return self.answers_probe

    async def close(self, code: int, reason: str = "") -> None:
        if self.hang_on_close:
            await asyncio.Event().wait()
        self.closed = (code, reason)
        self.open = False


@pytest.fixture
def registry():
    """Fresh connection registry."""
    return ConnectionRegistry()


@pytest.fixture
def broadcaster(registry):
    return RelayBroadcaster(registry, batch_size=50)


@pytest.fixture
def handshake():
    return HandshakeInfo(remote_address="127.0.0.1:50000", origin="http://localhost:3000")


@pytest.fixture
def manager():
    """
    Connection manager in RUNNING state without a heartbeat timer.

    The long interval keeps the timer out of the way; tests drive cycles
    with heartbeat.run_cycle().
    """
    manager = ConnectionManager(heartbeat_interval=3600, grace_period=1.0)
    manager.lifecycle.mark_running("127.0.0.1", 8080)
    return manager


@pytest.fixture
def app_manager():
    return ConnectionManager(heartbeat_interval=3600, grace_period=1.0)


@pytest.fixture
def client(app_manager):
    """Test client running the application lifespan."""
    app = create_app(app_manager)
    with TestClient(app) as test_client:
        yield test_client
