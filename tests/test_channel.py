"""
Tests for the WebSocket channel adapter and its liveness probe.

Tests verify:
- probe() completes only when the pong arrives
- A peer whose pong never arrives is evicted on the next heartbeat cycle
- Without the ping extension the probe reports the transport state
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from starlette.websockets import WebSocketState

from relay_gateway.components.connection.channel import WebSocketChannel
from relay_gateway.components.connection.heartbeat import HeartbeatMonitor
from relay_gateway.components.core.constants import REASON_HEARTBEAT_TIMEOUT, WSCloseCode


class FakeWebSocket:
    """Just enough of Starlette's WebSocket for WebSocketChannel."""

    def __init__(self, ping=None):
        extensions = {"websocket.http.response": {}}
        if ping is not None:
            extensions["relay.ping"] = {"ping": ping}
        self.scope = {"type": "websocket", "extensions": extensions}
        self.client = None
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.send_text = AsyncMock()
        self.close = AsyncMock()


def ping_answered_by(pong: asyncio.Future) -> AsyncMock:
    """ping() coroutine returning ``pong`` as the pong waiter."""
    return AsyncMock(return_value=pong)


class TestProbe:
    @pytest.mark.asyncio
    async def test_probe_waits_for_pong(self):
        pong = asyncio.get_running_loop().create_future()
        ping = ping_answered_by(pong)
        channel = WebSocketChannel(FakeWebSocket(ping=ping))

        task = asyncio.create_task(channel.probe())
        await asyncio.sleep(0.01)
        assert not task.done()

        pong.set_result(0.002)

        assert await task is True
        ping.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_probe_on_closed_connection_raises(self):
        ping = AsyncMock(side_effect=ConnectionError("closed"))
        channel = WebSocketChannel(FakeWebSocket(ping=ping))

        with pytest.raises(ConnectionError):
            await channel.probe()

    @pytest.mark.asyncio
    async def test_probe_without_extension_reports_state(self):
        websocket = FakeWebSocket()
        channel = WebSocketChannel(websocket)

        assert await channel.probe() is True

        websocket.client_state = WebSocketState.DISCONNECTED
        assert await channel.probe() is False


class TestHeartbeatOverWebSocket:
    """HeartbeatMonitor driving real probes through WebSocketChannel."""

    @pytest.mark.asyncio
    async def test_silent_peer_evicted_after_one_missed_cycle(self, registry):
        silent_ws = FakeWebSocket(ping=ping_answered_by(asyncio.get_running_loop().create_future()))
        answered = asyncio.get_running_loop().create_future()
        answered.set_result(0.001)
        healthy_ws = FakeWebSocket(ping=ping_answered_by(answered))
        silent = registry.register(WebSocketChannel(silent_ws), "10.0.0.1:1")
        healthy = registry.register(WebSocketChannel(healthy_ws), "10.0.0.2:1")
        disconnect = AsyncMock()
        monitor = HeartbeatMonitor(registry, disconnect_callback=disconnect, interval=3600)

        await monitor.run_cycle()
        await asyncio.sleep(0.01)
        assert registry.lookup(healthy).is_alive is True
        assert registry.lookup(silent).is_alive is False

        result = await monitor.run_cycle()

        assert result.evicted == [silent]
        disconnect.assert_awaited_once_with(
            silent, WSCloseCode.GOING_AWAY, REASON_HEARTBEAT_TIMEOUT
        )
        silent_ws.close.assert_awaited_once_with(
            code=WSCloseCode.GOING_AWAY, reason=REASON_HEARTBEAT_TIMEOUT
        )
        healthy_ws.close.assert_not_awaited()
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_peer_deregistered_before_close_completes(self, registry):
        silent_ws = FakeWebSocket(ping=ping_answered_by(asyncio.get_running_loop().create_future()))
        closing = asyncio.Event()

        async def stuck_close(code, reason):
            closing.set()
            await asyncio.Event().wait()

        silent_ws.close = AsyncMock(side_effect=stuck_close)
        silent = registry.register(WebSocketChannel(silent_ws), "10.0.0.1:1")
        monitor = HeartbeatMonitor(
            registry, disconnect_callback=AsyncMock(side_effect=lambda i, c, r: registry.remove(i)),
            interval=3600,
        )
        await monitor.run_cycle()

        cycle = asyncio.create_task(monitor.run_cycle())
        await closing.wait()

        assert registry.lookup(silent) is None
        cycle.cancel()
        await asyncio.gather(cycle, return_exceptions=True)
        await monitor.stop()
