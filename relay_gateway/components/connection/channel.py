"""
Transport channel for relay connections.

The registry, broadcaster and heartbeat monitor only talk to connections
through the Channel protocol; WebSocketChannel adapts a Starlette WebSocket
to it.
"""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

from starlette.websockets import WebSocketState

from relay_gateway.components.core.constants import RelayConstants

if TYPE_CHECKING:
    from fastapi import WebSocket


class Channel(Protocol):
    """Full-duplex, message-oriented transport handle for one client."""

    @property
    def is_open(self) -> bool:
        """Whether messages can currently be sent on this channel."""
        ...

    async def send_text(self, text: str) -> None:
        """Send one text frame."""
        ...

    async def probe(self) -> bool:
        """Send a liveness probe; True once the peer has answered."""
        ...

    async def close(self, code: int, reason: str = "") -> None:
        """Close the channel with a status code and reason."""
        ...


def is_ws_connected(ws: "WebSocket") -> bool:
    """
    Check if WebSocket is in connected state before sending.

    Starlette WebSockets have limited state visibility:
    - CONNECTING: Initial state (not observable here)
    - CONNECTED: Active connection
    - DISCONNECTED: Closed connection

    Transitional states are not exposed, so connections may appear
    connected briefly after disconnect initiated.
    """
    return (
        ws.client_state == WebSocketState.CONNECTED
        and ws.application_state == WebSocketState.CONNECTED
    )


class WebSocketChannel:
    """
    Channel backed by a Starlette/FastAPI WebSocket.

    ASGI itself gives applications no access to control frames. When served
    by RelayServer the scope carries the PING_EXTENSION, whose ``ping``
    callable sends a protocol-level ping and returns the pong waiter, so
    probe() completes only once the peer has answered. Without the
    extension (other ASGI servers, TestClient) the probe falls back to the
    transport state.
    """

    def __init__(self, websocket: "WebSocket") -> None:
        self._websocket = websocket

    @property
    def websocket(self) -> "WebSocket":
        return self._websocket

    @property
    def is_open(self) -> bool:
        return is_ws_connected(self._websocket)

    async def send_text(self, text: str) -> None:
        await self._websocket.send_text(text)

    async def probe(self) -> bool:
        """
        Ping the peer and wait for the pong.

        Raises whatever the transport raises when the connection is already
        closed; the heartbeat monitor treats that as no answer.
        """
        extension = self._ping_extension()
        if extension is None:
            return self.is_open
        pong_waiter = await extension["ping"]()
        await pong_waiter
        return True

    async def close(self, code: int, reason: str = "") -> None:
        if self._websocket.application_state == WebSocketState.DISCONNECTED:
            return
        await self._websocket.close(code=code, reason=reason)

    def _ping_extension(self) -> dict | None:
        extensions = self._websocket.scope.get("extensions") or {}
        return extensions.get(RelayConstants.PING_EXTENSION)

    def __repr__(self) -> str:
        client = self._websocket.client
        peer = f"{client.host}:{client.port}" if client else "unknown"
        return f"WebSocketChannel(peer={peer}, open={self.is_open})"
