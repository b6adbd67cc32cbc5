"""
Relay WebSocket Endpoint.

One RelayEndpoint serves one connection for its whole life, turning the
transport's events into three transitions on the ConnectionManager:
message, close and fault.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect

from relay_shared.config.settings import settings
from relay_shared.infrastructure.correlation import bind_connection_id, reset_connection_id
from relay_gateway.components.connection.channel import WebSocketChannel
from relay_gateway.components.core.constants import (
    REASON_MESSAGE_TOO_BIG,
    REASON_NOT_ACCEPTING,
    REASON_SERVER_ERROR,
    RelayConstants,
    WSCloseCode,
)
from relay_gateway.components.core.context import HandshakeInfo
from relay_gateway.components.endpoints.mixins import (
    ConnectionLifecycleMixin,
    MessageValidationMixin,
)

if TYPE_CHECKING:
    from relay_gateway.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)

CloseInfo = tuple[int | None, str | None]


class RelayEndpoint(MessageValidationMixin, ConnectionLifecycleMixin):
    """
    Serves a single relay connection.

    Usage:
        endpoint = RelayEndpoint(websocket, manager)
        await endpoint.run()
    """

    def __init__(
        self,
        websocket: WebSocket,
        manager: "ConnectionManager",
        endpoint_name: str = "/",
        max_message_size: int | None = None,
    ) -> None:
        self.websocket = websocket
        self.manager = manager
        self.endpoint_name = endpoint_name
        self.max_message_size = max_message_size or settings.ws_max_message_size
        self.identity: str | None = None
        self.handshake: HandshakeInfo | None = None

    async def run(self) -> None:
        """
        Handle the complete lifecycle:
        1. Refuse if the server is stopping
        2. Accept and register
        3. Message loop
        4. Disconnect path (always)
        """
        self.handshake = HandshakeInfo.from_websocket(self.websocket)
        logger.debug(
            "Connection request",
            origin=self.handshake.origin or "unknown",
            remote_address=self.handshake.remote_address,
        )

        if not self.manager.lifecycle.is_accepting:
            self.log_connect_rejected("not_accepting")
            await self.websocket.close(
                code=WSCloseCode.GOING_AWAY,
                reason=REASON_NOT_ACCEPTING,
            )
            return

        try:
            await asyncio.wait_for(
                self.websocket.accept(),
                timeout=RelayConstants.WS_ACCEPT_TIMEOUT,
            )
        except asyncio.TimeoutError:
            self.log_connect_rejected("accept_timeout")
            return

        channel = WebSocketChannel(self.websocket)
        try:
            self.identity = self.manager.connect(channel, self.handshake)
        except ConnectionError as e:
            self.log_connect_rejected(str(e))
            await channel.close(WSCloseCode.GOING_AWAY, REASON_NOT_ACCEPTING)
            return

        context_token = bind_connection_id(self.identity)
        code: int | None = None
        reason: str | None = None
        try:
            code, reason = await self._message_loop()
        except WebSocketDisconnect as e:
            code, reason = e.code, e.reason or None
        except Exception as e:
            self.log_connection_fault(e)
            code, reason = WSCloseCode.SERVER_ERROR, REASON_SERVER_ERROR
            await self._close_after_fault(channel)
        finally:
            try:
                await self.manager.disconnect(self.identity, code, reason)
            finally:
                reset_connection_id(context_token)

    async def _message_loop(self) -> CloseInfo:
        """
        Receive frames until the peer closes.

        Returns:
            Close code and reason reported by the transport.
        """
        while True:
            message = await self.websocket.receive()

            if message["type"] == "websocket.disconnect":
                return message.get("code", WSCloseCode.NO_STATUS), message.get("reason") or None

            payload = message.get("text")
            if payload is None:
                payload = message.get("bytes")
            if payload is None:
                continue

            if not await self.validate_message_size(payload):
                return WSCloseCode.MESSAGE_TOO_BIG, REASON_MESSAGE_TOO_BIG

            await self.manager.handle_message(self.identity, payload)

    async def _close_after_fault(self, channel: WebSocketChannel) -> None:
        if not channel.is_open:
            return
        try:
            await channel.close(WSCloseCode.SERVER_ERROR, REASON_SERVER_ERROR)
        except (ConnectionError, RuntimeError, OSError) as e:
            logger.debug("Failed to close faulted connection", error=str(e))
