"""
WebSocket Endpoint Mixins.

Each mixin handles a single concern for relay endpoints.

Mixins:
    MessageValidationMixin: Message size checks
    ConnectionLifecycleMixin: Connect / reject / fault logging
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from fastapi import WebSocket

from relay_shared.config.logging import audit_ws_connection
from relay_gateway.components.core.constants import REASON_MESSAGE_TOO_BIG, WSCloseCode

if TYPE_CHECKING:
    from relay_gateway.components.core.context import HandshakeInfo

logger = logging.getLogger(__name__)


class HasWebSocket(Protocol):
    """Protocol for classes with websocket attribute."""

    websocket: WebSocket
    endpoint_name: str
    identity: str | None
    handshake: "HandshakeInfo | None"
    max_message_size: int


# =============================================================================
# MessageValidationMixin
# =============================================================================


class MessageValidationMixin:
    """
    Mixin for inbound message validation.

    Requires:
        - self.websocket: WebSocket
        - self.identity: str | None
        - self.max_message_size: int
    """

    async def validate_message_size(self: HasWebSocket, data: bytes | str) -> bool:
        """
        Validate message size against configured limit.

        Text frames are measured in UTF-8 bytes, as they travel on the wire.

        Returns:
            True if valid, False if too large (connection closed).
        """
        size = len(data.encode("utf-8")) if isinstance(data, str) else len(data)
        if size > self.max_message_size:
            logger.warning(
                "Message size exceeded limit",
                endpoint=self.endpoint_name,
                identity=self.identity or "unknown",
                size=size,
                max_size=self.max_message_size,
            )
            await self.websocket.close(
                code=WSCloseCode.MESSAGE_TOO_BIG,
                reason=REASON_MESSAGE_TOO_BIG,
            )
            return False
        return True


# =============================================================================
# ConnectionLifecycleMixin
# =============================================================================


class ConnectionLifecycleMixin:
    """Mixin for connection lifecycle logging."""

    def log_connect_rejected(self: HasWebSocket, reason: str) -> None:
        logger.warning(
            "Connection rejected",
            endpoint=self.endpoint_name,
            reason=reason,
        )
        audit_ws_connection(
            "REJECTED",
            remote_address=self.handshake.remote_address if self.handshake else None,
            origin=self.handshake.origin if self.handshake else None,
            reason=reason,
        )

    def log_connection_fault(self: HasWebSocket, error: BaseException) -> None:
        logger.error(
            "WebSocket error",
            endpoint=self.endpoint_name,
            identity=self.identity or "unknown",
            error_type=type(error).__name__,
            error=str(error),
            exc_info=(type(error), error, error.__traceback__),
        )
