"""
Relay Gateway Constants.

Close codes, client roles, message envelope types and operational defaults.
Runtime values configurable through relay_shared.config.settings take
precedence over the defaults documented here.
"""

from enum import Enum, IntEnum
from typing import Final

__all__ = [
    "WSCloseCode",
    "ClientRole",
    "LifecycleState",
    "RelayConstants",
    "MSG_TYPE_SYSTEM",
    "MSG_TYPE_ERROR",
    "NOTICE_SHUTDOWN",
    "NOTICE_CLIENT_LEFT",
    "EXIT_SUCCESS",
    "EXIT_FAILURE",
]


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the relay.

    Standard codes (1000-1999) from RFC 6455.
    """

    NORMAL = 1000  # Normal closure
    GOING_AWAY = 1001  # Server shutting down, heartbeat timeout
    PROTOCOL_ERROR = 1002  # Protocol error
    UNSUPPORTED_DATA = 1003  # Received data type not supported
    NO_STATUS = 1005  # Peer closed without a status code
    ABNORMAL = 1006  # Transport dropped without a close frame
    MESSAGE_TOO_BIG = 1009  # Message too large to process
    SERVER_ERROR = 1011  # Unexpected server error on this connection


class ClientRole(str, Enum):
    """
    Declared client category.

    Used for logging and diagnostics only, it never changes routing.
    """

    UNKNOWN = "unknown"
    WEB = "web"
    UNITY = "unity"

    @classmethod
    def parse(cls, value: object) -> "ClientRole | None":
        """Map a declared ``clientType`` to a role, None when unrecognized."""
        if not isinstance(value, str):
            return None
        try:
            role = cls(value.strip().lower())
        except ValueError:
            return None
        return None if role is cls.UNKNOWN else role


class LifecycleState(str, Enum):
    """Server lifecycle: STARTING -> RUNNING -> STOPPING -> STOPPED."""

    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class RelayConstants:
    """
    Relay operational constants.

    Heartbeat period, grace period and message size limits live in settings;
    these are internal implementation details.
    """

    # IDENTITY_PREFIX: identities are "client_1", "client_2", ...
    IDENTITY_PREFIX: Final[str] = "client_"

    # WS_ACCEPT_TIMEOUT: 5 seconds
    # The WebSocket handshake should complete within TCP timeouts; this
    # rejects stuck handshakes without holding a registry slot.
    WS_ACCEPT_TIMEOUT: Final[float] = 5.0

    # CLOSE_TIMEOUT: 2 seconds per connection
    # A close frame is a single send; a peer that cannot take it within this
    # window is treated as gone.
    CLOSE_TIMEOUT: Final[float] = 2.0

    # LOG_PAYLOAD_MAX_LENGTH: characters of user payload included in logs
    LOG_PAYLOAD_MAX_LENGTH: Final[int] = 100

    # PING_EXTENSION: ASGI scope extension carrying the server's ping callable
    # (installed by relay_gateway.server.RelayWebSocketProtocol)
    PING_EXTENSION: Final[str] = "relay.ping"


# =============================================================================
# Message envelopes
# =============================================================================

MSG_TYPE_SYSTEM: Final[str] = "system"
MSG_TYPE_ERROR: Final[str] = "error"

NOTICE_SHUTDOWN: Final[str] = "Server is shutting down"
NOTICE_CLIENT_LEFT: Final[str] = "Client {identity} left"

REASON_SHUTDOWN: Final[str] = "Server shutdown"
REASON_HEARTBEAT_TIMEOUT: Final[str] = "Heartbeat timeout"
REASON_MESSAGE_TOO_BIG: Final[str] = "Message too large"
REASON_SERVER_ERROR: Final[str] = "Internal error"
REASON_NOT_ACCEPTING: Final[str] = "Server is shutting down"

# =============================================================================
# Process exit status
# =============================================================================

EXIT_SUCCESS: Final[int] = 0
EXIT_FAILURE: Final[int] = 1
