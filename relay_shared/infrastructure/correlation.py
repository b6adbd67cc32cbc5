"""
Connection correlation for logging.

Every WebSocket connection is served by its own asyncio task, so a context
variable set by the endpoint follows all log records emitted on behalf of
that connection.
"""

from contextvars import ContextVar, Token

# Context variable for the identity of the connection being served
connection_id_var: ContextVar[str] = ContextVar("connection_id", default="")


def get_connection_id() -> str:
    """Get the identity of the connection served by the current task."""
    return connection_id_var.get()


def bind_connection_id(identity: str) -> Token:
    """Bind a connection identity to the current task's context."""
    return connection_id_var.set(identity)


def reset_connection_id(token: Token) -> None:
    """Restore the context to its state before ``bind_connection_id``."""
    connection_id_var.reset(token)


class ConnectionIdFilter:
    """
    Logging filter that adds connection_id to log records.

    Usage:
        import logging
        handler = logging.StreamHandler()
        handler.addFilter(ConnectionIdFilter())
    """

    def filter(self, record) -> bool:
        record.connection_id = connection_id_var.get() or "-"
        return True
