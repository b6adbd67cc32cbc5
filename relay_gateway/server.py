"""
Process entry for the relay.

Runs the FastAPI application under uvicorn with signal handling routed
through the LifecycleController, so connected clients receive the shutdown
notice and a 1001 close before the listener goes away.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from types import FrameType
from typing import Awaitable, Callable

import uvicorn
from uvicorn.protocols.websockets.websockets_impl import WebSocketProtocol

from relay_shared.config.logging import setup_logging
from relay_shared.config.settings import settings
from relay_gateway.components.core.constants import (
    EXIT_FAILURE,
    LifecycleState,
    RelayConstants,
)
from relay_gateway.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)


def install_ping_extension(scope: dict, ping: Callable[[], Awaitable]) -> None:
    """Expose a protocol-level ping callable to the application via the scope."""
    extensions = scope.setdefault("extensions", {})
    extensions[RelayConstants.PING_EXTENSION] = {"ping": ping}


class RelayWebSocketProtocol(WebSocketProtocol):
    """
    uvicorn's websockets protocol with ping exposed to the application.

    ``ping()`` sends a ping frame and returns the pong waiter, which lets the
    HeartbeatMonitor run the liveness probe itself.
    """

    async def run_asgi(self) -> None:
        install_ping_extension(self.scope, self.ping)
        await super().run_asgi()


class RelayServer(uvicorn.Server):
    """
    uvicorn server whose exit is driven by the relay lifecycle.

    The first SIGINT/SIGTERM starts the relay shutdown sequence; uvicorn is
    told to exit only after teardown finished or the grace timer expired.
    A second signal falls back to uvicorn's own (forced) handling.
    """

    def __init__(self, config: uvicorn.Config, manager: ConnectionManager) -> None:
        super().__init__(config)
        self.manager = manager
        self._loop: asyncio.AbstractEventLoop | None = None
        manager.lifecycle.add_listener_closer(self._close_listener)

    async def startup(self, sockets=None) -> None:
        self._loop = asyncio.get_running_loop()
        await super().startup(sockets=sockets)
        if self.started and not self.should_exit:
            self.manager.lifecycle.mark_running(self.config.host, self.config.port)

    def handle_exit(self, sig: int, frame: FrameType | None) -> None:
        lifecycle = self.manager.lifecycle
        if lifecycle.state is LifecycleState.RUNNING and self._loop is not None:
            reason = f"signal:{signal.Signals(sig).name}"
            self._loop.call_soon_threadsafe(lifecycle.begin_shutdown, reason)
            return
        super().handle_exit(sig, frame)

    def _close_listener(self, force: bool) -> None:
        self.should_exit = True
        if force:
            self.force_exit = True


def build_config(app, host: str, port: int) -> uvicorn.Config:
    """
    uvicorn configuration for the relay.

    uvicorn's own keepalive is off: the HeartbeatMonitor pings through
    RelayWebSocketProtocol and evicts after one missed cycle.
    """
    return uvicorn.Config(
        app,
        host=host,
        port=port,
        ws=RelayWebSocketProtocol,
        ws_ping_interval=None,
        ws_ping_timeout=None,
        lifespan="on",
        log_config=None,
    )


def run_server(host: str | None = None, port: int | None = None) -> int:
    """
    Serve the relay until shutdown.

    Returns:
        Process exit status reported by the lifecycle controller.
    """
    from relay_gateway.main import app, manager

    setup_logging()
    host = host or settings.host
    port = port or settings.port

    app.state.listener_managed = True
    server = RelayServer(build_config(app, host, port), manager)
    try:
        server.run()
    except Exception as e:
        logger.critical("Server crashed", error=str(e), exc_info=True)
        return EXIT_FAILURE

    exit_code = manager.lifecycle.exit_code
    return EXIT_FAILURE if exit_code is None else exit_code
