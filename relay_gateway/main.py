"""
Color Relay Gateway main application.

Accepts WebSocket connections from browser controllers and the Unity client
and relays each color command to every other connected client.
"""

from __future__ import annotations

import asyncio
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from relay_shared.config.settings import settings
from relay_shared.config.logging import relay_logger as logger
from relay_gateway.connection_manager import ConnectionManager
from relay_gateway.components.endpoints.relay import RelayEndpoint


# =============================================================================
# Lifespan and background tasks
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Starts:
    - Heartbeat monitor for dead connection detection
    - Status reporter for periodic server statistics

    On exit runs the shutdown sequence (idempotent when a signal already
    triggered it).
    """
    manager: ConnectionManager = app.state.manager

    for problem in settings.validate_production():
        logger.warning("Configuration problem", problem=problem)

    loop = asyncio.get_running_loop()
    previous_handler = loop.get_exception_handler()
    loop.set_exception_handler(manager.lifecycle.handle_loop_exception)

    # When served by RelayServer, RUNNING is entered once the socket is bound
    manager.start(
        settings.host,
        settings.port,
        mark_running=not app.state.listener_managed,
    )
    status_task = manager.lifecycle.watch(
        asyncio.create_task(start_status_reporter(manager), name="status_reporter")
    )

    try:
        yield
    finally:
        status_task.cancel()
        try:
            await status_task
        except asyncio.CancelledError:
            pass

        exit_code = await manager.shutdown(reason="lifespan")
        logger.info("Goodbye!", exit_code=exit_code)
        loop.set_exception_handler(previous_handler)


async def start_status_reporter(
    manager: ConnectionManager,
    interval: float | None = None,
) -> None:
    """
    Periodically log server statistics.

    Runs every status_log_interval seconds (default 5 minutes).
    """
    interval = interval or settings.status_log_interval
    while True:
        try:
            await asyncio.sleep(interval)
            manager.stats.log_status()
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Error in status reporter", error=str(e))


# =============================================================================
# FastAPI Application
# =============================================================================


def create_app(manager: ConnectionManager | None = None) -> FastAPI:
    """
    Build the relay application.

    Args:
        manager: Connection manager to serve; a new one is created if omitted.
    """
    app = FastAPI(
        title="Color Relay Gateway",
        description="Relays color commands between web controllers and Unity",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.manager = manager or ConnectionManager()
    app.state.listener_managed = False

    origins = settings.origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    app.add_api_route("/", root, methods=["GET"], response_class=PlainTextResponse)
    app.add_api_route("/health", health_check, methods=["GET"])
    app.add_api_route("/health/detailed", detailed_health_check, methods=["GET"])
    app.add_api_websocket_route("/", relay_websocket)
    return app


# =============================================================================
# HTTP endpoints
# =============================================================================


def root() -> str:
    """Plain liveness text for browsers and load balancers."""
    return "WebSocket Server Running\n"


def health_check(request: Request):
    """Basic health check endpoint: connection count at request time."""
    return request.app.state.manager.stats.get_health()


def detailed_health_check(request: Request):
    """Health check with lifecycle, role and relay statistics."""
    manager: ConnectionManager = request.app.state.manager
    return {
        **manager.stats.get_health(),
        "service": "color-relay",
        "version": request.app.version,
        "environment": settings.environment,
        **manager.stats.get_stats_sync(),
    }


# =============================================================================
# WebSocket endpoint
# =============================================================================


async def relay_websocket(websocket: WebSocket):
    """WebSocket endpoint shared by web controllers and the Unity client."""
    endpoint = RelayEndpoint(websocket, websocket.app.state.manager)
    await endpoint.run()


# Global application
manager = ConnectionManager()
app = create_app(manager)


# =============================================================================
# Entry point
# =============================================================================

if __name__ == "__main__":
    from relay_gateway.server import run_server

    sys.exit(run_server())
