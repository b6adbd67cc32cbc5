"""
Color Relay Gateway.

WebSocket relay that fans color commands out from web controllers to the
Unity client (and to every other connected client).
"""

# Installs StructuredLogger before any gateway module creates its logger
import relay_shared.config.logging  # noqa: F401
