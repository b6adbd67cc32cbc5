"""
End-to-end tests for the relay WebSocket endpoint.

Two clients exchange a message first so that both are known to be
registered before the behavior under test.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from relay_gateway.components.core.constants import WSCloseCode
from relay_gateway.components.endpoints.mixins import MessageValidationMixin
from relay_gateway.connection_manager import ConnectionManager
from relay_gateway.main import create_app


def pair_up(web, unity):
    """Exchange one message so both connections are registered."""
    unity.send_text('{"clientType": "unity", "message": "ready"}')
    assert web.receive_text() == "ready"


class TestRelay:
    def test_plain_token_relayed(self, client):
        with client.websocket_connect("/") as web, client.websocket_connect("/") as unity:
            pair_up(web, unity)

            web.send_text("red")

            assert unity.receive_text() == "red"

    def test_color_field_extracted(self, client):
        with client.websocket_connect("/") as web, client.websocket_connect("/") as unity:
            pair_up(web, unity)

            web.send_text('{"color": "#00FF00", "clientType": "web"}')

            assert unity.receive_text() == "#00FF00"

    def test_binary_frame_relayed_as_text(self, client):
        with client.websocket_connect("/") as web, client.websocket_connect("/") as unity:
            pair_up(web, unity)

            web.send_bytes(b"blue")

            assert unity.receive_text() == "blue"

    def test_roles_recorded(self, client, app_manager):
        with client.websocket_connect("/") as web, client.websocket_connect("/") as unity:
            pair_up(web, unity)

            web.send_text('{"clientType": "web", "color": "red"}')
            assert unity.receive_text() == "red"

            by_role = app_manager.registry.get_stats()["by_role"]
            assert by_role["unity"] == 1
            assert by_role["web"] == 1

    def test_departure_notice(self, client):
        with client.websocket_connect("/") as web:
            with client.websocket_connect("/") as unity:
                pair_up(web, unity)

            notice = json.loads(web.receive_text())

        assert notice["type"] == "system"
        assert notice["message"].startswith("Client client_")
        assert notice["message"].endswith(" left")


class TestLimits:
    def test_oversized_message_closes_with_1009(self, client):
        with client.websocket_connect("/") as ws:
            ws.send_text("x" * (64 * 1024 + 1))

            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()

        assert exc_info.value.code == WSCloseCode.MESSAGE_TOO_BIG

    def test_refused_when_not_running(self):
        # No lifespan: the server never entered RUNNING
        app = create_app(ConnectionManager(heartbeat_interval=3600))
        client = TestClient(app)

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/"):
                pass

        assert exc_info.value.code == WSCloseCode.GOING_AWAY


class TestShutdownNotice:
    def test_clients_notified_on_lifespan_exit(self, app_manager):
        app = create_app(app_manager)

        with TestClient(app) as client:
            with client.websocket_connect("/") as web, client.websocket_connect("/") as unity:
                pair_up(web, unity)
                client.portal.call(app_manager.lifecycle.shutdown, "test")

                notice = json.loads(unity.receive_text())
                assert notice["message"] == "Server is shutting down"

                with pytest.raises(WebSocketDisconnect) as exc_info:
                    unity.receive_text()
                assert exc_info.value.code == WSCloseCode.GOING_AWAY

        assert app_manager.lifecycle.exit_code == 0


class SizeCheckedEndpoint(MessageValidationMixin):
    def __init__(self, max_message_size):
        self.websocket = MagicMock()
        self.websocket.close = AsyncMock()
        self.endpoint_name = "/"
        self.identity = "client_1"
        self.max_message_size = max_message_size


class TestMessageSize:
    """Limit applies to wire bytes, not characters."""

    @pytest.mark.asyncio
    async def test_multibyte_text_measured_in_bytes(self):
        endpoint = SizeCheckedEndpoint(max_message_size=10)

        # 6 characters, 12 bytes in UTF-8
        assert await endpoint.validate_message_size("\u00e9" * 6) is False

        endpoint.websocket.close.assert_awaited_once_with(
            code=WSCloseCode.MESSAGE_TOO_BIG, reason="Message too large"
        )

    @pytest.mark.asyncio
    async def test_text_at_limit_accepted(self):
        endpoint = SizeCheckedEndpoint(max_message_size=10)

        assert await endpoint.validate_message_size("a" * 10) is True
        endpoint.websocket.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_binary_frame_over_limit(self):
        endpoint = SizeCheckedEndpoint(max_message_size=10)

        assert await endpoint.validate_message_size(b"x" * 11) is False
