"""
Tests for the HTTP endpoints and the status line.
"""

import logging


class TestRoot:
    def test_root_plain_text(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.text == "WebSocket Server Running\n"
        assert response.headers["content-type"].startswith("text/plain")


class TestHealth:
    def test_health_no_connections(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["connections"] == 0
        assert data["timestamp"].endswith("Z")

    def test_health_counts_connections(self, client):
        with client.websocket_connect("/") as a, client.websocket_connect("/") as b:
            b.send_text("ready")
            assert a.receive_text() == "ready"

            data = client.get("/health").json()

        assert data["connections"] == 2

    def test_detailed_health(self, client):
        data = client.get("/health/detailed").json()

        assert data["status"] == "ok"
        assert data["service"] == "color-relay"
        assert data["state"] == "running"
        assert data["connections_by_role"] == {"unknown": 0, "web": 0, "unity": 0}
        assert "heartbeat" in data
        assert "broadcast" in data
        assert data["memory_rss_mb"] > 0


class TestStatusLine:
    def test_status_line_reports_memory(self, manager, caplog):
        with caplog.at_level(logging.INFO, logger="relay_gateway.core.stats"):
            manager.stats.log_status()

        record = next(r for r in caplog.records if r.getMessage() == "Server Status")
        assert record.extra_data["active_connections"] == 0
        assert record.extra_data["memory_rss_mb"] > 0
