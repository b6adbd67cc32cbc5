"""
Tests for inbound message classification and outbound envelopes.
"""

import json

import pytest

from relay_gateway.components.core.constants import ClientRole
from relay_gateway.components.messages.classifier import MessageKind, classify_message
from relay_gateway.components.messages.envelopes import error_notice, system_notice


class TestPlainMessages:
    """Anything that is not a JSON object is forwarded as-is."""

    @pytest.mark.parametrize("payload", ["red", "#FF0000", "", "{not json"])
    def test_plain_text_is_its_own_token(self, payload):
        message = classify_message(payload)

        assert message.kind is MessageKind.PLAIN
        assert message.token == payload
        assert message.declared_role is None

    @pytest.mark.parametrize("payload", ['"blue"', "[1, 2]", "42", "null", "true"])
    def test_non_object_json_is_plain(self, payload):
        message = classify_message(payload)

        assert message.kind is MessageKind.PLAIN
        assert message.token == payload

    def test_bytes_payload_decoded(self):
        assert classify_message(b"green").token == "green"

    def test_invalid_utf8_replaced(self):
        message = classify_message(b"re\xffd")

        assert message.kind is MessageKind.PLAIN
        assert message.token == "re\ufffdd"

    def test_deeply_nested_json_never_raises(self):
        payload = "[" * 100_000

        message = classify_message(payload)

        assert message.kind is MessageKind.PLAIN
        assert message.token == payload


class TestStructuredMessages:
    """JSON objects: token from color, then message, then raw text."""

    def test_color_and_role(self):
        message = classify_message('{"color": "#00FF00", "clientType": "unity"}')

        assert message.kind is MessageKind.STRUCTURED
        assert message.is_structured
        assert message.token == "#00FF00"
        assert message.token_field == "color"
        assert message.declared_role is ClientRole.UNITY

    def test_color_preferred_over_message(self):
        message = classify_message('{"message": "hello", "color": "blue"}')

        assert message.token == "blue"

    def test_message_field_fallback(self):
        message = classify_message('{"message": "hello"}')

        assert message.token == "hello"
        assert message.token_field == "message"

    def test_empty_color_falls_through(self):
        assert classify_message('{"color": "", "message": "hi"}').token == "hi"

    def test_non_string_color_ignored(self):
        payload = '{"color": 255}'

        assert classify_message(payload).token == payload

    def test_role_declaration_only_forwards_raw_text(self):
        payload = '{"clientType": "web"}'

        message = classify_message(payload)

        assert message.kind is MessageKind.STRUCTURED
        assert message.token == payload
        assert message.token_field is None
        assert message.declared_role is ClientRole.WEB

    @pytest.mark.parametrize("raw,expected", [
        ("Unity", ClientRole.UNITY),
        (" WEB ", ClientRole.WEB),
        ("unknown", None),
        ("android", None),
        (7, None),
    ])
    def test_role_parsing(self, raw, expected):
        payload = json.dumps({"color": "red", "clientType": raw})

        assert classify_message(payload).declared_role is expected


class TestEnvelopes:
    def test_system_notice(self):
        notice = json.loads(system_notice("Client client_1 left"))

        assert notice["type"] == "system"
        assert notice["message"] == "Client client_1 left"
        assert notice["timestamp"].endswith("Z")

    def test_system_notice_explicit_timestamp(self):
        text = system_notice("hi", timestamp="2024-01-01T00:00:00.000Z")

        assert text == '{"type":"system","message":"hi","timestamp":"2024-01-01T00:00:00.000Z"}'

    def test_error_notice(self):
        notice = json.loads(error_notice("Failed to process message", "boom"))

        assert notice == {
            "type": "error",
            "message": "Failed to process message",
            "error": "boom",
        }
