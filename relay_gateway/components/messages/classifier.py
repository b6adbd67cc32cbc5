"""
Inbound message classification.

Clients send either a bare token ("red", "#FF0000") or a JSON object such as
``{"color": "#FF0000", "clientType": "unity"}``. classify_message() turns a
raw payload into a ClassifiedMessage; it never raises.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from relay_gateway.components.core.constants import ClientRole

logger = logging.getLogger(__name__)

# Token fields in order of preference
TOKEN_FIELDS: tuple[str, ...] = ("color", "message")
ROLE_FIELD = "clientType"


class MessageKind(str, Enum):
    """How the payload was framed."""

    STRUCTURED = "structured"  # JSON object
    PLAIN = "plain"  # Opaque token


@dataclass(frozen=True)
class ClassifiedMessage:
    """
    Result of classifying one inbound payload.

    Attributes:
        kind: STRUCTURED for JSON objects, PLAIN otherwise.
        token: Text to forward verbatim to the other clients.
        declared_role: Role declared through ``clientType``, if any.
        token_field: Field the token came from (None when it is the raw text).
    """

    kind: MessageKind
    token: str
    declared_role: ClientRole | None = None
    token_field: str | None = None

    @property
    def is_structured(self) -> bool:
        return self.kind is MessageKind.STRUCTURED


def decode_payload(payload: bytes | str) -> str:
    """Decode a payload as UTF-8, replacing undecodable bytes."""
    if isinstance(payload, str):
        return payload
    return bytes(payload).decode("utf-8", errors="replace")


def _extract_token(document: dict[str, Any]) -> tuple[str | None, str | None]:
    for name in TOKEN_FIELDS:
        value = document.get(name)
        if isinstance(value, str) and value:
            return value, name
    return None, None


def classify_message(payload: bytes | str) -> ClassifiedMessage:
    """
    Classify a raw payload.

    A JSON object is STRUCTURED: the token is the ``color`` field, else the
    ``message`` field, else the raw text; ``clientType`` declares the role.
    Anything else (parse failure, or JSON that is not an object) is PLAIN and
    the whole text is the token.

    Args:
        payload: Raw frame as received (text or bytes).

    Returns:
        ClassifiedMessage for the payload.
    """
    text = decode_payload(payload)

    try:
        document = json.loads(text)
    except (ValueError, RecursionError):
        return ClassifiedMessage(kind=MessageKind.PLAIN, token=text)

    if not isinstance(document, dict):
        return ClassifiedMessage(kind=MessageKind.PLAIN, token=text)

    token, token_field = _extract_token(document)
    raw_role = document.get(ROLE_FIELD)
    declared_role = ClientRole.parse(raw_role)
    if raw_role and declared_role is None:
        logger.debug("Ignoring unrecognized clientType", client_type=str(raw_role)[:32])

    return ClassifiedMessage(
        kind=MessageKind.STRUCTURED,
        token=token if token is not None else text,
        declared_role=declared_role,
        token_field=token_field,
    )
