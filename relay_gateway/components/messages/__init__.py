"""
Message handling: classification of inbound frames, outbound envelopes.
"""

from relay_gateway.components.messages.classifier import (
    ClassifiedMessage,
    MessageKind,
    classify_message,
    decode_payload,
)
from relay_gateway.components.messages.envelopes import error_notice, system_notice

__all__ = [
    "ClassifiedMessage",
    "MessageKind",
    "classify_message",
    "decode_payload",
    "error_notice",
    "system_notice",
]
