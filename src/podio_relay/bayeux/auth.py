"""
Outbound auth extension for Podio push subscriptions.

Podio hands out a signature and timestamp per channel. They must be presented
in the ``ext`` block of the /meta/subscribe message for that channel and on
no other message.
"""
from typing import Any, Dict

SUBSCRIBE_CHANNEL = "/meta/subscribe"
SIGNATURE_FIELD = "private_pub_signature"
TIMESTAMP_FIELD = "private_pub_timestamp"


def is_subscribe_for(message: Dict[str, Any], channel: str) -> bool:
    """Return True if ``message`` is the subscribe request for ``channel``."""
    return message.get("channel") == SUBSCRIBE_CHANNEL and message.get("subscription") == channel


class AuthExtension:
    """Adds the push signature to the subscribe message of one channel."""

    def __init__(self, channel: str, signature: str, timestamp: int | str):
        self.channel = channel
        self.signature = signature
        self.timestamp = str(timestamp)

    def outgoing(self, message: Dict[str, Any]) -> Dict[str, Any]:
        if not is_subscribe_for(message, self.channel):
            return message

        ext = dict(message.get("ext") or {})
        ext[SIGNATURE_FIELD] = self.signature
        ext[TIMESTAMP_FIELD] = self.timestamp
        return {**message, "ext": ext}

    __call__ = outgoing

    def __repr__(self) -> str:
        return f"AuthExtension(channel={self.channel!r})"
