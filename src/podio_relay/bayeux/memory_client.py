"""
In-memory bus client for the Podio Push Relay.

This client is primarily used for:
- Local development without access to Podio's push endpoint
- Unit testing
- Demo purposes

Clients created from the same MemoryBroker share channels, so a message
published on the broker reaches every client subscribed to that channel.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from .base import BusClient, BusClientError, MessageHandler, SubscriptionError

logger = logging.getLogger(__name__)


class MemoryBroker:
    """
    Shared in-process bus.

    Args:
        confirm_delay: Seconds before subscriptions are acknowledged
        confirm: If False, subscriptions are never acknowledged
        rejected_channels: Channels whose subscriptions are rejected
    """

    def __init__(
        self,
        confirm_delay: float = 0.0,
        confirm: bool = True,
        rejected_channels: Optional[Set[str]] = None,
    ):
        self.confirm_delay = confirm_delay
        self.confirm = confirm
        self.rejected_channels: Set[str] = set(rejected_channels or ())
        self.clients: List["MemoryBusClient"] = []
        # Every message sent by any client, after extension processing
        self.sent_messages: List[Dict[str, Any]] = []

    def create_client(self) -> "MemoryBusClient":
        client = MemoryBusClient(self)
        self.clients.append(client)
        return client

    async def publish(self, channel: str, data: Any) -> int:
        """
        Deliver a message to every client subscribed to ``channel``.

        Returns:
            Number of handlers the message was delivered to
        """
        handlers = [
            client._handlers[channel]
            for client in self.clients
            if client.is_connected and channel in client._handlers
        ]
        if not handlers:
            logger.debug(f"No subscribers for channel: {channel}")
            return 0

        results = await asyncio.gather(*(h(channel, data) for h in handlers), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Error delivering message on {channel}: {result}")
        return len(handlers)

    async def fail(self, client: "MemoryBusClient", error: Optional[Exception] = None) -> None:
        """Simulate an unrecoverable bus error on one client."""
        client._connected = False
        await client._notify_failure(error or BusClientError("Simulated bus failure"))

    def messages_for(self, channel: str) -> List[Dict[str, Any]]:
        """Sent control messages whose subscription targets ``channel``."""
        return [m for m in self.sent_messages if m.get("subscription") == channel]


class MemoryBusClient(BusClient):
    """
    In-memory bus client for development and testing.

    Mirrors the Bayeux control messages the real client would send so that
    extensions see the same traffic, without any network I/O.
    """

    def __init__(self, broker: MemoryBroker):
        super().__init__()
        self._broker = broker
        self._connected = False
        self._handlers: Dict[str, MessageHandler] = {}
        self.unsubscribed: List[str] = []
        self.disconnected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _send(self, message: Dict[str, Any]) -> Dict[str, Any]:
        message = self._apply_extension(message)
        self._broker.sent_messages.append(message)
        return message

    async def subscribe(self, channel: str, handler: MessageHandler) -> "asyncio.Future[Dict[str, Any]]":
        if self.disconnected:
            raise BusClientError(f"{self.name} is closed")

        if not self._connected:
            self._send({"channel": "/meta/handshake", "version": "1.0"})
            self._connected = True

        self._handlers[channel] = handler
        message = self._send({"channel": "/meta/subscribe", "subscription": channel})

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        if channel in self._broker.rejected_channels:
            self._handlers.pop(channel, None)
            future.set_exception(SubscriptionError(f"Subscription to {channel} rejected: 403::Forbidden"))
        elif self._broker.confirm:
            asyncio.get_running_loop().call_later(
                self._broker.confirm_delay,
                _confirm,
                future,
                {"channel": "/meta/subscribe", "successful": True, "subscription": channel, "ext": message.get("ext")},
            )

        logger.info(f"Subscribed to {channel} (in-memory)")
        return future

    async def unsubscribe(self, channel: str) -> None:
        self._handlers.pop(channel, None)
        self._send({"channel": "/meta/unsubscribe", "subscription": channel})
        self.unsubscribed.append(channel)
        logger.info(f"Unsubscribed from {channel} (in-memory)")

    async def disconnect(self) -> None:
        if self._connected:
            self._send({"channel": "/meta/disconnect"})
        self._handlers.clear()
        self._connected = False
        self.disconnected = True
        if self in self._broker.clients:
            self._broker.clients.remove(self)
        logger.info("Memory bus client disconnected")


def _confirm(future: asyncio.Future, reply: Dict[str, Any]) -> None:
    if not future.done():
        future.set_result(reply)
