"""
Base client interface for Bayeux bus connections.

Each Podio subscription owns one client. Implementations share this contract
so the subscription manager never depends on the transport in use.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional

# Type alias for message handlers: (channel, data) -> None
MessageHandler = Callable[[str, Any], Awaitable[None]]

# Outbound message interceptor: message -> message
Extension = Callable[[Dict[str, Any]], Dict[str, Any]]

# Called once when the client gives up on the connection
FailureCallback = Callable[[Exception], Awaitable[None]]


class BusClient(ABC):
    """
    Abstract base class for bus clients.

    A client is bound to one endpoint, carries at most one outbound
    extension and tracks the channels it has subscribed to.
    """

    def __init__(self) -> None:
        self._extension: Optional[Extension] = None
        self.on_failure: Optional[FailureCallback] = None

    def add_extension(self, extension: Extension) -> None:
        """
        Attach the outbound message interceptor.

        Raises:
            BusClientError: If an extension is already attached
        """
        if self._extension is not None:
            raise BusClientError(f"{self.name} already has an extension attached")
        self._extension = extension

    def _apply_extension(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """Run an outbound message through the attached extension, if any."""
        if self._extension is None:
            return message
        return self._extension(message)

    @abstractmethod
    async def subscribe(self, channel: str, handler: MessageHandler) -> "asyncio.Future[Dict[str, Any]]":
        """
        Subscribe to a channel.

        Registers ``handler`` for messages on ``channel`` and issues the
        subscribe request. The returned future resolves with the bus
        acknowledgment, or fails with SubscriptionError when the bus
        rejects the subscription or the request cannot be sent.
        """
        pass

    @abstractmethod
    async def unsubscribe(self, channel: str) -> None:
        """Unsubscribe from a channel and drop its handler."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection to the bus."""
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the client holds a live bus session."""
        pass

    @property
    def name(self) -> str:
        """Return the client name for logging."""
        return self.__class__.__name__

    async def _notify_failure(self, error: Exception) -> None:
        """Report an unrecoverable error to the owner."""
        callback, self.on_failure = self.on_failure, None
        if callback is not None:
            await callback(error)


class BusClientError(Exception):
    """Base exception for bus client errors."""
    pass


class HandshakeError(BusClientError):
    """Raised when the bus refuses or fails the handshake."""
    pass


class SubscriptionError(BusClientError):
    """Raised when a subscription could not be created."""
    pass


class HandshakeRejectedError(HandshakeError):
    """Raised when the bus answers a handshake with a refusal."""
    pass
