"""
Subscription manager for Podio push channels.

Owns the registry of channel subscriptions. Each subscription holds its own
bus client carrying an AuthExtension for that channel. All registry access
goes through this class; check-then-insert happens under one lock so that
concurrent subscribe calls for the same channel create a single connection.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Set

from ..bayeux import AuthExtension, BusClient, MessageHandler
from ..models.schemas import InboundEvent, SubscriptionInfo
from .event_relay import EventRelay

logger = logging.getLogger(__name__)

# Builds a fresh, unconnected bus client
ClientFactory = Callable[[], BusClient]

DEFAULT_CONFIRM_TIMEOUT = 15.0


class SubscriptionState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


@dataclass
class Subscription:
    """One authenticated channel subscription and the client holding it."""
    channel: str
    client: BusClient
    expires_in: Optional[int] = None
    state: SubscriptionState = SubscriptionState.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    torn_down: bool = False

    def info(self) -> SubscriptionInfo:
        return SubscriptionInfo(
            channel=self.channel,
            state=self.state.value,
            created_at=self.created_at,
            expires_in=self.expires_in,
            client=self.client.name,
        )


@dataclass(frozen=True)
class SubscribeResult:
    status: str  # "subscribed" | "exists"
    channel: str
    expires_in: Optional[int] = None


@dataclass(frozen=True)
class UnsubscribeResult:
    status: str  # "unsubscribed" | "not_found"
    channel: str


class SubscriptionManagerError(Exception):
    """Base exception for subscription manager errors."""

    def __init__(self, channel: str, message: str):
        super().__init__(message)
        self.channel = channel


class SubscriptionTimeoutError(SubscriptionManagerError):
    """Raised when the bus does not confirm a subscription in time."""
    pass


class SubscriptionFailedError(SubscriptionManagerError):
    """Raised when the bus rejects a subscription or the client fails."""
    pass


class SubscriptionManager:
    """
    Creates, tracks and tears down channel subscriptions.

    Messages received on a subscription are wrapped in an InboundEvent and
    handed to the event relay.
    """

    def __init__(
        self,
        relay: EventRelay,
        client_factory: ClientFactory,
        confirm_timeout: float = DEFAULT_CONFIRM_TIMEOUT,
    ):
        self._relay = relay
        self._client_factory = client_factory
        self._confirm_timeout = confirm_timeout
        self._registry: Dict[str, Subscription] = {}
        self._lock = asyncio.Lock()

    async def subscribe(
        self,
        channel: str,
        signature: str,
        timestamp: int | str,
        expires_in: Optional[int] = None,
    ) -> SubscribeResult:
        """
        Subscribe to a channel unless a subscription already exists.

        The pending entry is registered before the subscribe request goes out,
        so a concurrent call for the same channel observes ``exists``.

        Raises:
            SubscriptionTimeoutError: If no confirmation arrives in time
            SubscriptionFailedError: If the bus rejects the subscription
        """
        async with self._lock:
            existing = self._registry.get(channel)
            if existing is not None:
                logger.info(f"Subscription for {channel} already {existing.state.value}")
                return SubscribeResult(status="exists", channel=channel, expires_in=existing.expires_in)

            client = self._client_factory()
            client.add_extension(AuthExtension(channel, signature, timestamp))
            subscription = Subscription(channel=channel, client=client, expires_in=expires_in)
            client.on_failure = partial(self._on_bus_failure, subscription)
            self._registry[channel] = subscription

        logger.info(f"Subscribing to {channel} via {client.name}")

        try:
            confirmation = await client.subscribe(channel, self._message_handler(subscription))
            await asyncio.wait_for(confirmation, timeout=self._confirm_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Subscription to {channel} not confirmed within {self._confirm_timeout}s")
            await self._discard(subscription)
            raise SubscriptionTimeoutError(
                channel, f"Subscription to {channel} not confirmed within {self._confirm_timeout}s"
            )
        except asyncio.CancelledError:
            await self._discard(subscription)
            raise
        except Exception as e:
            logger.error(f"Subscription to {channel} failed: {e}")
            await self._discard(subscription)
            raise SubscriptionFailedError(channel, str(e)) from e

        async with self._lock:
            if subscription.state is SubscriptionState.PENDING and self._registry.get(channel) is subscription:
                subscription.state = SubscriptionState.CONFIRMED
                logger.info(f"Subscribed to {channel}")
                return SubscribeResult(status="subscribed", channel=channel, expires_in=expires_in)

        raise SubscriptionFailedError(channel, f"Subscription to {channel} was cancelled before confirmation")

    async def unsubscribe(self, channel: str) -> UnsubscribeResult:
        """
        Drop a channel subscription.

        Teardown is best-effort: errors from the bus client are logged and
        the registry entry is removed regardless.
        """
        async with self._lock:
            subscription = self._registry.get(channel)
            if subscription is None or subscription.state is SubscriptionState.CANCELLED:
                logger.info(f"No subscription for {channel}")
                return UnsubscribeResult(status="not_found", channel=channel)
            subscription.state = SubscriptionState.CANCELLED

        await self._teardown(subscription, unsubscribe=True)

        async with self._lock:
            if self._registry.get(channel) is subscription:
                del self._registry[channel]

        logger.info(f"Unsubscribed from {channel}")
        return UnsubscribeResult(status="unsubscribed", channel=channel)

    def list_active(self) -> Set[str]:
        """Snapshot of the channels currently in the registry."""
        return set(self._registry)

    def get(self, channel: str) -> Optional[SubscriptionInfo]:
        subscription = self._registry.get(channel)
        return subscription.info() if subscription else None

    def snapshot(self) -> List[SubscriptionInfo]:
        return [s.info() for s in sorted(self._registry.values(), key=lambda s: s.channel)]

    async def shutdown(self) -> None:
        """Tear down every subscription."""
        channels = list(self._registry)
        if channels:
            logger.info(f"Closing {len(channels)} subscription(s)")
        await asyncio.gather(*(self.unsubscribe(channel) for channel in channels))

    # =========================================================================
    # Internals
    # =========================================================================

    def _message_handler(self, subscription: Subscription) -> MessageHandler:
        async def handle(channel: str, data: Any) -> None:
            if subscription.state is SubscriptionState.CANCELLED:
                logger.debug(f"Dropping message for cancelled subscription {channel}")
                return
            logger.debug(f"Message received on {channel}")
            self._relay.relay(InboundEvent.from_bus(channel, data))

        return handle

    async def _discard(self, subscription: Subscription) -> None:
        """Remove a subscription that never became live."""
        async with self._lock:
            if self._registry.get(subscription.channel) is subscription:
                del self._registry[subscription.channel]
            subscription.state = SubscriptionState.CANCELLED
        await self._teardown(subscription, unsubscribe=False)

    async def _on_bus_failure(self, subscription: Subscription, error: Exception) -> None:
        logger.error(f"Bus connection for {subscription.channel} failed: {error}")
        await self._discard(subscription)

    async def _teardown(self, subscription: Subscription, unsubscribe: bool) -> None:
        if subscription.torn_down:
            return
        subscription.torn_down = True

        client = subscription.client
        client.on_failure = None

        if unsubscribe:
            try:
                await client.unsubscribe(subscription.channel)
            except Exception as e:
                logger.warning(f"Error unsubscribing from {subscription.channel}: {e}")

        try:
            await client.disconnect()
        except Exception as e:
            logger.warning(f"Error disconnecting client for {subscription.channel}: {e}")
