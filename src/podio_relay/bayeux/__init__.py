"""
Bayeux bus clients

This package provides the client implementations used to hold Podio push
subscriptions (Bayeux long-polling over HTTP, and an in-memory bus for
development), plus the factory that picks one from configuration.
"""
from typing import Optional

import httpx

from .auth import AuthExtension, is_subscribe_for
from .base import (
    BusClient,
    BusClientError,
    Extension,
    HandshakeError,
    HandshakeRejectedError,
    MessageHandler,
    SubscriptionError,
)
from .client import BayeuxClient
from .memory_client import MemoryBroker, MemoryBusClient


def create_bus_client(
    endpoint_url: str,
    timeout_seconds: float,
    retry_seconds: float,
    adapter: str = "bayeux",
    broker: Optional[MemoryBroker] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> BusClient:
    """
    Factory function to create a bus client based on configuration.

    Args:
        endpoint_url: Bayeux endpoint the client is bound to
        timeout_seconds: Handshake/control request timeout
        retry_seconds: Reconnect delay after transient connection loss
        adapter: "bayeux" or "memory"
        broker: Shared broker for the memory adapter
        http_client: Optional shared httpx client for the bayeux adapter
    """
    adapter_type = adapter.lower()

    if adapter_type == "bayeux":
        return BayeuxClient(
            url=endpoint_url,
            timeout_seconds=timeout_seconds,
            retry_seconds=retry_seconds,
            http_client=http_client,
        )
    elif adapter_type == "memory":
        if broker is None:
            raise ValueError("The memory adapter requires a MemoryBroker")
        return broker.create_client()
    else:
        raise ValueError(f"Unknown bus adapter: {adapter}")


__all__ = [
    "AuthExtension",
    "BayeuxClient",
    "BusClient",
    "BusClientError",
    "Extension",
    "HandshakeError",
    "HandshakeRejectedError",
    "MemoryBroker",
    "MemoryBusClient",
    "MessageHandler",
    "SubscriptionError",
    "create_bus_client",
    "is_subscribe_for",
]
