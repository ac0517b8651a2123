"""FastAPI dependencies for the relay services."""

from fastapi import HTTPException, Request, status

from podio_relay.core.config import Settings, settings
from podio_relay.services.event_relay import EventRelay
from podio_relay.services.subscription_manager import SubscriptionManager


def get_settings() -> Settings:
    return settings


def get_event_relay(request: Request) -> EventRelay:
    """Event relay created by the application lifespan."""
    relay = getattr(request.app.state, "event_relay", None)
    if relay is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Event relay not initialized",
        )
    return relay


def get_subscription_manager(request: Request) -> SubscriptionManager:
    """Subscription manager created by the application lifespan."""
    manager = getattr(request.app.state, "subscription_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Subscription manager not initialized",
        )
    return manager
