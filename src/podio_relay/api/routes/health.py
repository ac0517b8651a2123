from fastapi import APIRouter, Depends

from ... import __version__
from ...core.config import Settings
from ...core.dependencies import get_event_relay, get_settings, get_subscription_manager
from ...models.schemas import HealthResponse
from ...services.event_relay import EventRelay
from ...services.subscription_manager import SubscriptionManager

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    manager: SubscriptionManager = Depends(get_subscription_manager),
    relay: EventRelay = Depends(get_event_relay),
    config: Settings = Depends(get_settings),
) -> HealthResponse:
    """
    Health check endpoint.

    Returns service status and the channels with an active subscription.
    """
    return HealthResponse(
        status="healthy",
        service=config.service_name,
        version=__version__,
        bus_adapter=config.bus_adapter,
        active_channels=sorted(manager.list_active()),
        forward_targets=len(relay.targets),
    )
