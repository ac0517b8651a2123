import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ...core.dependencies import get_event_relay, get_subscription_manager
from ...models.schemas import (
    SubscribeFailure,
    SubscribeRequest,
    SubscribeResponse,
    SubscriptionsResponse,
    UnsubscribeRequest,
    UnsubscribeResponse,
)
from ...services.event_relay import EventRelay
from ...services.subscription_manager import (
    SubscriptionFailedError,
    SubscriptionManager,
    SubscriptionManagerError,
    SubscriptionTimeoutError,
)

router = APIRouter(tags=["Subscriptions"])
logger = logging.getLogger(__name__)


def _failure(status_code: int, error: SubscriptionManagerError) -> JSONResponse:
    content = SubscribeFailure(channel=error.channel, detail=str(error)).model_dump()
    return JSONResponse(status_code=status_code, content=content)


@router.post(
    "/subscribe",
    response_model=SubscribeResponse,
    responses={502: {"model": SubscribeFailure}, 504: {"model": SubscribeFailure}},
)
async def subscribe(
    request: SubscribeRequest,
    manager: SubscriptionManager = Depends(get_subscription_manager),
):
    """
    Subscribe to a Podio push channel.

    Accepts the ``push`` blob Podio returns for an object. Subscribing to a
    channel that is already pending or live reports ``exists``.
    """
    push = request.push

    try:
        result = await manager.subscribe(
            channel=push.channel,
            signature=push.signature,
            timestamp=push.timestamp,
            expires_in=push.expires_in,
        )
    except SubscriptionTimeoutError as e:
        return _failure(504, e)
    except SubscriptionFailedError as e:
        return _failure(502, e)

    return SubscribeResponse(status=result.status, channel=result.channel, expires_in=result.expires_in)


@router.post("/unsubscribe", response_model=UnsubscribeResponse)
async def unsubscribe(
    request: UnsubscribeRequest,
    manager: SubscriptionManager = Depends(get_subscription_manager),
) -> UnsubscribeResponse:
    """Drop a channel subscription. Unknown channels report ``not_found``."""
    result = await manager.unsubscribe(request.channel)
    return UnsubscribeResponse(status=result.status, channel=result.channel)


@router.get("/subscriptions", response_model=SubscriptionsResponse)
async def list_subscriptions(
    manager: SubscriptionManager = Depends(get_subscription_manager),
    relay: EventRelay = Depends(get_event_relay),
) -> SubscriptionsResponse:
    """
    List every subscription with its state, plus forward target counters.

    Note: This endpoint should be protected in production.
    """
    subscriptions = manager.snapshot()
    return SubscriptionsResponse(
        count=len(subscriptions),
        subscriptions=subscriptions,
        targets=relay.stats(),
    )
