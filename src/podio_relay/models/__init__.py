from .schemas import (
    EventMeta,
    HealthResponse,
    InboundEvent,
    PushSubscription,
    SubscribeFailure,
    SubscribeRequest,
    SubscribeResponse,
    SubscriptionInfo,
    SubscriptionsResponse,
    TargetInfo,
    UnsubscribeRequest,
    UnsubscribeResponse,
)

__all__ = [
    "EventMeta",
    "HealthResponse",
    "InboundEvent",
    "PushSubscription",
    "SubscribeFailure",
    "SubscribeRequest",
    "SubscribeResponse",
    "SubscriptionInfo",
    "SubscriptionsResponse",
    "TargetInfo",
    "UnsubscribeRequest",
    "UnsubscribeResponse",
]
