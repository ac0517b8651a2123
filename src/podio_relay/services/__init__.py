from .event_relay import EventRelay, ForwardTarget
from .subscription_manager import (
    Subscription,
    SubscriptionFailedError,
    SubscriptionManager,
    SubscriptionManagerError,
    SubscriptionState,
    SubscriptionTimeoutError,
    SubscribeResult,
    UnsubscribeResult,
)

__all__ = [
    "EventRelay",
    "ForwardTarget",
    "Subscription",
    "SubscriptionFailedError",
    "SubscriptionManager",
    "SubscriptionManagerError",
    "SubscriptionState",
    "SubscriptionTimeoutError",
    "SubscribeResult",
    "UnsubscribeResult",
]
