"""
Request/response models and the inbound event envelope.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Inbound Event Envelope
# =============================================================================


class EventMeta(BaseModel):
    """Metadata attached to every relayed event."""
    channel: Optional[str] = Field(default=None, description="Bus channel (absent for webhook deliveries)")
    received_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the relay received the message",
    )
    source: Literal["webhook", "bus"] = Field(..., description="Ingestion path")


class InboundEvent(BaseModel):
    """A received message, normalized regardless of the path it came in on."""
    meta: EventMeta
    event: Any = Field(..., description="Original message body")

    @classmethod
    def from_webhook(cls, body: Any) -> "InboundEvent":
        return cls(meta=EventMeta(source="webhook"), event=body)

    @classmethod
    def from_bus(cls, channel: str, data: Any) -> "InboundEvent":
        return cls(meta=EventMeta(source="bus", channel=channel), event=data)

    @property
    def channel(self) -> Optional[str]:
        return self.meta.channel

    def to_payload(self) -> Dict[str, Any]:
        """JSON body sent to forward targets."""
        return self.model_dump(mode="json", exclude_none=True)


# =============================================================================
# Control API
# =============================================================================


class PushSubscription(BaseModel):
    """The ``push`` blob Podio returns for a subscribable object."""
    channel: str = Field(..., min_length=1, description="Bus channel, e.g. /task/1")
    signature: str = Field(..., min_length=1, description="Podio-issued subscribe signature")
    timestamp: int | str = Field(..., description="Podio-issued subscribe timestamp")
    expires_in: Optional[int] = Field(default=None, description="Advisory lifetime in seconds")

    @field_validator("timestamp")
    @classmethod
    def timestamp_not_empty(cls, value: int | str) -> int | str:
        if isinstance(value, str) and not value.strip():
            raise ValueError("timestamp must not be empty")
        return value


class SubscribeRequest(BaseModel):
    """Request to subscribe to a push channel."""
    push: PushSubscription


class SubscribeResponse(BaseModel):
    """Response after a subscribe request."""
    status: Literal["subscribed", "exists"]
    channel: str
    expires_in: Optional[int] = None


class SubscribeFailure(BaseModel):
    """Response when the bus did not confirm a subscription."""
    status: Literal["failed"] = "failed"
    channel: str
    detail: str


class UnsubscribeRequest(BaseModel):
    """Request to drop a push channel subscription."""
    channel: str = Field(..., min_length=1)


class UnsubscribeResponse(BaseModel):
    """Response after an unsubscribe request."""
    status: Literal["unsubscribed", "not_found"]
    channel: str


class SubscriptionInfo(BaseModel):
    """Status of one registry entry."""
    channel: str
    state: str
    created_at: datetime
    expires_in: Optional[int] = None
    client: str


class TargetInfo(BaseModel):
    """Delivery counters for one forward target."""
    url: str
    delivered: int
    failed: int
    dropped: int
    queued: int


class SubscriptionsResponse(BaseModel):
    """Detailed subscription and relay status."""
    count: int
    subscriptions: List[SubscriptionInfo]
    targets: List[TargetInfo]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service status")
    service: str
    version: str
    bus_adapter: str = Field(..., description="Active bus client type")
    active_channels: List[str] = Field(..., description="Channels with a live or pending subscription")
    forward_targets: int = Field(..., description="Number of configured forward targets")
