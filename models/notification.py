# models/notification.py
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Channel(str, Enum):
    EMAIL = "EMAIL"
    PUSH = "PUSH"
    SMS = "SMS"
    IN_APP = "IN_APP"


class EventType(str, Enum):
    """Event types with dedicated templates. Any other string is rendered generically."""
    BOOKING_CONFIRMATION = "BOOKING_CONFIRMATION"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    TRIP_REMINDER = "TRIP_REMINDER"
    PROMOTIONAL = "PROMOTIONAL"
    SYSTEM_MAINTENANCE = "SYSTEM_MAINTENANCE"
    GENERAL = "GENERAL"


BROADCAST_EVENTS = (EventType.PROMOTIONAL, EventType.SYSTEM_MAINTENANCE, EventType.GENERAL)


class Preferences(BaseModel):
    """Channel opt-outs; IN_APP cannot be turned off."""
    email: bool = True
    push: bool = True
    sms: bool = True
    marketing: bool = False

    def allows(self, channel: Channel) -> bool:
        if channel == Channel.EMAIL:
            return self.email
        if channel == Channel.PUSH:
            return self.push
        if channel == Channel.SMS:
            return self.sms
        return True


class UserContact(BaseModel):
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    devices: List[str] = []


class RenderedContent(BaseModel):
    title: str
    body: str
    subject: Optional[str] = None
    html: Optional[str] = None
    data: Dict[str, str] = {}


class SendOutcome(BaseModel):
    """What a channel sender reports for a single target."""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class ChannelOutcome(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    channel: Optional[Channel]
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None
    detail: Optional[str] = None
    recipient: Optional[str] = None


class DispatchResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    overall: bool
    per_channel: List[ChannelOutcome]

    def outcome_for(self, channel: Channel) -> Optional[ChannelOutcome]:
        for item in self.per_channel:
            if item.channel == channel:
                return item
        return None


class DispatchRequest(BaseModel):
    """A logical event to fan out. Also the RabbitMQ message body in queue mode."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str
    event_type: str
    channels: List[Channel]
    title: str
    body: str
    data: Dict[str, Any] = {}
    recipient: Optional[str] = None
    subject: Optional[str] = None


class MulticastOutcome(BaseModel):
    """Per-batch counts reported by the push provider."""
    success_count: int
    failure_count: int
    message_ids: List[str] = []


class BroadcastResult(BaseModel):
    """Per-user tally of a broadcast; a user counts as a success when their dispatch was overall successful."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_users: int
    success_count: int
    failure_count: int
