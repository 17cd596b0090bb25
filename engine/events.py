"""
Inbound event model.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from conversation.context import Direction
from journey.models import Channel, TouchpointType

# Touchpoint recorded for a customer message on each channel
CHANNEL_TOUCHPOINTS: Dict[str, str] = {
    Channel.SMS.value: TouchpointType.SMS_REPLY.value,
    Channel.PHONE.value: TouchpointType.PHONE_CALL.value,
    Channel.EMAIL.value: TouchpointType.EMAIL_OPEN.value,
    Channel.WEB.value: TouchpointType.WEBSITE_VISIT.value,
    Channel.IN_PERSON.value: TouchpointType.APPOINTMENT.value,
}


@dataclass
class InboundEvent:
    """A caller-supplied interaction event."""
    lead_id: str
    message_text: str = ""
    direction: Direction = Direction.INBOUND
    channel: str = Channel.SMS.value
    timestamp: Optional[datetime] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.direction = Direction(self.direction)
        self.channel = str(getattr(self.channel, "value", self.channel))
        if self.timestamp is not None and self.timestamp.tzinfo is None:
            self.timestamp = self.timestamp.replace(tzinfo=timezone.utc)
        self.payload = dict(self.payload or {})

    @property
    def is_inbound(self) -> bool:
        return self.direction == Direction.INBOUND

    @property
    def touchpoint_type(self) -> str:
        """Explicit payload type wins over the channel mapping."""
        explicit = self.payload.get("touchpoint_type")
        if explicit:
            return str(explicit)
        return CHANNEL_TOUCHPOINTS.get(self.channel, self.channel)

    @property
    def milestone_type(self) -> Optional[str]:
        value = self.payload.get("milestone")
        return str(value) if value else None
