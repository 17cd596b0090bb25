"""
Event Orchestrator for the lead intelligence engine.

Routes an inbound event through conversation analysis and, for customer
messages, through journey tracking.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from conversation.manager import ConversationManager, IntentRecognitionResult
from journey.models import Outcome
from journey.tracker import JourneyTracker, JourneyUpdate

from .events import InboundEvent

logger = logging.getLogger(__name__)


@dataclass
class EventResult:
    """Combined result of one event."""
    lead_id: str
    analysis: Optional[IntentRecognitionResult] = None
    journey: Optional[JourneyUpdate] = None
    milestone: Optional[JourneyUpdate] = None

    @property
    def persisted(self) -> bool:
        parts = [p for p in (self.analysis, self.journey, self.milestone) if p is not None]
        return all(p.persisted for p in parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lead_id": self.lead_id,
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "journey": self.journey.insights().to_dict() if self.journey else None,
            "milestone": self.milestone.to_dict() if self.milestone else None,
            "persisted": self.persisted,
        }


def outcome_from_sentiment(sentiment: float) -> Outcome:
    if sentiment > 0:
        return Outcome.POSITIVE
    if sentiment < 0:
        return Outcome.NEGATIVE
    return Outcome.NEUTRAL


class EventOrchestrator:
    """
    Wires inbound events to the conversation manager and journey tracker.

    Every message is analyzed. Only customer (inbound) messages become
    touchpoints; agent messages only feed the conversation context.
    """

    def __init__(self, tracker: JourneyTracker, conversations: ConversationManager):
        self.tracker = tracker
        self.conversations = conversations

    async def handle_event(self, event: InboundEvent) -> EventResult:
        """
        Process one event.

        Args:
            event: The inbound event

        Returns:
            EventResult with analysis and journey update
        """
        result = EventResult(lead_id=event.lead_id)

        if event.message_text:
            result.analysis = await self.conversations.analyze_message(
                event.lead_id,
                event.message_text,
                direction=event.direction,
                timestamp=event.timestamp,
                payload=event.payload,
            )

        if event.is_inbound:
            result.journey = await self.tracker.track_touchpoint(
                event.lead_id,
                event.touchpoint_type,
                event.channel,
                payload=self._touchpoint_payload(event),
                outcome=self._outcome(event, result.analysis),
                timestamp=event.timestamp,
            )

        if event.milestone_type:
            result.milestone = await self.tracker.track_milestone(
                event.lead_id,
                event.milestone_type,
                payload=event.payload.get("milestone_payload"),
                achieved_at=event.timestamp,
            )

        logger.debug(f"Handled {event.direction.value} {event.channel} event for lead {event.lead_id}")
        return result

    @staticmethod
    def _touchpoint_payload(event: InboundEvent) -> Dict[str, Any]:
        payload = {
            k: v for k, v in event.payload.items()
            if k not in ("touchpoint_type", "milestone", "milestone_payload", "outcome")
        }
        if event.message_text:
            payload.setdefault("content", event.message_text)
            payload.setdefault("message_length", len(event.message_text))
        return payload

    @staticmethod
    def _outcome(event: InboundEvent, analysis: Optional[IntentRecognitionResult]) -> Optional[str]:
        explicit = event.payload.get("outcome")
        if explicit:
            return str(explicit)
        if analysis is None:
            return None
        return outcome_from_sentiment(analysis.sentiment).value
