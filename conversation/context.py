"""
Conversation context aggregation.

Keeps rolling per-lead state (bounded history, sentiment trend, urgency,
engagement) updated once per message.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Deque, Dict, Optional, Sequence, Set, Union

from .patterns import EscalationCues, IntentCategory

logger = logging.getLogger(__name__)

HISTORY_SIZE = 20
SENTIMENT_TREND_SIZE = 10
BURST_WINDOW = timedelta(hours=1)
BURST_MESSAGE_COUNT = 5


class UrgencyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Direction(str, Enum):
    INBOUND = "in"
    OUTBOUND = "out"


class ResponseStrategy(str, Enum):
    STANDARD = "standard"
    PRIORITY = "priority"
    ESCALATED = "escalated"


URGENCY_BY_INTENT: Dict[str, float] = {
    IntentCategory.PURCHASE_INTENT.value: 0.4,
    IntentCategory.SCHEDULING_INTENT.value: 0.3,
    IntentCategory.COMPLAINT_ISSUE.value: 0.5,
}

ENGAGEMENT_BY_INTENT: Dict[str, float] = {
    IntentCategory.PURCHASE_INTENT.value: 0.2,
    IntentCategory.SCHEDULING_INTENT.value: 0.15,
    IntentCategory.INFORMATION_SEEKING.value: 0.1,
}


def _aware(ts: Optional[datetime]) -> datetime:
    if ts is None:
        return datetime.now(timezone.utc)
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass
class ConversationTurn:
    """One message in the rolling history."""
    message: str
    direction: Direction
    timestamp: datetime
    intent: Optional[str] = None
    sentiment: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "direction": self.direction.value,
            "timestamp": self.timestamp.isoformat(),
            "intent": self.intent,
            "sentiment": self.sentiment,
        }


@dataclass
class ConversationContext:
    """Rolling per-lead conversation state. Rebuildable from stored messages."""
    lead_id: str
    history: Deque[ConversationTurn] = field(default_factory=lambda: deque(maxlen=HISTORY_SIZE))
    current_intent: str = IntentCategory.GENERAL_INQUIRY.value
    sentiment_trend: Deque[float] = field(default_factory=lambda: deque(maxlen=SENTIMENT_TREND_SIZE))
    urgency_level: UrgencyLevel = UrgencyLevel.LOW
    escalation_signals: Set[str] = field(default_factory=set)
    engagement_score: float = 0.5
    response_strategy: ResponseStrategy = ResponseStrategy.STANDARD

    def inbound(self):
        return [turn for turn in self.history if turn.direction == Direction.INBOUND]

    def outbound(self):
        return [turn for turn in self.history if turn.direction == Direction.OUTBOUND]

    def intent_count(self, intent: str) -> int:
        return sum(1 for turn in self.history if turn.intent == intent)

    def average_sentiment(self, last: Optional[int] = None) -> float:
        values = list(self.sentiment_trend)
        if last is not None:
            values = values[-last:]
        if not values:
            return 0.0
        return sum(values) / len(values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lead_id": self.lead_id,
            "history": [turn.to_dict() for turn in self.history],
            "current_intent": self.current_intent,
            "sentiment_trend": list(self.sentiment_trend),
            "urgency_level": self.urgency_level.value,
            "escalation_signals": sorted(self.escalation_signals),
            "engagement_score": self.engagement_score,
            "response_strategy": self.response_strategy.value,
        }


def urgency_level_for(score: float) -> UrgencyLevel:
    if score >= 0.8:
        return UrgencyLevel.CRITICAL
    if score >= 0.6:
        return UrgencyLevel.HIGH
    if score >= 0.3:
        return UrgencyLevel.MEDIUM
    return UrgencyLevel.LOW


class ContextAggregator:
    """
    Applies one message to a ConversationContext.

    Urgency and engagement are recomputed from the whole window on every
    message; nothing is accumulated across calls.
    """

    def __init__(self, urgency_keywords: Optional[Sequence[str]] = None):
        self.urgency_keywords = tuple(
            urgency_keywords if urgency_keywords is not None else EscalationCues().urgency_keywords
        )

    def new_context(self, lead_id: str) -> ConversationContext:
        return ConversationContext(lead_id=lead_id)

    def update(
        self,
        context: ConversationContext,
        message: str,
        direction: Union[Direction, str],
        intent: str,
        sentiment: float,
        timestamp: Optional[datetime] = None,
    ) -> ConversationContext:
        """
        Append a message and recompute urgency and engagement.

        Args:
            context: Context to update in place
            message: Message text
            direction: "in" for customer messages, "out" for agent messages
            intent: Recognized intent of the message
            sentiment: Sentiment score of the message
            timestamp: Message time; defaults to now

        Returns:
            The same context, updated
        """
        turn = ConversationTurn(
            message=message or "",
            direction=Direction(direction),
            timestamp=_aware(timestamp),
            intent=intent,
            sentiment=sentiment,
        )
        context.history.append(turn)
        context.sentiment_trend.append(sentiment)
        context.current_intent = intent

        context.urgency_level = urgency_level_for(self.urgency_score(context, turn))
        context.engagement_score = self.engagement_score(context)
        return context

    def has_urgency_cue(self, message: str) -> bool:
        text = (message or "").lower()
        return any(keyword in text for keyword in self.urgency_keywords)

    def urgency_score(self, context: ConversationContext, turn: ConversationTurn) -> float:
        score = URGENCY_BY_INTENT.get(context.current_intent, 0.0)

        if context.sentiment_trend and context.average_sentiment(last=3) < -0.3:
            score += 0.3

        window_start = turn.timestamp - BURST_WINDOW
        recent = [t for t in context.history if window_start < t.timestamp <= turn.timestamp]
        if len(recent) > BURST_MESSAGE_COUNT:
            score += 0.2

        if self.has_urgency_cue(turn.message):
            score += 0.3

        return round(score, 4)

    def engagement_score(self, context: ConversationContext) -> float:
        score = 0.5

        agent_messages = len(context.outbound())
        if agent_messages > 0:
            score += (len(context.inbound()) / agent_messages) * 0.3

        score += context.average_sentiment() * 0.2
        score += ENGAGEMENT_BY_INTENT.get(context.current_intent, 0.0)

        return round(max(0.0, min(1.0, score)), 4)
