"""
Conversation Manager for the lead intelligence engine.

Runs one message through intent, sentiment and entity analysis, updates
the lead's rolling context, evaluates escalation and persists a summary.
"""

import asyncio
import logging
import math
import re
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from journey.store import StoreUnavailableError

from .cache import ConversationContextCache
from .context import (
    HISTORY_SIZE,
    ContextAggregator,
    ConversationContext,
    Direction,
    ResponseStrategy,
    UrgencyLevel,
)
from .context_store import ConversationContextStore
from .entity_extractor import Entity, EntityExtractor
from .escalation import EscalationDetector
from .intent_recognizer import IntentRecognizer
from .patterns import TOPIC_PATTERN, IntentCategory
from .sentiment import SentimentAnalyzer

logger = logging.getLogger(__name__)

MAX_KEY_TOPICS = 10
SUMMARY_WINDOW = 5
EXTENDED_SILENCE = timedelta(days=7)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _percent(value: float) -> int:
    return int(math.floor(value * 100 + 0.5))


@dataclass
class IntentRecognitionResult:
    """Analysis of one message."""
    lead_id: str
    intent: str
    confidence: float
    entities: List[Entity] = field(default_factory=list)
    requires_escalation: bool = False
    suggested_actions: List[str] = field(default_factory=list)
    sentiment: float = 0.0
    secondary_intent: Optional[str] = None
    urgency_level: UrgencyLevel = UrgencyLevel.LOW
    engagement_score: float = 0.5
    escalation_reasons: List[str] = field(default_factory=list)
    escalation_signals: List[str] = field(default_factory=list)
    persisted: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lead_id": self.lead_id,
            "intent": self.intent,
            "confidence": self.confidence,
            "entities": [e.to_dict() for e in self.entities],
            "requires_escalation": self.requires_escalation,
            "suggested_actions": list(self.suggested_actions),
            "sentiment": self.sentiment,
            "secondary_intent": self.secondary_intent,
            "urgency_level": self.urgency_level.value,
            "engagement_score": self.engagement_score,
            "escalation_reasons": list(self.escalation_reasons),
            "escalation_signals": list(self.escalation_signals),
            "persisted": self.persisted,
        }


@dataclass
class ConversationInsights:
    """Derived view of a lead's conversation."""
    communication_style: str = "unknown"
    preferred_topics: List[str] = field(default_factory=list)
    response_pattern: str = "unknown"
    next_action: str = "initiate_conversation"
    risk_factors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "communication_style": self.communication_style,
            "preferred_topics": list(self.preferred_topics),
            "response_pattern": self.response_pattern,
            "next_action": self.next_action,
            "risk_factors": list(self.risk_factors),
        }


@dataclass
class SystemStatus:
    active_conversations: int
    avg_engagement_score: float
    high_urgency_count: int
    escalation_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active_conversations": self.active_conversations,
            "avg_engagement_score": self.avg_engagement_score,
            "high_urgency_count": self.high_urgency_count,
            "escalation_rate": self.escalation_rate,
        }


class ConversationManager:
    """
    Analyzes messages and maintains per-lead conversation context.

    Contexts live in a bounded cache and are rebuilt from the store's
    message history on a miss. Store failures are logged and reported
    through the `persisted` flag; analysis results are always returned.
    """

    SUGGESTED_ACTIONS: Dict[str, List[str]] = {
        IntentCategory.PURCHASE_INTENT.value: ["schedule_appointment", "send_pricing_info", "offer_test_drive"],
        IntentCategory.INFORMATION_SEEKING.value: ["provide_detailed_info", "send_brochure", "offer_consultation"],
        IntentCategory.SCHEDULING_INTENT.value: ["check_availability", "confirm_appointment", "send_directions"],
        IntentCategory.OBJECTION_CONCERN.value: ["address_objection", "provide_alternatives", "schedule_consultation"],
        IntentCategory.COMPLAINT_ISSUE.value: ["escalate_to_manager", "investigate_issue", "offer_resolution"],
    }
    DEFAULT_ACTIONS = ["continue_conversation", "ask_clarifying_questions"]
    PRIORITY_ACTIONS = ["priority_response", "manager_notification"]

    NEXT_ACTION_BY_INTENT: Dict[str, str] = {
        IntentCategory.PURCHASE_INTENT.value: "schedule_sales_appointment",
        IntentCategory.SCHEDULING_INTENT.value: "confirm_appointment_details",
        IntentCategory.INFORMATION_SEEKING.value: "provide_comprehensive_information",
        IntentCategory.OBJECTION_CONCERN.value: "address_concerns_personally",
        IntentCategory.COMPLAINT_ISSUE.value: "escalate_to_service_manager",
    }

    def __init__(
        self,
        store: Optional[ConversationContextStore] = None,
        recognizer: Optional[IntentRecognizer] = None,
        sentiment_analyzer: Optional[SentimentAnalyzer] = None,
        entity_extractor: Optional[EntityExtractor] = None,
        aggregator: Optional[ContextAggregator] = None,
        detector: Optional[EscalationDetector] = None,
        cache: Optional[ConversationContextCache] = None,
        clock=utcnow,
    ):
        self.store = store
        self.recognizer = recognizer or IntentRecognizer()
        self.sentiment_analyzer = sentiment_analyzer or SentimentAnalyzer()
        self.entity_extractor = entity_extractor or EntityExtractor()
        self.aggregator = aggregator or ContextAggregator()
        self.detector = detector or EscalationDetector()
        self.cache = cache or ConversationContextCache()
        self.clock = clock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._topic_pattern = re.compile(TOPIC_PATTERN, re.IGNORECASE)

    def _lock_for(self, lead_id: str) -> asyncio.Lock:
        lock = self._locks.get(lead_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[lead_id] = lock
        return lock

    # ── Analysis ────────────────────────────────────────────────────

    async def analyze_message(
        self,
        lead_id: str,
        message: Optional[str],
        direction: Union[Direction, str] = Direction.INBOUND,
        timestamp: Optional[datetime] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> IntentRecognitionResult:
        """
        Analyze one message and update the lead's context.

        Args:
            lead_id: Lead identifier
            message: Message text; empty text is allowed
            direction: "in" for customer messages, "out" for agent messages
            timestamp: Message time; defaults to now
            payload: Optional event payload (e.g. {"high_value": True})

        Returns:
            IntentRecognitionResult
        """
        text = message or ""
        direction = Direction(direction)
        timestamp = timestamp or self.clock()

        intent = self.recognizer.recognize(text)
        sentiment = self.sentiment_analyzer.analyze(text)
        entities = self.entity_extractor.extract(text)

        async with self._lock_for(lead_id):
            context = await self.get_context(lead_id)
            self.aggregator.update(
                context,
                text,
                direction,
                intent.primary_intent,
                sentiment,
                timestamp,
            )
            decision = self.detector.evaluate(
                intent.primary_intent,
                sentiment,
                context,
                message=text,
                payload=payload,
            )
            context.response_strategy = self._response_strategy(context, decision.requires_escalation)
            self.cache.put(lead_id, context)

            persisted = await self._persist(context, text, direction, timestamp, intent.primary_intent, sentiment)

        return IntentRecognitionResult(
            lead_id=lead_id,
            intent=intent.primary_intent,
            confidence=intent.confidence,
            entities=entities,
            requires_escalation=decision.requires_escalation,
            suggested_actions=self.suggested_actions(intent.primary_intent, context),
            sentiment=sentiment,
            secondary_intent=intent.secondary_intent,
            urgency_level=context.urgency_level,
            engagement_score=context.engagement_score,
            escalation_reasons=decision.reasons,
            escalation_signals=decision.signals,
            persisted=persisted,
        )

    @staticmethod
    def _response_strategy(context: ConversationContext, escalated: bool) -> ResponseStrategy:
        if escalated:
            return ResponseStrategy.ESCALATED
        if context.urgency_level in (UrgencyLevel.HIGH, UrgencyLevel.CRITICAL):
            return ResponseStrategy.PRIORITY
        return ResponseStrategy.STANDARD

    def suggested_actions(self, intent: str, context: Optional[ConversationContext] = None) -> List[str]:
        actions = list(self.SUGGESTED_ACTIONS.get(intent, self.DEFAULT_ACTIONS))
        if context is not None and context.urgency_level in (UrgencyLevel.HIGH, UrgencyLevel.CRITICAL):
            actions = self.PRIORITY_ACTIONS + actions
        return actions

    # ── Context lifecycle ───────────────────────────────────────────

    async def get_context(self, lead_id: str) -> ConversationContext:
        """Cached context, or one rebuilt from stored messages."""
        context = self.cache.get(lead_id)
        if context is None:
            context = await self.rebuild_context(lead_id)
        return context

    async def rebuild_context(self, lead_id: str) -> ConversationContext:
        """Replay persisted messages into a fresh context."""
        context = self.aggregator.new_context(lead_id)
        if self.store is None:
            return context

        try:
            messages = await self.store.get_recent_messages(lead_id, limit=HISTORY_SIZE)
        except StoreUnavailableError as e:
            logger.warning(f"Could not rebuild conversation context for lead {lead_id}: {e}")
            return context

        for stored in messages:
            self.aggregator.update(
                context,
                stored.message,
                stored.direction,
                stored.intent or IntentCategory.GENERAL_INQUIRY.value,
                stored.sentiment,
                stored.timestamp,
            )
            context.escalation_signals.update(self.detector.detect_signals(stored.message, context))
        if messages:
            logger.debug(f"Rebuilt conversation context for lead {lead_id} from {len(messages)} messages")
        return context

    async def _persist(
        self,
        context: ConversationContext,
        message: str,
        direction: Direction,
        timestamp: datetime,
        intent: str,
        sentiment: float,
    ) -> bool:
        if self.store is None:
            return False
        try:
            await self.store.save_message(
                context.lead_id,
                message,
                direction.value,
                timestamp,
                intent=intent,
                sentiment=sentiment,
            )
            await self.store.upsert(
                lead_id=context.lead_id,
                summary=self.summarize(context),
                key_topics=self.key_topics(context),
                last_interaction_type=context.current_intent,
                context_score=_percent(context.engagement_score),
                response_style=context.response_strategy.value,
                updated_at=self.clock(),
            )
            return True
        except StoreUnavailableError as e:
            logger.error(f"Failed to persist conversation context for lead {context.lead_id}: {e}")
            return False

    # ── Summaries ───────────────────────────────────────────────────

    def summarize(self, context: ConversationContext) -> str:
        recent = list(context.history)[-SUMMARY_WINDOW:]
        intents = list(dict.fromkeys(turn.intent for turn in recent if turn.intent))
        avg_sentiment = context.average_sentiment(last=SUMMARY_WINDOW)

        summary = f"Recent conversation showing {', '.join(intents)} intent(s). "
        if avg_sentiment > 0.2:
            summary += "Positive sentiment trend. "
        elif avg_sentiment < -0.2:
            summary += "Negative sentiment trend. "
        else:
            summary += "Neutral sentiment. "
        summary += f"Urgency level: {context.urgency_level.value}. "
        summary += f"Engagement score: {_percent(context.engagement_score)}%."
        return summary

    def key_topics(self, context: ConversationContext) -> List[str]:
        topics: Dict[str, None] = {}
        for turn in context.history:
            if turn.intent:
                topics[turn.intent] = None
            for match in self._topic_pattern.finditer(turn.message):
                topics[match.group(0).lower()] = None
        return list(topics)[:MAX_KEY_TOPICS]

    # ── Insights ────────────────────────────────────────────────────

    async def get_conversation_insights(
        self, lead_id: str
    ) -> Tuple[Optional[ConversationContext], ConversationInsights]:
        """
        Insights for a lead's conversation.

        Returns (None, default insights) when the lead has no history.
        """
        context = await self.get_context(lead_id)
        if not context.history:
            return None, ConversationInsights()

        return context, ConversationInsights(
            communication_style=self._communication_style(context),
            preferred_topics=self._preferred_topics(context),
            response_pattern=self._response_pattern(context),
            next_action=self._next_action(context),
            risk_factors=self._risk_factors(context),
        )

    @staticmethod
    def _communication_style(context: ConversationContext) -> str:
        avg_sentiment = context.average_sentiment()
        inbound = context.inbound()
        avg_length = sum(len(turn.message) for turn in inbound) / max(len(inbound), 1)

        if avg_sentiment > 0.3 and avg_length > 100:
            return "detailed_positive"
        if avg_sentiment > 0.1 and avg_length < 50:
            return "brief_positive"
        if avg_sentiment < -0.1 and avg_length > 100:
            return "detailed_concerned"
        if avg_sentiment < -0.1 and avg_length < 50:
            return "brief_negative"
        if avg_length > 100:
            return "detailed_neutral"
        return "brief_neutral"

    @staticmethod
    def _preferred_topics(context: ConversationContext) -> List[str]:
        counts: Dict[str, int] = {}
        for turn in context.inbound():
            if turn.intent:
                counts[turn.intent] = counts.get(turn.intent, 0) + 1
        ranked = sorted(counts.items(), key=lambda x: x[1], reverse=True)
        return [topic for topic, _ in ranked[:3]]

    @staticmethod
    def _response_pattern(context: ConversationContext) -> str:
        inbound = context.inbound()
        if len(inbound) < 2:
            return "insufficient_data"

        intervals = [
            (inbound[i].timestamp - inbound[i - 1].timestamp).total_seconds()
            for i in range(1, len(inbound))
        ]
        hours = (sum(intervals) / len(intervals)) / 3600

        if hours < 1:
            return "immediate_responder"
        if hours < 4:
            return "quick_responder"
        if hours < 24:
            return "same_day_responder"
        return "delayed_responder"

    def _next_action(self, context: ConversationContext) -> str:
        if context.urgency_level == UrgencyLevel.CRITICAL:
            return "immediate_manager_intervention"
        if context.urgency_level == UrgencyLevel.HIGH:
            return "priority_personal_outreach"
        return self.NEXT_ACTION_BY_INTENT.get(context.current_intent, "continue_nurturing_conversation")

    def _risk_factors(self, context: ConversationContext) -> List[str]:
        risks: List[str] = []

        trend = list(context.sentiment_trend)
        recent = trend[-3:]
        if len(recent) == 3 and recent[0] > recent[1] > recent[2]:
            risks.append("declining_sentiment")

        inbound = context.inbound()
        if len(inbound) >= 2 and self.clock() - inbound[-1].timestamp > EXTENDED_SILENCE:
            risks.append("extended_silence")

        if context.intent_count(IntentCategory.OBJECTION_CONCERN.value) >= 2:
            risks.append("multiple_objections")

        if context.intent_count(IntentCategory.COMPLAINT_ISSUE.value) > 0 and all(s < 0 for s in trend[-2:]):
            risks.append("unresolved_complaint")

        return risks

    def get_system_status(self) -> SystemStatus:
        """Aggregate view over cached conversations."""
        contexts = self.cache.values()
        total = max(len(contexts), 1)
        return SystemStatus(
            active_conversations=len(contexts),
            avg_engagement_score=round(sum(c.engagement_score for c in contexts) / total, 4),
            high_urgency_count=sum(
                1 for c in contexts if c.urgency_level in (UrgencyLevel.HIGH, UrgencyLevel.CRITICAL)
            ),
            escalation_rate=round(sum(1 for c in contexts if c.escalation_signals) / total, 4),
        )
