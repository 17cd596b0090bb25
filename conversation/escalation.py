"""
Escalation Detector for the lead intelligence engine.

Decides whether a conversation should be routed to a human.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Sequence

from .context import ConversationContext
from .entity_extractor import EntityExtractor
from .patterns import EscalationCues, EscalationSignal, IntentCategory

logger = logging.getLogger(__name__)

DEFAULT_HIGH_VALUE_THRESHOLD = 75000.0


@dataclass
class EscalationDecision:
    """Escalation verdict for one message."""
    requires_escalation: bool
    reasons: List[str] = field(default_factory=list)
    signals: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requires_escalation": self.requires_escalation,
            "reasons": list(self.reasons),
            "signals": list(self.signals),
        }


class EscalationDetector:
    """
    Detects when human intervention is required.

    Trigger conditions:
    1. Intent or detected signal is in the trigger set
    2. Message sentiment below -0.5
    3. Two or more complaint messages in the history
    4. Last three sentiment values strictly decreasing and ending negative
    5. Purchase intent with sentiment below -0.2
    """

    TRIGGERS: FrozenSet[str] = frozenset({
        IntentCategory.COMPLAINT_ISSUE.value,
        EscalationSignal.LEGAL_THREAT.value,
        EscalationSignal.MANAGER_REQUEST.value,
        EscalationSignal.HIGH_VALUE_CUSTOMER.value,
        EscalationSignal.MULTIPLE_OBJECTIONS.value,
        EscalationSignal.COMMUNICATION_BREAKDOWN.value,
    })

    NEGATIVE_SENTIMENT_THRESHOLD = -0.5
    AT_RISK_PURCHASE_SENTIMENT = -0.2
    COMPLAINT_LIMIT = 2
    OBJECTION_LIMIT = 2

    def __init__(
        self,
        cues: Optional[EscalationCues] = None,
        high_value_threshold: float = DEFAULT_HIGH_VALUE_THRESHOLD,
        triggers: Optional[Sequence[str]] = None,
        extractor: Optional[EntityExtractor] = None,
    ):
        self.cues = cues or EscalationCues()
        self.extractor = extractor or EntityExtractor()
        self.high_value_threshold = high_value_threshold
        self.triggers = frozenset(triggers) if triggers is not None else self.TRIGGERS

    def detect_signals(
        self,
        message: str,
        context: Optional[ConversationContext] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> List[str]:
        """Named escalation signals present in this message and its context."""
        signals: List[str] = []
        message_lower = (message or "").lower()

        for signal, keywords in self.cues.signal_keywords.items():
            if any(kw in message_lower for kw in keywords):
                signals.append(signal)

        if context is not None and context.intent_count(IntentCategory.OBJECTION_CONCERN.value) >= self.OBJECTION_LIMIT:
            signals.append(EscalationSignal.MULTIPLE_OBJECTIONS.value)

        # Only clear money amounts count; zip codes, phone numbers and mileage do not
        top_price = EntityExtractor.max_price(self.extractor.monetary_entities(message))
        flagged = bool((payload or {}).get("high_value"))
        if flagged or (top_price is not None and top_price >= self.high_value_threshold):
            signals.append(EscalationSignal.HIGH_VALUE_CUSTOMER.value)

        return signals

    def requires_escalation(
        self,
        intent: str,
        sentiment: float,
        context: Optional[ConversationContext] = None,
    ) -> List[str]:
        """Reasons to escalate from intent, sentiment and history. Empty means no."""
        reasons: List[str] = []

        if intent in self.triggers:
            reasons.append(f"trigger_intent:{intent}")

        if sentiment < self.NEGATIVE_SENTIMENT_THRESHOLD:
            reasons.append("negative_sentiment")

        if context is not None:
            if context.intent_count(IntentCategory.COMPLAINT_ISSUE.value) >= self.COMPLAINT_LIMIT:
                reasons.append("repeated_complaints")

            trend = list(context.sentiment_trend)[-3:]
            if len(trend) == 3 and trend[0] > trend[1] > trend[2] and trend[2] < 0:
                reasons.append("declining_sentiment")

            if context.current_intent == IntentCategory.PURCHASE_INTENT.value and sentiment < self.AT_RISK_PURCHASE_SENTIMENT:
                reasons.append("purchase_at_risk")

        return reasons

    def evaluate(
        self,
        intent: str,
        sentiment: float,
        context: Optional[ConversationContext] = None,
        message: str = "",
        payload: Optional[Dict[str, Any]] = None,
    ) -> EscalationDecision:
        """
        Full escalation check for one message.

        Detected signals are recorded on the context.
        """
        signals = self.detect_signals(message, context, payload)
        if context is not None:
            context.escalation_signals.update(signals)

        reasons = self.requires_escalation(intent, sentiment, context)
        reasons.extend(f"signal:{s}" for s in signals if s in self.triggers)

        decision = EscalationDecision(
            requires_escalation=bool(reasons),
            reasons=reasons,
            signals=signals,
        )
        if decision.requires_escalation:
            lead = context.lead_id if context is not None else "unknown"
            logger.info(f"Escalation required for lead {lead}: {', '.join(reasons)}")
        return decision
