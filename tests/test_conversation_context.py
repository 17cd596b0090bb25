"""Tests for context aggregation, escalation detection and the context cache."""

from datetime import timedelta

import pytest

from conftest import T0
from conversation.cache import ConversationContextCache
from conversation.context import (
    ContextAggregator,
    ConversationContext,
    Direction,
    UrgencyLevel,
    urgency_level_for,
)
from conversation.escalation import EscalationDetector


@pytest.fixture
def aggregator():
    return ContextAggregator()


@pytest.fixture
def detector():
    return EscalationDetector()


def context_with(aggregator, *turns, lead_id="lead_1"):
    """Build a context from (message, direction, intent, sentiment) tuples spaced ten minutes apart."""
    context = aggregator.new_context(lead_id)
    for i, (message, direction, intent, sentiment) in enumerate(turns):
        aggregator.update(context, message, direction, intent, sentiment, T0 + timedelta(minutes=10 * i))
    return context


# ── Context Aggregator ────────────────────────────────

class TestContextAggregator:
    def test_update_appends_turn(self, aggregator):
        context = context_with(aggregator, ("what colors?", "in", "information_seeking", 0.0))
        assert len(context.history) == 1
        assert context.history[0].direction == Direction.INBOUND
        assert context.current_intent == "information_seeking"
        assert list(context.sentiment_trend) == [0.0]

    def test_history_is_bounded(self, aggregator):
        turns = [("msg", "in", "general_inquiry", 0.0)] * 25
        context = context_with(aggregator, *turns)
        assert len(context.history) == 20
        assert len(context.sentiment_trend) == 10

    def test_intent_urgency(self, aggregator):
        context = context_with(aggregator, ("price?", "in", "purchase_intent", 0.0))
        assert context.urgency_level == UrgencyLevel.MEDIUM

    def test_urgency_cue_raises_level(self, aggregator):
        context = context_with(aggregator, ("I need this ASAP", "in", "purchase_intent", 0.0))
        assert context.urgency_level == UrgencyLevel.HIGH

    def test_complaint_with_urgency_cue_is_critical(self, aggregator):
        context = context_with(aggregator, ("fix this immediately", "in", "complaint_issue", 0.0))
        assert context.urgency_level == UrgencyLevel.CRITICAL

    def test_negative_trend_raises_urgency(self, aggregator):
        turns = [("no", "in", "general_inquiry", -0.5)] * 3
        context = context_with(aggregator, *turns)
        assert context.urgency_level == UrgencyLevel.MEDIUM

    def test_message_burst_raises_urgency(self, aggregator):
        turns = [("hi", "in", "purchase_intent", 0.0)] * 5
        context = context_with(aggregator, *turns)
        assert context.urgency_level == UrgencyLevel.MEDIUM

        aggregator.update(context, "hi", "in", "purchase_intent", 0.0, T0 + timedelta(minutes=50))
        assert context.urgency_level == UrgencyLevel.HIGH

    def test_urgency_does_not_accumulate(self, aggregator):
        context = context_with(
            aggregator,
            ("urgent please", "in", "purchase_intent", 0.0),
            ("ok", "in", "general_inquiry", 0.0),
        )
        assert context.urgency_level == UrgencyLevel.LOW

    def test_urgency_level_bands(self):
        assert urgency_level_for(0.8) == UrgencyLevel.CRITICAL
        assert urgency_level_for(0.6) == UrgencyLevel.HIGH
        assert urgency_level_for(0.3) == UrgencyLevel.MEDIUM
        assert urgency_level_for(0.29) == UrgencyLevel.LOW

    def test_engagement_inbound_only(self, aggregator):
        context = context_with(aggregator, ("what trims?", "in", "information_seeking", 0.2))
        assert context.engagement_score == pytest.approx(0.64)

    def test_engagement_reply_ratio(self, aggregator):
        context = context_with(
            aggregator,
            ("Hello from the dealership", "out", "general_inquiry", 0.0),
            ("Following up", "out", "general_inquiry", 0.0),
            ("hi", "in", "general_inquiry", 0.0),
        )
        assert context.engagement_score == pytest.approx(0.65)

    def test_engagement_clamped(self, aggregator):
        context = context_with(
            aggregator,
            ("Hello", "out", "general_inquiry", 0.0),
            ("love it", "in", "purchase_intent", 1.0),
            ("great", "in", "purchase_intent", 1.0),
        )
        assert context.engagement_score == 1.0

    def test_to_dict(self, aggregator):
        context = context_with(aggregator, ("hi", "out", "general_inquiry", 0.0))
        data = context.to_dict()
        assert data["history"][0]["direction"] == "out"
        assert data["urgency_level"] == "low"
        assert data["response_strategy"] == "standard"


# ── Escalation Detector ───────────────────────────────

class TestEscalationDetector:
    def test_complaint_intent_escalates(self, detector):
        reasons = detector.requires_escalation("complaint_issue", 0.0)
        assert reasons == ["trigger_intent:complaint_issue"]

    def test_negative_sentiment(self, detector):
        assert "negative_sentiment" in detector.requires_escalation("general_inquiry", -0.6)
        assert detector.requires_escalation("general_inquiry", -0.5) == []

    def test_repeated_complaints(self, detector, aggregator):
        context = context_with(
            aggregator,
            ("broken", "in", "complaint_issue", -0.1),
            ("thanks", "in", "positive_sentiment", 0.1),
            ("still broken", "in", "complaint_issue", 0.0),
        )
        assert "repeated_complaints" in detector.requires_escalation("general_inquiry", 0.0, context)

    def test_declining_sentiment(self, detector, aggregator):
        context = context_with(
            aggregator,
            ("a", "in", "general_inquiry", 0.2),
            ("b", "in", "general_inquiry", 0.0),
            ("c", "in", "general_inquiry", -0.1),
        )
        assert "declining_sentiment" in detector.requires_escalation("general_inquiry", -0.1, context)

    def test_declining_must_be_strict_and_end_negative(self, detector, aggregator):
        not_negative = context_with(
            aggregator,
            ("a", "in", "general_inquiry", 0.3),
            ("b", "in", "general_inquiry", 0.2),
            ("c", "in", "general_inquiry", 0.1),
        )
        flat = context_with(
            aggregator,
            ("a", "in", "general_inquiry", 0.0),
            ("b", "in", "general_inquiry", -0.1),
            ("c", "in", "general_inquiry", -0.1),
        )
        assert detector.requires_escalation("general_inquiry", 0.1, not_negative) == []
        assert detector.requires_escalation("general_inquiry", -0.1, flat) == []

    def test_purchase_at_risk(self, detector, aggregator):
        context = context_with(aggregator, ("too expensive to buy", "in", "purchase_intent", -0.3))
        assert "purchase_at_risk" in detector.requires_escalation("purchase_intent", -0.3, context)

    def test_keyword_signals(self, detector):
        assert detector.detect_signals("I want to speak to a manager") == ["manager_request"]
        assert detector.detect_signals("My lawyer will hear about this") == ["legal_threat"]
        assert detector.detect_signals("I don't understand your answer") == ["communication_breakdown"]
        assert detector.detect_signals("sounds good") == []

    def test_multiple_objections_signal(self, detector, aggregator):
        context = context_with(
            aggregator,
            ("maybe", "in", "objection_concern", 0.0),
            ("too expensive", "in", "objection_concern", -0.1),
        )
        assert "multiple_objections" in detector.detect_signals("hmm", context)

    def test_high_value_from_price(self, detector):
        assert detector.detect_signals("budget is $80,000") == ["high_value_customer"]
        assert detector.detect_signals("budget is $35,000") == []

    def test_high_value_from_k_amount_after_money_cue(self, detector):
        assert detector.detect_signals("my budget is 90k") == ["high_value_customer"]
        assert detector.detect_signals("I can pay 80k cash") == ["high_value_customer"]

    def test_bare_numbers_are_not_high_value(self, detector):
        assert detector.detect_signals("my trade in has 150k miles") == []
        assert detector.detect_signals("I live in 90210") == []
        assert detector.detect_signals("call me at 5551234567") == []

    def test_money_cue_must_be_close(self, detector):
        message = "what is the price of the camry? also my old truck has 150k on it"
        assert detector.detect_signals(message) == []

    def test_high_value_from_payload(self, detector):
        assert detector.detect_signals("hello", payload={"high_value": True}) == ["high_value_customer"]

    def test_evaluate_records_signals_on_context(self, detector, aggregator):
        context = context_with(aggregator, ("I want to speak to a manager", "in", "general_inquiry", 0.0))
        decision = detector.evaluate("general_inquiry", 0.0, context, message="I want to speak to a manager")
        assert decision.requires_escalation
        assert decision.reasons == ["signal:manager_request"]
        assert context.escalation_signals == {"manager_request"}

    def test_custom_triggers(self, aggregator):
        detector = EscalationDetector(triggers=[])
        context = context_with(aggregator, ("speak to a manager", "in", "complaint_issue", 0.0))
        decision = detector.evaluate("complaint_issue", 0.0, context, message="speak to a manager")
        assert not decision.requires_escalation
        assert decision.signals == ["manager_request"]

    def test_custom_high_value_threshold(self):
        detector = EscalationDetector(high_value_threshold=30000)
        assert detector.detect_signals("budget is $35,000") == ["high_value_customer"]


# ── Context Cache ─────────────────────────────────────

class FakeTimer:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestContextCache:
    def test_put_and_get(self):
        cache = ConversationContextCache()
        context = ConversationContext(lead_id="lead_1")
        cache.put("lead_1", context)
        assert cache.get("lead_1") is context
        assert cache.get("lead_2") is None
        assert cache.stats() == {"size": 1, "hits": 1, "misses": 1, "evictions": 0}

    def test_lru_eviction(self):
        cache = ConversationContextCache(maxsize=2)
        cache.put("a", ConversationContext(lead_id="a"))
        cache.put("b", ConversationContext(lead_id="b"))
        cache.get("a")
        cache.put("c", ConversationContext(lead_id="c"))

        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache
        assert cache.evictions == 1

    def test_ttl_expiry(self):
        timer = FakeTimer()
        cache = ConversationContextCache(ttl_seconds=60, timer=timer)
        cache.put("a", ConversationContext(lead_id="a"))

        timer.now = 59
        assert cache.get("a") is not None
        timer.now = 200
        assert cache.values() == []
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_put_refreshes_entry(self):
        timer = FakeTimer()
        cache = ConversationContextCache(ttl_seconds=60, timer=timer)
        cache.put("a", ConversationContext(lead_id="a"))
        timer.now = 50
        cache.put("a", ConversationContext(lead_id="a"))
        timer.now = 100
        assert cache.get("a") is not None

    def test_invalidate(self):
        cache = ConversationContextCache()
        cache.put("a", ConversationContext(lead_id="a"))
        cache.invalidate("a")
        cache.invalidate("missing")
        assert len(cache) == 0
