"""Tests for the ConversationManager."""

from datetime import timedelta

import pytest

from conftest import T0
from conversation.cache import ConversationContextCache
from conversation.context import ResponseStrategy, UrgencyLevel
from conversation.context_store import InMemoryConversationContextStore
from conversation.entity_extractor import EntityType
from conversation.manager import ConversationManager
from journey.store import StoreUnavailableError


class BrokenContextStore(InMemoryConversationContextStore):
    """Store whose every call fails."""

    async def save_message(self, *args, **kwargs):
        raise StoreUnavailableError("connection refused")

    async def get_recent_messages(self, lead_id, limit=20):
        raise StoreUnavailableError("connection refused")


@pytest.fixture
def context_store():
    return InMemoryConversationContextStore()


@pytest.fixture
def manager(context_store, clock):
    return ConversationManager(store=context_store, clock=clock)


# ── Message Analysis ──────────────────────────────────

class TestAnalyzeMessage:
    @pytest.mark.asyncio
    async def test_urgent_budget_message(self, manager):
        result = await manager.analyze_message("lead_1", "I need this ASAP, budget is $35,000")

        assert result.intent == "purchase_intent"
        assert result.confidence == pytest.approx(0.2)
        assert result.secondary_intent == "objection_concern"
        assert [(e.type, e.value) for e in result.entities] == [(EntityType.PRICE, "$35,000")]
        assert result.sentiment == 0.0
        assert result.urgency_level == UrgencyLevel.HIGH
        assert result.engagement_score == pytest.approx(0.7)
        assert not result.requires_escalation
        assert result.suggested_actions == [
            "priority_response",
            "manager_notification",
            "schedule_appointment",
            "send_pricing_info",
            "offer_test_drive",
        ]
        assert result.persisted

    @pytest.mark.asyncio
    async def test_summary_is_persisted(self, manager, context_store):
        await manager.analyze_message("lead_1", "I need this ASAP, budget is $35,000")

        record = await context_store.get("lead_1")
        assert record.summary == (
            "Recent conversation showing purchase_intent intent(s). Neutral sentiment. "
            "Urgency level: high. Engagement score: 70%."
        )
        assert record.key_topics == ["purchase_intent"]
        assert record.last_interaction_type == "purchase_intent"
        assert record.context_score == 70
        assert record.response_style == "priority"
        assert record.updated_at == T0

        messages = await context_store.get_recent_messages("lead_1")
        assert len(messages) == 1
        assert messages[0].direction == "in"
        assert messages[0].intent == "purchase_intent"

    @pytest.mark.asyncio
    async def test_complaint_escalates(self, manager):
        result = await manager.analyze_message("lead_1", "This is a terrible problem, I want to speak to a manager")

        assert result.intent == "complaint_issue"
        assert result.sentiment == pytest.approx(-0.2)
        assert result.requires_escalation
        assert "trigger_intent:complaint_issue" in result.escalation_reasons
        assert "manager_request" in result.escalation_signals
        assert result.suggested_actions[0] == "escalate_to_manager"

        context = await manager.get_context("lead_1")
        assert context.response_strategy == ResponseStrategy.ESCALATED

    @pytest.mark.asyncio
    async def test_bare_numbers_do_not_escalate(self, manager):
        for lead_id, text in (
            ("lead_1", "my trade in has 150k miles"),
            ("lead_2", "I live in 90210"),
            ("lead_3", "call me at 5551234567"),
        ):
            result = await manager.analyze_message(lead_id, text)
            assert any(e.type == EntityType.PRICE for e in result.entities)
            assert not result.requires_escalation
            assert "high_value_customer" not in result.escalation_signals

    @pytest.mark.asyncio
    async def test_large_budget_escalates(self, manager):
        result = await manager.analyze_message("lead_1", "My budget is 90k for a new truck")
        assert result.requires_escalation
        assert "signal:high_value_customer" in result.escalation_reasons

    @pytest.mark.asyncio
    async def test_general_message_gets_default_actions(self, manager):
        result = await manager.analyze_message("lead_1", "hello there")
        assert result.intent == "general_inquiry"
        assert result.suggested_actions == ["continue_conversation", "ask_clarifying_questions"]

    @pytest.mark.asyncio
    async def test_empty_message_is_analyzed(self, manager):
        result = await manager.analyze_message("lead_1", "")
        assert result.intent == "general_inquiry"
        assert result.entities == []

    @pytest.mark.asyncio
    async def test_key_topics_include_keywords(self, manager, context_store):
        await manager.analyze_message("lead_1", "Do you have financing for the SUV?")
        record = await context_store.get("lead_1")
        assert "financing" in record.key_topics
        assert "suv" in record.key_topics

    @pytest.mark.asyncio
    async def test_without_store_results_are_not_persisted(self, clock):
        manager = ConversationManager(clock=clock)
        result = await manager.analyze_message("lead_1", "what colors?")
        assert not result.persisted
        assert result.intent == "information_seeking"

    @pytest.mark.asyncio
    async def test_store_failure_is_reported(self, clock):
        manager = ConversationManager(store=BrokenContextStore(), clock=clock)
        result = await manager.analyze_message("lead_1", "how much is the camry?")
        assert not result.persisted
        assert result.intent == "purchase_intent"


# ── Context Lifecycle ─────────────────────────────────

class TestContextLifecycle:
    @pytest.mark.asyncio
    async def test_context_rebuilt_from_store(self, manager, context_store, clock):
        await manager.analyze_message("lead_1", "I want to speak to a manager", timestamp=T0 - timedelta(minutes=5))
        await manager.analyze_message("lead_1", "what colors?", timestamp=T0)
        await manager.analyze_message("lead_1", "Thanks for the info", direction="out", timestamp=T0 + timedelta(minutes=5))
        await manager.analyze_message("lead_1", "how much is it?", timestamp=T0 + timedelta(minutes=10))

        fresh = ConversationManager(store=context_store, clock=clock)
        context = await fresh.get_context("lead_1")

        assert [turn.message for turn in context.history] == [
            "I want to speak to a manager", "what colors?", "Thanks for the info", "how much is it?",
        ]
        assert context.current_intent == "purchase_intent"
        assert len(context.outbound()) == 1
        assert context.escalation_signals == {"manager_request"}

    @pytest.mark.asyncio
    async def test_cache_miss_rebuilds(self, manager):
        await manager.analyze_message("lead_1", "what colors?")
        manager.cache.invalidate("lead_1")
        context = await manager.get_context("lead_1")
        assert len(context.history) == 1

    @pytest.mark.asyncio
    async def test_rebuild_failure_gives_empty_context(self, clock):
        manager = ConversationManager(store=BrokenContextStore(), clock=clock)
        context = await manager.rebuild_context("lead_1")
        assert len(context.history) == 0

    @pytest.mark.asyncio
    async def test_evicted_context_keeps_history(self, context_store, clock):
        manager = ConversationManager(
            store=context_store,
            cache=ConversationContextCache(maxsize=1),
            clock=clock,
        )
        await manager.analyze_message("lead_1", "what colors?")
        await manager.analyze_message("lead_2", "hello")
        await manager.analyze_message("lead_1", "how much?")

        context = await manager.get_context("lead_1")
        assert len(context.history) == 2


# ── Insights ──────────────────────────────────────────

class TestConversationInsights:
    @pytest.mark.asyncio
    async def test_no_history(self, manager):
        context, insights = await manager.get_conversation_insights("nobody")
        assert context is None
        assert insights.communication_style == "unknown"
        assert insights.next_action == "initiate_conversation"

    @pytest.mark.asyncio
    async def test_engaged_lead(self, manager):
        await manager.analyze_message("lead_1", "Is the sedan available?", timestamp=T0)
        await manager.analyze_message("lead_1", "what colors does the sedan come in?", timestamp=T0 + timedelta(minutes=30))
        await manager.analyze_message("lead_1", "thanks", timestamp=T0 + timedelta(minutes=60))

        context, insights = await manager.get_conversation_insights("lead_1")

        assert context is not None
        assert insights.communication_style == "brief_neutral"
        assert insights.preferred_topics == ["information_seeking", "positive_sentiment"]
        assert insights.response_pattern == "immediate_responder"
        assert insights.next_action == "continue_nurturing_conversation"
        assert insights.risk_factors == []

    @pytest.mark.asyncio
    async def test_single_message_has_insufficient_data(self, manager):
        await manager.analyze_message("lead_1", "how much is it?")
        _, insights = await manager.get_conversation_insights("lead_1")
        assert insights.response_pattern == "insufficient_data"
        assert insights.next_action == "schedule_sales_appointment"

    @pytest.mark.asyncio
    async def test_unresolved_complaint(self, manager):
        await manager.analyze_message("lead_1", "I have a problem", timestamp=T0)
        await manager.analyze_message("lead_1", "still wrong", timestamp=T0 + timedelta(hours=2))

        _, insights = await manager.get_conversation_insights("lead_1")
        assert "unresolved_complaint" in insights.risk_factors
        assert insights.response_pattern == "quick_responder"
        assert insights.next_action == "escalate_to_service_manager"

    @pytest.mark.asyncio
    async def test_declining_and_silent(self, manager, clock):
        await manager.analyze_message("lead_1", "great", timestamp=T0)
        await manager.analyze_message("lead_1", "ok", timestamp=T0 + timedelta(days=1))
        await manager.analyze_message("lead_1", "bad", timestamp=T0 + timedelta(days=2))
        clock.advance(days=10)

        _, insights = await manager.get_conversation_insights("lead_1")
        assert "declining_sentiment" in insights.risk_factors
        assert "extended_silence" in insights.risk_factors
        assert insights.response_pattern == "delayed_responder"

    @pytest.mark.asyncio
    async def test_high_urgency_next_action(self, manager):
        await manager.analyze_message("lead_1", "I need this ASAP, budget is $35,000")
        _, insights = await manager.get_conversation_insights("lead_1")
        assert insights.next_action == "priority_personal_outreach"


# ── System Status ─────────────────────────────────────

class TestSystemStatus:
    def test_empty(self, manager):
        status = manager.get_system_status()
        assert status.to_dict() == {
            "active_conversations": 0,
            "avg_engagement_score": 0.0,
            "high_urgency_count": 0,
            "escalation_rate": 0.0,
        }

    @pytest.mark.asyncio
    async def test_aggregates_cached_contexts(self, manager):
        await manager.analyze_message("lead_1", "I need this ASAP, budget is $35,000")
        await manager.analyze_message("lead_2", "I want to speak to a manager")

        status = manager.get_system_status()
        assert status.active_conversations == 2
        assert status.avg_engagement_score == pytest.approx(0.6)
        assert status.high_urgency_count == 1
        assert status.escalation_rate == pytest.approx(0.5)
