"""Tests for the database-backed stores (aiosqlite in memory)."""

import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import T0, FakeClock, SequentialIds
from conversation.manager import ConversationManager
from database.repositories import JourneyRepository
from database.session import Database, normalize_database_url
from database.stores import DbConversationContextStore, DbJourneyStore, from_db_time, to_db_time
from journey.models import JourneyStage
from journey.store import StoreUnavailableError
from journey.tracker import JourneyTracker

DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class DownDatabase:
    """Database whose sessions always fail."""

    def __init__(self):
        self.attempts = 0

    @asynccontextmanager
    async def session(self):
        self.attempts += 1
        raise SQLAlchemyError("database is down")
        yield


class SlowDatabase:
    """Database whose sessions never open in time."""

    @asynccontextmanager
    async def session(self):
        await asyncio.sleep(10)
        yield None


async def open_database() -> Database:
    db = Database(DATABASE_URL)
    await db.init()
    return db


# ── Helpers ───────────────────────────────────────────

class TestHelpers:
    def test_normalize_database_url(self):
        assert normalize_database_url("postgresql://u:p@host/db") == "postgresql+asyncpg://u:p@host/db"
        assert normalize_database_url("sqlite:///./leads.db") == "sqlite+aiosqlite:///./leads.db"
        assert normalize_database_url(DATABASE_URL) == DATABASE_URL

    def test_db_time_round_trip(self):
        naive = to_db_time(T0)
        assert naive.tzinfo is None
        assert from_db_time(naive) == T0
        assert from_db_time(None) is None


# ── Journey Store ─────────────────────────────────────

class TestDbJourneyStore:
    @pytest.mark.asyncio
    async def test_missing_lead_gets_default_journey(self):
        db = await open_database()
        try:
            journey = await DbJourneyStore(db).get("nobody")
            assert journey.lead_id == "nobody"
            assert journey.stage == JourneyStage.AWARENESS
            assert journey.touchpoints == []
        finally:
            await db.close()

    @pytest.mark.asyncio
    async def test_tracker_round_trip(self):
        db = await open_database()
        try:
            clock = FakeClock()
            tracker = JourneyTracker(DbJourneyStore(db), id_provider=SequentialIds(), clock=clock)

            await tracker.track_touchpoint("lead_1", "sms_reply", "sms", {"content": "what's the price?"})
            clock.advance(hours=2)
            await tracker.track_milestone("lead_1", "price_inquiry", {"model": "camry"})
            update = await tracker.track_milestone("lead_1", "price_inquiry")

            assert update.duplicate
            journey = await tracker.get_journey("lead_1")
            assert journey.stage == JourneyStage.CONSIDERATION
            assert [tp.id for tp in journey.touchpoints] == ["tp_1"]
            assert journey.touchpoints[0].timestamp == T0
            assert journey.touchpoints[0].payload == {"content": "what's the price?"}
            assert [m.id for m in journey.milestones] == ["ms_2"]
            assert journey.milestones[0].payload == {"model": "camry"}
            assert journey.last_updated == T0 + timedelta(hours=2)
        finally:
            await db.close()

    @pytest.mark.asyncio
    async def test_save_is_idempotent_upsert(self):
        db = await open_database()
        try:
            store = DbJourneyStore(db)
            tracker = JourneyTracker(store, id_provider=SequentialIds(), clock=FakeClock())
            await tracker.track_touchpoint("lead_1", "website_visit", "web")
            await tracker.track_touchpoint("lead_1", "phone_call", "phone")
            await tracker.track_touchpoint("lead_2", "test_drive", "in_person")

            async with db.session() as session:
                counts = await JourneyRepository(session).count_by_stage()
            assert counts == {"consideration": 1, "decision": 1}
        finally:
            await db.close()

    @pytest.mark.asyncio
    async def test_unavailable_database_retries_then_fails(self):
        db = DownDatabase()
        store = DbJourneyStore(db, max_retries=3, retry_delay=0)
        with pytest.raises(StoreUnavailableError):
            await store.get("lead_1")
        assert db.attempts == 3

    @pytest.mark.asyncio
    async def test_timeout_is_store_unavailable(self):
        store = DbJourneyStore(SlowDatabase(), timeout=0.05, max_retries=1, retry_delay=0)
        with pytest.raises(StoreUnavailableError):
            await store.get("lead_1")

    @pytest.mark.asyncio
    async def test_tracker_survives_unavailable_database(self):
        store = DbJourneyStore(DownDatabase(), max_retries=1, retry_delay=0)
        tracker = JourneyTracker(store, id_provider=SequentialIds(), clock=FakeClock())
        update = await tracker.track_touchpoint("lead_1", "test_drive", "in_person")
        assert not update.persisted
        assert update.journey.stage == JourneyStage.DECISION


# ── Conversation Context Store ────────────────────────

class TestDbConversationContextStore:
    @pytest.mark.asyncio
    async def test_upsert_replaces_summary(self):
        db = await open_database()
        try:
            store = DbConversationContextStore(db)
            await store.upsert("lead_1", "first", ["price"], "purchase_intent", 60, "standard", T0)
            await store.upsert("lead_1", "second", ["suv"], "scheduling_intent", 75, "priority", T0 + timedelta(minutes=5))

            record = await store.get("lead_1")
            assert record.summary == "second"
            assert record.key_topics == ["suv"]
            assert record.context_score == 75
            assert record.response_style == "priority"
            assert record.updated_at == T0 + timedelta(minutes=5)
            assert await store.get("nobody") is None
        finally:
            await db.close()

    @pytest.mark.asyncio
    async def test_recent_messages_oldest_first(self):
        db = await open_database()
        try:
            store = DbConversationContextStore(db)
            for i in range(5):
                await store.save_message("lead_1", f"msg {i}", "in", T0 + timedelta(minutes=i), "general_inquiry", 0.1)
            await store.save_message("lead_2", "other", "out", T0)

            messages = await store.get_recent_messages("lead_1", limit=3)
            assert [m.message for m in messages] == ["msg 2", "msg 3", "msg 4"]
            assert messages[0].timestamp == T0 + timedelta(minutes=2)
            assert messages[0].sentiment == pytest.approx(0.1)
        finally:
            await db.close()

    @pytest.mark.asyncio
    async def test_manager_rebuilds_from_database(self):
        db = await open_database()
        try:
            store = DbConversationContextStore(db)
            clock = FakeClock()
            first = ConversationManager(store=store, clock=clock)
            await first.analyze_message("lead_1", "what colors?", timestamp=T0)
            await first.analyze_message("lead_1", "how much is the sedan?", timestamp=T0 + timedelta(minutes=3))

            second = ConversationManager(store=store, clock=clock)
            context = await second.get_context("lead_1")
            assert [turn.intent for turn in context.history] == ["information_seeking", "purchase_intent"]

            record = await store.get("lead_1")
            assert "sedan" in record.key_topics
        finally:
            await db.close()
