"""
Service initialization and dependency injection for the lead intelligence API.

Creates and manages all service instances used by the API. One Services
container is built per application and kept on `app.state`.
"""

import logging
from typing import Optional

from fastapi import Request

from config.settings import Settings
from conversation.cache import ConversationContextCache
from conversation.context_store import ConversationContextStore, InMemoryConversationContextStore
from conversation.escalation import EscalationDetector
from conversation.manager import ConversationManager
from database.session import Database
from database.stores import DbConversationContextStore, DbJourneyStore
from engine.orchestrator import EventOrchestrator
from journey.store import InMemoryJourneyStore, JourneyStore
from journey.tracker import JourneyTracker

logger = logging.getLogger(__name__)


class Services:
    """Container for all application services."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.database: Optional[Database] = None
        self.journey_store: Optional[JourneyStore] = None
        self.context_store: Optional[ConversationContextStore] = None
        self.tracker: Optional[JourneyTracker] = None
        self.conversations: Optional[ConversationManager] = None
        self.orchestrator: Optional[EventOrchestrator] = None
        self._initialized = False

    async def initialize(self):
        """Initialize all services."""
        if self._initialized:
            return

        await self._init_stores()
        self._init_engines()
        self._initialized = True
        logger.info("All services initialized successfully")

    async def _init_stores(self):
        """Database-backed stores when DATABASE_URL is set, in-memory otherwise."""
        s = self.settings

        if s.uses_database:
            self.database = Database(
                s.database_url,
                pool_size=s.db_pool_size,
                max_overflow=s.db_max_overflow,
            )
            await self.database.init()
            store_kwargs = {
                "timeout": s.store_timeout_seconds,
                "max_retries": s.store_max_retries,
                "retry_delay": s.store_retry_delay_seconds,
            }
            self.journey_store = DbJourneyStore(self.database, **store_kwargs)
            self.context_store = DbConversationContextStore(self.database, **store_kwargs)
            logger.info("Database-backed stores ready")
        else:
            logger.warning("DATABASE_URL not set, using in-memory stores")
            self.journey_store = InMemoryJourneyStore()
            self.context_store = InMemoryConversationContextStore()

    def _init_engines(self):
        """Initialize the journey tracker, conversation manager and orchestrator."""
        s = self.settings

        self.tracker = JourneyTracker(self.journey_store, stage_policy=s.stage_policy)
        self.conversations = ConversationManager(
            store=self.context_store,
            detector=EscalationDetector(high_value_threshold=s.high_value_threshold),
            cache=ConversationContextCache(
                maxsize=s.context_cache_size,
                ttl_seconds=s.context_cache_ttl_seconds,
            ),
        )
        self.orchestrator = EventOrchestrator(self.tracker, self.conversations)
        logger.info(f"Engines ready (stage policy: {s.stage_policy})")

    async def shutdown(self):
        if self.database:
            await self.database.close()

    @property
    def is_ready(self) -> bool:
        return self._initialized and self.orchestrator is not None

    def health(self) -> dict:
        """Return health status of all services."""
        return {
            "initialized": self._initialized,
            "database": self.database is not None,
            "journey_tracker": self.tracker is not None,
            "conversation_manager": self.conversations is not None,
            "orchestrator": self.orchestrator is not None,
            "context_cache": self.conversations.cache.stats() if self.conversations else None,
        }


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the application's services."""
    return request.app.state.services
