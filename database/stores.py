"""
Database-backed stores for the lead intelligence engine.

Implements the JourneyStore and ConversationContextStore protocols on top
of the repository layer, with per-call timeouts and bounded retries.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from conversation.context_store import ContextRecord, StoredMessage
from journey.models import CustomerJourney, new_journey
from journey.store import StoreUnavailableError

from .repositories import ConversationContextRepository, JourneyRepository
from .session import Database

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (SQLAlchemyError, asyncio.TimeoutError, OSError)


def to_db_time(value: Optional[datetime]) -> datetime:
    """Naive UTC, as stored in DateTime columns."""
    if value is None:
        return datetime.utcnow()
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class _DbStore:
    """Runs repository calls in a session with a timeout and retries."""

    def __init__(
        self,
        db: Database,
        timeout: float = 5.0,
        max_retries: int = 3,
        retry_delay: float = 0.2,
    ):
        self.db = db
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

    async def _in_session(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self.db.session() as session:
            return await operation(session)

    async def _run(self, name: str, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        last_error: Optional[BaseException] = None
        for attempt in range(self.max_retries):
            try:
                return await asyncio.wait_for(self._in_session(operation), timeout=self.timeout)
            except RETRYABLE_ERRORS as e:
                last_error = e
                if attempt < self.max_retries - 1:
                    logger.warning(f"{name} failed (attempt {attempt + 1}/{self.max_retries}): {e!r}")
                    await asyncio.sleep(self.retry_delay * (attempt + 1))
        raise StoreUnavailableError(f"{name} failed after {self.max_retries} attempts: {last_error!r}") from last_error


class DbJourneyStore(_DbStore):
    """Persistent journey store. Touchpoints and milestones are kept as JSON."""

    async def get(self, lead_id: str) -> CustomerJourney:
        async def load(session: AsyncSession):
            record = await JourneyRepository(session).get_by_lead(lead_id)
            if record is None:
                return None
            return {
                "lead_id": record.lead_id,
                "stage": record.stage,
                "touchpoints": record.touchpoints,
                "milestones": record.milestones,
                "next_best_action": record.next_best_action,
                "estimated_time_to_decision": record.estimated_time_to_decision,
                "conversion_probability": record.conversion_probability,
                "last_updated": from_db_time(record.last_updated),
            }

        data = await self._run(f"Journey load for lead {lead_id}", load)
        if data is None:
            return new_journey(lead_id)
        return CustomerJourney.from_record(data)

    async def save(self, journey: CustomerJourney) -> None:
        data = journey.to_dict()

        async def write(session: AsyncSession):
            await JourneyRepository(session).upsert(
                journey.lead_id,
                stage=data["stage"],
                touchpoints=data["touchpoints"],
                milestones=data["milestones"],
                next_best_action=data["next_best_action"],
                estimated_time_to_decision=data["estimated_time_to_decision"],
                conversion_probability=data["conversion_probability"],
                last_updated=to_db_time(journey.last_updated),
            )

        await self._run(f"Journey save for lead {journey.lead_id}", write)


class DbConversationContextStore(_DbStore):
    """Persistent conversation context store (ai_conversation_context + messages)."""

    async def upsert(
        self,
        lead_id: str,
        summary: str,
        key_topics: List[str],
        last_interaction_type: Optional[str],
        context_score: int,
        response_style: str,
        updated_at: datetime,
    ) -> None:
        async def write(session: AsyncSession):
            await ConversationContextRepository(session).upsert(
                lead_id,
                conversation_summary=summary,
                key_topics=list(key_topics),
                last_interaction_type=last_interaction_type,
                context_score=context_score,
                response_style=response_style,
                updated_at=to_db_time(updated_at),
            )

        await self._run(f"Context upsert for lead {lead_id}", write)

    async def get(self, lead_id: str) -> Optional[ContextRecord]:
        async def load(session: AsyncSession):
            record = await ConversationContextRepository(session).get_by_lead(lead_id)
            if record is None:
                return None
            return ContextRecord(
                lead_id=record.lead_id,
                summary=record.conversation_summary or "",
                key_topics=list(record.key_topics or []),
                last_interaction_type=record.last_interaction_type,
                context_score=record.context_score or 0,
                response_style=record.response_style or "standard",
                updated_at=from_db_time(record.updated_at),
            )

        return await self._run(f"Context load for lead {lead_id}", load)

    async def save_message(
        self,
        lead_id: str,
        message: str,
        direction: str,
        timestamp: datetime,
        intent: Optional[str] = None,
        sentiment: float = 0.0,
    ) -> None:
        async def write(session: AsyncSession):
            await ConversationContextRepository(session).add_message(
                lead_id=lead_id,
                direction=direction,
                content=message,
                intent=intent,
                sentiment=sentiment,
                created_at=to_db_time(timestamp),
            )

        await self._run(f"Message save for lead {lead_id}", write)

    async def get_recent_messages(self, lead_id: str, limit: int = 20) -> List[StoredMessage]:
        async def load(session: AsyncSession):
            records = await ConversationContextRepository(session).get_recent_messages(lead_id, limit=limit)
            return [
                StoredMessage(
                    lead_id=r.lead_id,
                    message=r.content,
                    direction=r.direction,
                    timestamp=from_db_time(r.created_at),
                    intent=r.intent,
                    sentiment=r.sentiment or 0.0,
                )
                for r in records
            ]

        return await self._run(f"Message load for lead {lead_id}", load)
