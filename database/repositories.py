"""
Repository classes for the lead intelligence engine data access layer.

Each repository encapsulates CRUD operations for a specific model.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    CustomerJourneyRecord, ConversationContextRecord, ConversationMessageRecord,
)

logger = logging.getLogger(__name__)


class JourneyRepository:
    """Data access for customer journeys."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_lead(self, lead_id: str) -> Optional[CustomerJourneyRecord]:
        result = await self.session.execute(
            select(CustomerJourneyRecord).where(CustomerJourneyRecord.lead_id == lead_id)
        )
        return result.scalar_one_or_none()

    async def upsert(self, lead_id: str, **values: Any) -> CustomerJourneyRecord:
        """Idempotent write keyed by lead_id."""
        record = await self.session.merge(CustomerJourneyRecord(lead_id=lead_id, **values))
        await self.session.flush()
        return record

    async def count_by_stage(self) -> Dict[str, int]:
        result = await self.session.execute(
            select(CustomerJourneyRecord.stage, func.count(CustomerJourneyRecord.lead_id))
            .group_by(CustomerJourneyRecord.stage)
        )
        return {stage: count for stage, count in result.all()}


class ConversationContextRepository:
    """Data access for conversation context summaries and messages."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_lead(self, lead_id: str) -> Optional[ConversationContextRecord]:
        result = await self.session.execute(
            select(ConversationContextRecord).where(ConversationContextRecord.lead_id == lead_id)
        )
        return result.scalar_one_or_none()

    async def upsert(self, lead_id: str, **values: Any) -> ConversationContextRecord:
        """Insert or update the single summary row of a lead."""
        record = await self.get_by_lead(lead_id)
        if record is None:
            record = ConversationContextRecord(lead_id=lead_id, **values)
            self.session.add(record)
        else:
            for k, v in values.items():
                if hasattr(record, k):
                    setattr(record, k, v)
        await self.session.flush()
        return record

    async def add_message(
        self,
        lead_id: str,
        direction: str,
        content: str,
        intent: Optional[str] = None,
        sentiment: float = 0.0,
        created_at: Optional[datetime] = None,
    ) -> ConversationMessageRecord:
        msg = ConversationMessageRecord(
            lead_id=lead_id,
            direction=direction,
            content=content,
            intent=intent,
            sentiment=sentiment,
            created_at=created_at or datetime.utcnow(),
        )
        self.session.add(msg)
        await self.session.flush()
        return msg

    async def get_recent_messages(
        self, lead_id: str, limit: int = 20
    ) -> List[ConversationMessageRecord]:
        """Most recent messages, returned oldest first."""
        result = await self.session.execute(
            select(ConversationMessageRecord)
            .where(ConversationMessageRecord.lead_id == lead_id)
            .order_by(ConversationMessageRecord.created_at.desc())
            .limit(limit)
        )
        return list(reversed(result.scalars().all()))
