"""
ConversationContextStore protocol for the lead intelligence engine.

Abstracts conversation persistence so the manager can work with either
in-memory dicts or a database backend.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@dataclass
class ContextRecord:
    """Persisted conversation summary, one per lead."""
    lead_id: str
    summary: str
    key_topics: List[str] = field(default_factory=list)
    last_interaction_type: Optional[str] = None
    context_score: int = 0
    response_style: str = "standard"
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lead_id": self.lead_id,
            "summary": self.summary,
            "key_topics": list(self.key_topics),
            "last_interaction_type": self.last_interaction_type,
            "context_score": self.context_score,
            "response_style": self.response_style,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class StoredMessage:
    """A persisted message used to rebuild a context."""
    lead_id: str
    message: str
    direction: str
    timestamp: datetime
    intent: Optional[str] = None
    sentiment: float = 0.0


@runtime_checkable
class ConversationContextStore(Protocol):
    """Protocol for conversation context persistence. Failures raise StoreUnavailableError."""

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
        """Insert or replace the summary for a lead."""
        ...

    async def get(self, lead_id: str) -> Optional[ContextRecord]:
        """Get the stored summary for a lead."""
        ...

    async def save_message(
        self,
        lead_id: str,
        message: str,
        direction: str,
        timestamp: datetime,
        intent: Optional[str] = None,
        sentiment: float = 0.0,
    ) -> None:
        """Append a message to the lead's history."""
        ...

    async def get_recent_messages(self, lead_id: str, limit: int = 20) -> List[StoredMessage]:
        """Most recent messages, oldest first."""
        ...


class InMemoryConversationContextStore:
    """Dict-backed conversation context store."""

    def __init__(self):
        self._records: Dict[str, ContextRecord] = {}
        self._messages: Dict[str, List[StoredMessage]] = {}

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
        self._records[lead_id] = ContextRecord(
            lead_id=lead_id,
            summary=summary,
            key_topics=list(key_topics),
            last_interaction_type=last_interaction_type,
            context_score=context_score,
            response_style=response_style,
            updated_at=updated_at,
        )

    async def get(self, lead_id: str) -> Optional[ContextRecord]:
        return self._records.get(lead_id)

    async def save_message(
        self,
        lead_id: str,
        message: str,
        direction: str,
        timestamp: datetime,
        intent: Optional[str] = None,
        sentiment: float = 0.0,
    ) -> None:
        self._messages.setdefault(lead_id, []).append(StoredMessage(
            lead_id=lead_id,
            message=message,
            direction=direction,
            timestamp=timestamp,
            intent=intent,
            sentiment=sentiment,
        ))

    async def get_recent_messages(self, lead_id: str, limit: int = 20) -> List[StoredMessage]:
        return list(self._messages.get(lead_id, [])[-limit:])
