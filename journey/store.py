"""
JourneyStore protocol for the lead intelligence engine.

Abstracts journey persistence so the tracker can work with either an
in-memory dict or a database backend.
"""

import copy
import logging
from typing import Any, Dict, Protocol, runtime_checkable

from .models import CustomerJourney, new_journey

logger = logging.getLogger(__name__)


class StoreUnavailableError(Exception):
    """Raised when the backing store cannot be read or written."""


@runtime_checkable
class JourneyStore(Protocol):
    """Protocol for journey persistence."""

    async def get(self, lead_id: str) -> CustomerJourney:
        """Load a journey. Absence yields a fresh default journey, never an error."""
        ...

    async def save(self, journey: CustomerJourney) -> None:
        """Upsert a journey keyed by lead_id. Raises StoreUnavailableError."""
        ...


class InMemoryJourneyStore:
    """
    Dict-backed journey store.

    Records are held in serialized form so that loads go through the same
    filtering as the database store and callers never share mutable state.
    """

    def __init__(self):
        self._records: Dict[str, Dict[str, Any]] = {}

    async def get(self, lead_id: str) -> CustomerJourney:
        record = self._records.get(lead_id)
        if record is None:
            return new_journey(lead_id)
        return CustomerJourney.from_record(copy.deepcopy(record))

    async def save(self, journey: CustomerJourney) -> None:
        self._records[journey.lead_id] = journey.to_dict()

    def put_record(self, lead_id: str, record: Dict[str, Any]) -> None:
        """Seed a raw stored record, e.g. one written by another service."""
        self._records[lead_id] = record

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, lead_id: object) -> bool:
        return lead_id in self._records
