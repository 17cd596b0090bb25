"""
Entity Extraction for the lead intelligence engine.

Extracts key entities from customer messages:
- Vehicle body styles, brands and models
- Prices (currency amounts or bare numbers with an optional "k")
- Relative times (weekdays, today, next week)
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .patterns import EntityLexicon

logger = logging.getLogger(__name__)


class EntityType(str, Enum):
    VEHICLE = "vehicle"
    PRICE = "price"
    TIME = "time"


ENTITY_CONFIDENCE: Dict[EntityType, float] = {
    EntityType.VEHICLE: 0.8,
    EntityType.PRICE: 0.9,
    EntityType.TIME: 0.7,
}


@dataclass(frozen=True)
class Entity:
    """One extracted entity."""
    type: EntityType
    value: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "value": self.value, "confidence": self.confidence}


def parse_price(value: str) -> Optional[float]:
    """Numeric amount of a price token: "$35,000" -> 35000.0, "40k" -> 40000.0."""
    text = value.strip().lower().lstrip("$").strip().replace(",", "")
    multiplier = 1.0
    if text.endswith("k"):
        multiplier = 1000.0
        text = text[:-1]
    try:
        return float(text) * multiplier
    except ValueError:
        return None


class EntityExtractor:
    """
    Extracts entities from customer messages.

    Uses the regexes of an EntityLexicon. Vehicle and time values are
    lowercased; price values keep their original text.
    """

    def __init__(self, lexicon: Optional[EntityLexicon] = None):
        """
        Initialize the entity extractor.

        Args:
            lexicon: Optional lexicon overriding the built-in regexes
        """
        self.lexicon = lexicon or EntityLexicon()
        self._build_patterns()

    def _build_patterns(self):
        """Compile lexicon regexes."""
        self.vehicle_patterns = [re.compile(p, re.IGNORECASE) for p in self.lexicon.vehicle_patterns]
        self.price_pattern = re.compile(self.lexicon.price_pattern, re.IGNORECASE)
        self.time_pattern = re.compile(self.lexicon.time_pattern, re.IGNORECASE)
        self.money_cue_pattern = re.compile(self.lexicon.money_cue_pattern, re.IGNORECASE)

    def extract(self, message: Optional[str]) -> List[Entity]:
        """
        Extract all entities from a message.

        Args:
            message: Customer message

        Returns:
            Entities in order vehicle, price, time
        """
        if not message:
            return []

        entities: List[Entity] = []
        entities.extend(self._extract_vehicles(message))
        entities.extend(self._extract_prices(message))
        entities.extend(self._extract_times(message))
        return entities

    def _extract_vehicles(self, message: str) -> List[Entity]:
        found = []
        for pattern in self.vehicle_patterns:
            for match in pattern.finditer(message):
                found.append(self._entity(EntityType.VEHICLE, match.group(0).lower()))
        return found

    def _extract_prices(self, message: str) -> List[Entity]:
        return [
            self._entity(EntityType.PRICE, match.group(0))
            for match in self.price_pattern.finditer(message)
        ]

    def _extract_times(self, message: str) -> List[Entity]:
        return [
            self._entity(EntityType.TIME, match.group(0).lower())
            for match in self.time_pattern.finditer(message)
        ]

    def monetary_entities(self, message: Optional[str]) -> List[Entity]:
        """
        Price entities that clearly denote money.

        A "$" amount always counts. A bare "k" amount counts when a money
        cue such as "budget" or "pay" closely precedes it. Plain numbers
        (zip codes, phone numbers) never count.
        """
        if not message:
            return []

        window = self.lexicon.money_cue_window
        found = []
        for match in self.price_pattern.finditer(message):
            value = match.group(0)
            if value.startswith("$"):
                found.append(self._entity(EntityType.PRICE, value))
            elif value.lower().endswith("k"):
                preceding = message[max(0, match.start() - window):match.start()]
                if self.money_cue_pattern.search(preceding):
                    found.append(self._entity(EntityType.PRICE, value))
        return found

    @staticmethod
    def _entity(entity_type: EntityType, value: str) -> Entity:
        return Entity(type=entity_type, value=value, confidence=ENTITY_CONFIDENCE[entity_type])

    @staticmethod
    def max_price(entities: List[Entity]) -> Optional[float]:
        """Largest parsed price among the entities, if any."""
        amounts = [
            amount for amount in (parse_price(e.value) for e in entities if e.type == EntityType.PRICE)
            if amount is not None
        ]
        return max(amounts) if amounts else None
