"""
Intent Recognition for the lead intelligence engine.

Rule-based classification of a customer message against a weighted
pattern table.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

from .patterns import DEFAULT_INTENT_PATTERNS, IntentCategory, IntentPattern

logger = logging.getLogger(__name__)

NO_MATCH_CONFIDENCE = 0.5


@dataclass
class IntentResult:
    """Result of intent recognition."""
    primary_intent: str
    confidence: float
    secondary_intent: Optional[str] = None
    scores: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary_intent": self.primary_intent,
            "confidence": self.confidence,
            "secondary_intent": self.secondary_intent,
            "scores": dict(self.scores),
        }


class IntentRecognizer:
    """
    Classifies customer intent from messages.

    Each category scores the summed weight of its distinct matching
    patterns, capped at 1.0. The highest score wins; ties go to the
    category declared first in the pattern table.
    """

    def __init__(self, patterns: Optional[Sequence[IntentPattern]] = None):
        """
        Initialize the recognizer.

        Args:
            patterns: Pattern table; defaults to the built-in English table
        """
        self.patterns = tuple(patterns) if patterns is not None else DEFAULT_INTENT_PATTERNS
        for pattern in self.patterns:
            if not isinstance(pattern, IntentPattern):
                raise TypeError(f"Expected IntentPattern, got {type(pattern).__name__}")

    @property
    def categories(self):
        """Categories in declaration order."""
        return list(dict.fromkeys(p.category for p in self.patterns))

    def recognize(self, message: Optional[str]) -> IntentResult:
        """
        Recognize the intent of a message.

        Args:
            message: Customer message; empty or missing text is allowed

        Returns:
            IntentResult; general_inquiry at 0.5 when nothing matches
        """
        text = (message or "").strip()
        if not text:
            return IntentResult(IntentCategory.GENERAL_INQUIRY.value, NO_MATCH_CONFIDENCE)

        scores: Dict[str, float] = {}
        seen = set()
        for pattern in self.patterns:
            key = (pattern.category, pattern.pattern)
            if key in seen:
                continue
            seen.add(key)
            if pattern.matches(text):
                scores[pattern.category] = scores.get(pattern.category, 0.0) + pattern.weight

        scores = {
            category: round(min(score, 1.0), 4)
            for category, score in scores.items()
            if score > 0
        }
        if not scores:
            return IntentResult(IntentCategory.GENERAL_INQUIRY.value, NO_MATCH_CONFIDENCE)

        order = {category: i for i, category in enumerate(self.categories)}
        ranked = sorted(scores.items(), key=lambda x: (-x[1], order[x[0]]))
        primary, confidence = ranked[0]
        secondary = ranked[1][0] if len(ranked) > 1 else None

        logger.debug(f"Recognized intent {primary} ({confidence})")
        return IntentResult(
            primary_intent=primary,
            confidence=confidence,
            secondary_intent=secondary,
            scores=scores,
        )
