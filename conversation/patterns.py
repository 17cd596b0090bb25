"""
Pattern tables for conversational analysis.

Intent patterns, sentiment word lists, entity lexicons and escalation cues
are plain data so they can be swapped per deployment or language.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Pattern, Tuple


class IntentCategory(str, Enum):
    """Intent categories produced by the recognizer."""
    PURCHASE_INTENT = "purchase_intent"
    INFORMATION_SEEKING = "information_seeking"
    SCHEDULING_INTENT = "scheduling_intent"
    OBJECTION_CONCERN = "objection_concern"
    COMPLAINT_ISSUE = "complaint_issue"
    POSITIVE_SENTIMENT = "positive_sentiment"
    GENERAL_INQUIRY = "general_inquiry"


class EscalationSignal(str, Enum):
    """Named signals that route a conversation to a human."""
    LEGAL_THREAT = "legal_threat"
    MANAGER_REQUEST = "manager_request"
    HIGH_VALUE_CUSTOMER = "high_value_customer"
    MULTIPLE_OBJECTIONS = "multiple_objections"
    COMMUNICATION_BREAKDOWN = "communication_breakdown"


DEFAULT_PATTERN_WEIGHT = 0.2


@dataclass(frozen=True)
class IntentPattern:
    """One case-insensitive regex contributing `weight` to a category."""
    category: str
    pattern: str
    weight: float = DEFAULT_PATTERN_WEIGHT
    _regex: Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        # Invalid regexes fail here rather than on the first message
        object.__setattr__(self, "_regex", re.compile(self.pattern, re.IGNORECASE))

    @property
    def regex(self) -> Pattern[str]:
        return self._regex

    def matches(self, text: str) -> bool:
        return self.regex.search(text) is not None


def _patterns(category: IntentCategory, *regexes: str) -> List[IntentPattern]:
    return [IntentPattern(category.value, r) for r in regexes]


# Declaration order breaks score ties
DEFAULT_INTENT_PATTERNS: Tuple[IntentPattern, ...] = tuple(
    _patterns(
        IntentCategory.PURCHASE_INTENT,
        r"\b(buy|purchase|financing|finance|payment|down payment|monthly payment)\b",
        r"\b(how much|price|cost|affordable|budget)\b",
        r"\b(ready to|want to|looking to|interested in) (buy|purchase)\b",
        r"\b(trade in|trade-in|tradein)\b",
    )
    + _patterns(
        IntentCategory.INFORMATION_SEEKING,
        r"\b(tell me|what|how|when|where|why|specs|features|options)\b",
        r"\b(available|inventory|stock|colors|trim|model)\b",
        r"\b(mpg|mileage|warranty|maintenance)\b",
    )
    + _patterns(
        IntentCategory.SCHEDULING_INTENT,
        r"\b(appointment|schedule|meet|visit|come in|test drive)\b",
        r"\b(available|free|when can|what time)\b",
        r"\b(today|tomorrow|this week|next week|weekend)\b",
    )
    + _patterns(
        IntentCategory.OBJECTION_CONCERN,
        r"\b(expensive|too much|can't afford|budget|cheaper)\b",
        r"\b(think about|consider|maybe|not sure|hesitant)\b",
        r"\b(other dealers|competitors|shopping around)\b",
    )
    + _patterns(
        IntentCategory.COMPLAINT_ISSUE,
        r"\b(problem|issue|wrong|mistake|unhappy|disappointed)\b",
        r"\b(not working|broken|defective|poor service)\b",
        r"\b(refund|return|cancel|speak to manager)\b",
    )
    + _patterns(
        IntentCategory.POSITIVE_SENTIMENT,
        r"\b(great|excellent|amazing|perfect|love|awesome)\b",
        r"\b(thank you|thanks|appreciate|helpful)\b",
        r"\b(exactly|that's what|sounds good)\b",
    )
)


@dataclass(frozen=True)
class SentimentLexicon:
    """Word stems matched as substrings of each token."""
    positive: Tuple[str, ...] = (
        "good", "great", "excellent", "love", "perfect",
        "amazing", "awesome", "thank", "appreciate",
    )
    negative: Tuple[str, ...] = (
        "bad", "terrible", "hate", "awful", "disappointed",
        "problem", "issue", "wrong", "expensive",
    )


@dataclass(frozen=True)
class EntityLexicon:
    """Regexes for vehicle, price and relative-time mentions."""
    vehicle_patterns: Tuple[str, ...] = (
        r"\b(sedan|suv|truck|coupe|convertible|hatchback)\b",
        r"\b(toyota|honda|ford|chevrolet|gm|nissan|hyundai)\b",
        r"\b(camry|accord|f-150|silverado|altima|elantra)\b",
    )
    # Currency amounts first so "$35,000" is one token, then bare numbers with optional k
    price_pattern: str = (
        r"\$\s?\d{1,3}(?:,\d{3})+(?:\.\d+)?"
        r"|\$\s?\d+(?:\.\d+)?k?\b"
        r"|\b\d{1,3}(?:,\d{3})+(?:\.\d+)?\b"
        r"|\b\d+(?:\.\d+)?k?\b"
    )
    # A bare "k" amount is money only when one of these precedes it closely
    money_cue_pattern: str = r"\b(budget|price|priced|pay|paying|offer|spend|afford|cost|costs)\b"
    money_cue_window: int = 30
    time_pattern: str = (
        r"\b(today|tomorrow|monday|tuesday|wednesday|thursday|friday|saturday|sunday"
        r"|this week|next week|this weekend)\b"
    )


@dataclass(frozen=True)
class EscalationCues:
    """Keyword cues for named escalation signals and urgency."""
    signal_keywords: Dict[str, Tuple[str, ...]] = field(default_factory=lambda: {
        EscalationSignal.MANAGER_REQUEST.value: (
            "speak to manager", "speak to a manager", "talk to a manager",
            "your manager", "supervisor", "someone in charge", "real person",
            "human agent",
        ),
        EscalationSignal.LEGAL_THREAT.value: (
            "lawyer", "attorney", "lawsuit", "sue you", "legal action",
            "better business bureau", "consumer protection", "small claims",
        ),
        EscalationSignal.COMMUNICATION_BREAKDOWN.value: (
            "don't understand", "do not understand", "makes no sense",
            "not what i asked", "you're not listening", "you are not listening",
            "already told you", "confused",
        ),
    })
    urgency_keywords: Tuple[str, ...] = (
        "asap", "urgent", "immediately", "right away", "as soon as possible",
    )


TOPIC_PATTERN = r"\b(sedan|suv|truck|financing|trade|price|payment)\b"
