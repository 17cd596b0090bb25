"""
Conversational Intelligence Module for the lead intelligence engine.

This module analyzes customer messages:
- Intent recognition over an injectable pattern table
- Bag-of-words sentiment scoring
- Entity extraction (vehicle, price, time)
- Rolling per-lead context with urgency and engagement
- Escalation detection
"""

from .patterns import (
    EntityLexicon,
    EscalationCues,
    EscalationSignal,
    IntentCategory,
    IntentPattern,
    SentimentLexicon,
)
from .intent_recognizer import IntentRecognizer, IntentResult
from .sentiment import SentimentAnalyzer
from .entity_extractor import Entity, EntityExtractor, EntityType
from .context import ContextAggregator, ConversationContext, Direction, UrgencyLevel
from .escalation import EscalationDecision, EscalationDetector
from .context_store import ContextRecord, ConversationContextStore, InMemoryConversationContextStore
from .cache import ConversationContextCache
from .manager import ConversationInsights, ConversationManager, IntentRecognitionResult

__all__ = [
    "EntityLexicon",
    "EscalationCues",
    "EscalationSignal",
    "IntentCategory",
    "IntentPattern",
    "SentimentLexicon",
    "IntentRecognizer",
    "IntentResult",
    "SentimentAnalyzer",
    "Entity",
    "EntityExtractor",
    "EntityType",
    "ContextAggregator",
    "ConversationContext",
    "Direction",
    "UrgencyLevel",
    "EscalationDecision",
    "EscalationDetector",
    "ContextRecord",
    "ConversationContextStore",
    "InMemoryConversationContextStore",
    "ConversationContextCache",
    "ConversationInsights",
    "ConversationManager",
    "IntentRecognitionResult",
]
