"""
Event handling for the lead intelligence engine.
"""

from .events import CHANNEL_TOUCHPOINTS, InboundEvent
from .orchestrator import EventOrchestrator, EventResult

__all__ = [
    "CHANNEL_TOUCHPOINTS",
    "InboundEvent",
    "EventOrchestrator",
    "EventResult",
]
