"""
API Routes for the lead intelligence engine.
"""

from . import events, journeys, conversations

__all__ = ["events", "journeys", "conversations"]
