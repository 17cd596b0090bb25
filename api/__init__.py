"""
API Module for the lead intelligence engine.

FastAPI application with routes for:
- Inbound interaction events
- Customer journeys
- Conversation analysis
"""

from .main import create_app, app

__all__ = ["create_app", "app"]
