"""
Inbound Event API Routes for the lead intelligence engine.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from engine.events import InboundEvent
from ..middleware.metrics import record_intent, record_journey_update, record_store_failure
from ..services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request / Response Models ─────────────────────────────────────

class MessageDirection(str, Enum):
    IN = "in"
    OUT = "out"


class EventRequest(BaseModel):
    lead_id: str = Field(..., min_length=1, max_length=64)
    message_text: str = Field(default="", max_length=5000)
    direction: MessageDirection = MessageDirection.IN
    channel: str = Field(default="sms", max_length=20)
    timestamp: Optional[datetime] = None
    payload: Dict[str, Any] = {}


class EventResponse(BaseModel):
    lead_id: str
    analysis: Optional[Dict[str, Any]] = None
    journey: Optional[Dict[str, Any]] = None
    milestone: Optional[Dict[str, Any]] = None
    persisted: bool
    suggested_actions: List[str] = []


# ── Endpoints ─────────────────────────────────────────────────────

@router.post("/events", response_model=EventResponse)
async def ingest_event(request: EventRequest, services: Services = Depends(get_services)):
    """Process one interaction event through conversation analysis and journey tracking."""
    event = InboundEvent(
        lead_id=request.lead_id,
        message_text=request.message_text,
        direction=request.direction.value,
        channel=request.channel,
        timestamp=request.timestamp,
        payload=request.payload,
    )
    result = await services.orchestrator.handle_event(event)

    if result.analysis:
        record_intent(result.analysis.intent, result.analysis.requires_escalation)
        if not result.analysis.persisted:
            record_store_failure("conversation")
    if result.journey:
        journey = result.journey.journey
        record_journey_update(result.journey.previous_stage.value, journey.stage.value, journey.conversion_probability)
        if not result.journey.persisted:
            record_store_failure("journey")

    body = result.to_dict()
    body["suggested_actions"] = result.analysis.suggested_actions if result.analysis else []
    return EventResponse(**body)
