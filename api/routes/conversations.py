"""
Conversation Analysis API Routes for the lead intelligence engine.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from journey.store import StoreUnavailableError
from .events import MessageDirection
from ..middleware.metrics import record_intent, record_store_failure
from ..services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


class AnalyzeRequest(BaseModel):
    message: str = Field(default="", max_length=5000)
    direction: MessageDirection = MessageDirection.IN
    timestamp: Optional[datetime] = None
    payload: Dict[str, Any] = {}


@router.get("/conversations/status")
async def system_status(services: Services = Depends(get_services)):
    """Aggregate status over active (cached) conversations."""
    return services.conversations.get_system_status().to_dict()


@router.post("/conversations/{lead_id}/analyze")
async def analyze_message(
    lead_id: str,
    request: AnalyzeRequest,
    services: Services = Depends(get_services),
):
    """Analyze a message without recording a journey touchpoint."""
    result = await services.conversations.analyze_message(
        lead_id,
        request.message,
        direction=request.direction.value,
        timestamp=request.timestamp,
        payload=request.payload,
    )
    record_intent(result.intent, result.requires_escalation)
    if not result.persisted:
        record_store_failure("conversation")
    return result.to_dict()


@router.get("/conversations/{lead_id}/context")
async def get_context(lead_id: str, services: Services = Depends(get_services)):
    """Live context plus the stored summary."""
    context = await services.conversations.get_context(lead_id)
    if not context.history:
        raise HTTPException(status_code=404, detail="No conversation for this lead")

    stored = None
    try:
        record = await services.context_store.get(lead_id)
        stored = record.to_dict() if record else None
    except StoreUnavailableError as e:
        logger.warning(f"Stored context unavailable for lead {lead_id}: {e}")

    return {"context": context.to_dict(), "stored": stored}


@router.get("/conversations/{lead_id}/insights")
async def get_insights(lead_id: str, services: Services = Depends(get_services)):
    context, insights = await services.conversations.get_conversation_insights(lead_id)
    return {
        "lead_id": lead_id,
        "has_context": context is not None,
        "insights": insights.to_dict(),
    }
