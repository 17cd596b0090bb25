"""
Customer Journey API Routes for the lead intelligence engine.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from journey.models import Channel, MilestoneType, Outcome
from ..middleware.metrics import record_journey_update, record_store_failure
from ..services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


# Models
class TouchpointCreate(BaseModel):
    """Touchpoint recording request. Unknown types are accepted."""
    type: str = Field(..., min_length=1, max_length=40)
    channel: Channel
    payload: Dict[str, Any] = {}
    outcome: Optional[Outcome] = None


class MilestoneCreate(BaseModel):
    """Milestone recording request."""
    type: MilestoneType
    payload: Dict[str, Any] = {}


def _update_response(update) -> Dict[str, Any]:
    record_journey_update(
        update.previous_stage.value,
        update.journey.stage.value,
        update.journey.conversion_probability,
    )
    if not update.persisted:
        record_store_failure("journey")
    return {
        **update.insights().to_dict(),
        "previous_stage": update.previous_stage.value,
        "stage_changed": update.stage_changed,
        "duplicate": update.duplicate,
    }


@router.post("/journeys/{lead_id}/touchpoints")
async def track_touchpoint(
    lead_id: str,
    request: TouchpointCreate,
    services: Services = Depends(get_services),
):
    """Record a touchpoint and return the recomputed journey insights."""
    update = await services.tracker.track_touchpoint(
        lead_id,
        request.type,
        request.channel,
        payload=request.payload,
        outcome=request.outcome,
    )
    body = _update_response(update)
    body["touchpoint"] = update.touchpoint.to_dict()
    return body


@router.post("/journeys/{lead_id}/milestones")
async def track_milestone(
    lead_id: str,
    request: MilestoneCreate,
    services: Services = Depends(get_services),
):
    """Record a milestone. Repeating a milestone type is a no-op."""
    update = await services.tracker.track_milestone(lead_id, request.type, payload=request.payload)
    return _update_response(update)


@router.get("/journeys/{lead_id}")
async def get_journey(lead_id: str, services: Services = Depends(get_services)):
    """Full journey; leads without history get the default journey."""
    journey = await services.tracker.get_journey(lead_id)
    return journey.to_dict()


@router.get("/journeys/{lead_id}/insights")
async def get_journey_insights(lead_id: str, services: Services = Depends(get_services)):
    insights = await services.tracker.get_journey_insights(lead_id)
    return insights.to_dict()
