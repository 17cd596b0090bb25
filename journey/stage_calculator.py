"""
Journey stage calculation.

Pure functions: the stage is recomputed from history on every event and is
never ratcheted, so a lead can move back to an earlier stage when recent
signal weakens.
"""

from enum import Enum
from typing import Any, Iterable, List, Sequence, Tuple

from .models import (
    JourneyStage,
    Milestone,
    MilestoneType,
    Touchpoint,
    TouchpointType,
)

RECENT_TOUCHPOINT_WINDOW = 10
ENGAGEMENT_CONSIDERATION_THRESHOLD = 0.6

PRICE_CUES: Tuple[str, ...] = ("price", "cost")
PAYLOAD_TEXT_KEYS: Tuple[str, ...] = ("content", "message", "text")

# First match wins
MILESTONE_STAGE_RULES: Tuple[Tuple[Tuple[str, ...], JourneyStage], ...] = (
    ((MilestoneType.CONTRACT_SIGNED.value,), JourneyStage.PURCHASE),
    ((MilestoneType.OFFER_MADE.value, MilestoneType.TEST_DRIVE_SCHEDULED.value), JourneyStage.DECISION),
    (
        (
            MilestoneType.FINANCING_DISCUSSION.value,
            MilestoneType.PRICE_INQUIRY.value,
            MilestoneType.VEHICLE_INTEREST.value,
        ),
        JourneyStage.CONSIDERATION,
    ),
)

STAGE_ORDER: List[JourneyStage] = [
    JourneyStage.AWARENESS,
    JourneyStage.CONSIDERATION,
    JourneyStage.DECISION,
    JourneyStage.PURCHASE,
    JourneyStage.ADVOCACY,
]


def _type_value(item: Any) -> str:
    return item.value if isinstance(item, Enum) else str(item)


def _payload_text(touchpoint: Touchpoint) -> str:
    parts = []
    for key in PAYLOAD_TEXT_KEYS:
        value = touchpoint.payload.get(key)
        if isinstance(value, str):
            parts.append(value.lower())
    return " ".join(parts)


def has_price_cue(touchpoint: Touchpoint, cues: Iterable[str] = PRICE_CUES) -> bool:
    text = _payload_text(touchpoint)
    return bool(text) and any(cue in text for cue in cues)


def average_engagement(touchpoints: Sequence[Touchpoint], default: float = 0.5) -> float:
    if not touchpoints:
        return default
    return sum(tp.engagement_score for tp in touchpoints) / len(touchpoints)


def determine_stage_from_touchpoints(
    touchpoints: Sequence[Touchpoint],
    window: int = RECENT_TOUCHPOINT_WINDOW,
) -> JourneyStage:
    """
    Stage from the most recent touchpoints.

    Only the last `window` touchpoints are considered; older ones stay in
    the stored history but no longer influence the stage.
    """
    recent = list(touchpoints)[-window:]
    if not recent:
        return JourneyStage.AWARENESS

    types = {_type_value(tp.type) for tp in recent}

    if TouchpointType.TEST_DRIVE.value in types:
        return JourneyStage.DECISION
    if TouchpointType.APPOINTMENT.value in types or TouchpointType.PHONE_CALL.value in types:
        return JourneyStage.CONSIDERATION
    if any(has_price_cue(tp) for tp in recent):
        return JourneyStage.CONSIDERATION
    if average_engagement(recent) > ENGAGEMENT_CONSIDERATION_THRESHOLD:
        return JourneyStage.CONSIDERATION

    return JourneyStage.AWARENESS


def determine_stage_from_milestones(milestones: Sequence[Milestone]) -> JourneyStage:
    """Stage from achieved milestones; contract_signed always means purchase."""
    achieved = {_type_value(m.type) for m in milestones}
    for milestone_types, stage in MILESTONE_STAGE_RULES:
        if any(t in achieved for t in milestone_types):
            return stage
    return JourneyStage.AWARENESS


def most_advanced(*stages: JourneyStage) -> JourneyStage:
    return max(stages, key=STAGE_ORDER.index)
