"""
Conversion probability and time-to-decision estimation.
"""

import math
from datetime import datetime
from typing import Dict, Optional

from .models import CustomerJourney, JourneyStage, utcnow
from .stage_calculator import average_engagement

MIN_PROBABILITY = 0.02
MAX_PROBABILITY = 0.98

STAGE_BASE_PROBABILITY: Dict[JourneyStage, float] = {
    JourneyStage.AWARENESS: 0.2,
    JourneyStage.CONSIDERATION: 0.5,
    JourneyStage.DECISION: 0.8,
    JourneyStage.PURCHASE: 0.95,
}
DEFAULT_BASE_PROBABILITY = 0.3

STAGE_BASE_DAYS: Dict[JourneyStage, float] = {
    JourneyStage.AWARENESS: 45,
    JourneyStage.CONSIDERATION: 21,
    JourneyStage.DECISION: 7,
    JourneyStage.PURCHASE: 1,
}
DEFAULT_BASE_DAYS = 30

ENGAGEMENT_WINDOW = 5
MILESTONE_BONUS = 0.05
# Penalties stack: past 14 days both apply
STALE_PENALTIES = ((7, 0.1), (14, 0.2))
NO_TOUCHPOINT_DAYS = 30.0


def days_since_last_touchpoint(
    journey: CustomerJourney,
    now: Optional[datetime] = None,
    default: float = NO_TOUCHPOINT_DAYS,
) -> float:
    if not journey.touchpoints:
        return default
    now = now or utcnow()
    delta = now - journey.touchpoints[-1].timestamp
    return max(0.0, delta.total_seconds() / 86400)


def recent_engagement(journey: CustomerJourney) -> float:
    return average_engagement(journey.touchpoints[-ENGAGEMENT_WINDOW:])


def calculate_conversion_probability(
    journey: CustomerJourney,
    now: Optional[datetime] = None,
) -> float:
    """
    Likelihood of a completed purchase, kept strictly inside (0, 1).

    stage base + (recent engagement - 0.5) * 0.3 + 0.05 per milestone,
    minus staleness penalties.
    """
    probability = STAGE_BASE_PROBABILITY.get(journey.stage, DEFAULT_BASE_PROBABILITY)
    probability += (recent_engagement(journey) - 0.5) * 0.3
    probability += len(journey.milestones) * MILESTONE_BONUS

    days = days_since_last_touchpoint(journey, now)
    for threshold, penalty in STALE_PENALTIES:
        if days > threshold:
            probability -= penalty

    return round(min(MAX_PROBABILITY, max(MIN_PROBABILITY, probability)), 4)


def estimate_time_to_decision(journey: CustomerJourney) -> int:
    """Days until the lead is expected to decide; never below 1."""
    days = STAGE_BASE_DAYS.get(journey.stage, DEFAULT_BASE_DAYS)

    engagement = recent_engagement(journey)
    if engagement > 0.7:
        days *= 0.7
    elif engagement < 0.3:
        days *= 1.5

    # Half-up rounding
    return max(1, int(math.floor(days + 0.5)))
