"""
Customer Journey Module for the lead intelligence engine.

This module tracks each lead's journey:
- Touchpoint and milestone recording with engagement scoring
- Stage inference (awareness, consideration, decision, purchase)
- Conversion probability and time-to-decision estimates
- Next best action recommendation
"""

from .models import (
    Channel,
    CustomerJourney,
    JourneyStage,
    Milestone,
    MilestoneType,
    Outcome,
    Touchpoint,
    TouchpointType,
    UuidIdProvider,
    calculate_engagement_score,
    create_milestone,
    create_touchpoint,
    milestone_exists,
    new_journey,
)
from .stage_calculator import determine_stage_from_milestones, determine_stage_from_touchpoints
from .estimator import calculate_conversion_probability, estimate_time_to_decision
from .action_recommender import NextBestAction, recommend_next_action
from .store import InMemoryJourneyStore, JourneyStore, StoreUnavailableError
from .tracker import JourneyInsights, JourneyTracker, JourneyUpdate, StagePolicy

__all__ = [
    "Channel",
    "CustomerJourney",
    "JourneyStage",
    "Milestone",
    "MilestoneType",
    "Outcome",
    "Touchpoint",
    "TouchpointType",
    "UuidIdProvider",
    "calculate_engagement_score",
    "create_milestone",
    "create_touchpoint",
    "milestone_exists",
    "new_journey",
    "determine_stage_from_milestones",
    "determine_stage_from_touchpoints",
    "calculate_conversion_probability",
    "estimate_time_to_decision",
    "NextBestAction",
    "recommend_next_action",
    "InMemoryJourneyStore",
    "JourneyStore",
    "StoreUnavailableError",
    "JourneyInsights",
    "JourneyTracker",
    "JourneyUpdate",
    "StagePolicy",
]
