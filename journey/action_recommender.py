"""
Next-best-action recommendation for a customer journey.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from .estimator import days_since_last_touchpoint
from .models import CustomerJourney, JourneyStage, MilestoneType, TouchpointType, milestone_exists


class NextBestAction(str, Enum):
    SEND_EDUCATIONAL_CONTENT = "send educational content"
    FOLLOW_UP_VEHICLE_INFO = "follow up with vehicle information"
    SCHEDULE_PHONE_CONSULTATION = "schedule phone consultation"
    INVITE_TEST_DRIVE = "invite for test drive"
    PROVIDE_FINANCING_OPTIONS = "provide financing options"
    PREPARE_OFFER = "prepare personalized offer"
    FOLLOW_UP_OFFER = "follow up on pending offer"
    ADDRESS_CONCERNS = "address remaining concerns"
    COMPLETE_PAPERWORK = "complete paperwork and delivery arrangements"
    CONTINUE_NURTURING = "continue nurturing relationship"


def recommend_next_action(journey: CustomerJourney, now: Optional[datetime] = None) -> NextBestAction:
    """
    Decision table keyed by stage.

    Days since the last touchpoint count as 0 when there is none.
    """
    days_since_last = days_since_last_touchpoint(journey, now, default=0.0)

    if journey.stage == JourneyStage.AWARENESS:
        if days_since_last > 3:
            return NextBestAction.SEND_EDUCATIONAL_CONTENT
        return NextBestAction.FOLLOW_UP_VEHICLE_INFO

    if journey.stage == JourneyStage.CONSIDERATION:
        has_phone_call = any(tp.type == TouchpointType.PHONE_CALL for tp in journey.touchpoints)
        if not has_phone_call:
            return NextBestAction.SCHEDULE_PHONE_CONSULTATION
        if not milestone_exists(journey.milestones, MilestoneType.TEST_DRIVE_SCHEDULED):
            return NextBestAction.INVITE_TEST_DRIVE
        return NextBestAction.PROVIDE_FINANCING_OPTIONS

    if journey.stage == JourneyStage.DECISION:
        if not milestone_exists(journey.milestones, MilestoneType.OFFER_MADE):
            return NextBestAction.PREPARE_OFFER
        if days_since_last > 2:
            return NextBestAction.FOLLOW_UP_OFFER
        return NextBestAction.ADDRESS_CONCERNS

    if journey.stage == JourneyStage.PURCHASE:
        return NextBestAction.COMPLETE_PAPERWORK

    return NextBestAction.CONTINUE_NURTURING
