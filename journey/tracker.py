"""
Journey Tracker for the lead intelligence engine.

Loads a lead's journey, appends a touchpoint or milestone, recomputes
stage, probability, time to decision and next best action, then saves.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .action_recommender import recommend_next_action
from .estimator import calculate_conversion_probability, estimate_time_to_decision
from .models import (
    Channel,
    Clock,
    CustomerJourney,
    IdProvider,
    JourneyStage,
    Milestone,
    MilestoneType,
    Outcome,
    Touchpoint,
    TouchpointType,
    UuidIdProvider,
    create_milestone,
    create_touchpoint,
    milestone_exists,
    new_journey,
    utcnow,
)
from .stage_calculator import (
    determine_stage_from_milestones,
    determine_stage_from_touchpoints,
    most_advanced,
)
from .store import JourneyStore, StoreUnavailableError

logger = logging.getLogger(__name__)


class StagePolicy(str, Enum):
    """How the stage is derived when an event arrives."""
    EVENT = "event"          # touchpoint rule on touchpoints, milestone rule on milestones
    COMBINED = "combined"    # both rules, the more advanced stage wins


class JourneyUrgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


KEY_TOUCHPOINT_ENGAGEMENT = 0.6
KEY_TOUCHPOINT_COUNT = 3


@dataclass
class JourneyInsights:
    """Summary of a journey for downstream consumers."""
    lead_id: str
    stage: JourneyStage
    next_best_action: str
    conversion_probability: float
    estimated_time_to_decision: int
    urgency: JourneyUrgency = JourneyUrgency.MEDIUM
    key_touchpoints: List[Touchpoint] = field(default_factory=list)
    persisted: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lead_id": self.lead_id,
            "stage": self.stage.value,
            "next_best_action": self.next_best_action,
            "conversion_probability": self.conversion_probability,
            "estimated_time_to_decision": self.estimated_time_to_decision,
            "urgency": self.urgency.value,
            "key_touchpoints": [tp.to_dict() for tp in self.key_touchpoints],
            "persisted": self.persisted,
        }


@dataclass
class JourneyUpdate:
    """Outcome of tracking one event."""
    journey: CustomerJourney
    previous_stage: JourneyStage
    persisted: bool = True
    touchpoint: Optional[Touchpoint] = None
    milestone: Optional[Milestone] = None
    duplicate: bool = False

    @property
    def stage_changed(self) -> bool:
        return self.journey.stage != self.previous_stage

    def insights(self) -> JourneyInsights:
        return build_insights(self.journey, persisted=self.persisted)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "journey": self.journey.to_dict(),
            "previous_stage": self.previous_stage.value,
            "stage_changed": self.stage_changed,
            "persisted": self.persisted,
            "touchpoint": self.touchpoint.to_dict() if self.touchpoint else None,
            "milestone": self.milestone.to_dict() if self.milestone else None,
            "duplicate": self.duplicate,
        }


def journey_urgency(conversion_probability: float) -> JourneyUrgency:
    if conversion_probability > 0.7:
        return JourneyUrgency.HIGH
    if conversion_probability < 0.4:
        return JourneyUrgency.LOW
    return JourneyUrgency.MEDIUM


def build_insights(journey: CustomerJourney, persisted: bool = True) -> JourneyInsights:
    key_touchpoints = [
        tp for tp in journey.touchpoints
        if tp.engagement_score > KEY_TOUCHPOINT_ENGAGEMENT
    ][-KEY_TOUCHPOINT_COUNT:]
    return JourneyInsights(
        lead_id=journey.lead_id,
        stage=journey.stage,
        next_best_action=journey.next_best_action,
        conversion_probability=journey.conversion_probability,
        estimated_time_to_decision=journey.estimated_time_to_decision,
        urgency=journey_urgency(journey.conversion_probability),
        key_touchpoints=key_touchpoints,
        persisted=persisted,
    )


class JourneyTracker:
    """
    Tracks touchpoints and milestones per lead.

    Events for the same lead are serialized with a per-lead lock; events
    for different leads run concurrently. Store failures never propagate:
    a failed read falls back to a default journey, a failed write returns
    the computed journey flagged as not persisted.
    """

    def __init__(
        self,
        store: JourneyStore,
        stage_policy: Union[StagePolicy, str] = StagePolicy.EVENT,
        id_provider: Optional[IdProvider] = None,
        clock: Clock = utcnow,
    ):
        """
        Initialize the tracker.

        Args:
            store: Journey persistence backend
            stage_policy: "event" or "combined"
            id_provider: Source of touchpoint/milestone ids
            clock: Source of timestamps
        """
        self.store = store
        self.stage_policy = StagePolicy(stage_policy)
        self.id_provider = id_provider or UuidIdProvider()
        self.clock = clock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, lead_id: str) -> asyncio.Lock:
        lock = self._locks.get(lead_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[lead_id] = lock
        return lock

    async def _load(self, lead_id: str) -> Tuple[CustomerJourney, bool]:
        """Load a journey. The flag is False when the store could not be read."""
        try:
            return await self.store.get(lead_id), True
        except StoreUnavailableError as e:
            logger.warning(f"Journey store read failed for lead {lead_id}, using default journey: {e}")
            return new_journey(lead_id, now=self.clock()), False

    async def _save(self, journey: CustomerJourney) -> bool:
        try:
            await self.store.save(journey)
            return True
        except StoreUnavailableError as e:
            logger.error(f"Journey store write failed for lead {journey.lead_id}: {e}")
            return False

    def _recompute(self, journey: CustomerJourney, milestone_event: bool) -> None:
        now = self.clock()
        if self.stage_policy == StagePolicy.COMBINED:
            journey.stage = most_advanced(
                determine_stage_from_touchpoints(journey.touchpoints),
                determine_stage_from_milestones(journey.milestones),
            )
        elif milestone_event:
            journey.stage = determine_stage_from_milestones(journey.milestones)
        else:
            journey.stage = determine_stage_from_touchpoints(journey.touchpoints)

        journey.conversion_probability = calculate_conversion_probability(journey, now)
        journey.estimated_time_to_decision = estimate_time_to_decision(journey)
        journey.next_best_action = recommend_next_action(journey, now).value
        journey.last_updated = now

    async def track_touchpoint(
        self,
        lead_id: str,
        touchpoint_type: Union[TouchpointType, str],
        channel: Union[Channel, str],
        payload: Optional[Dict[str, Any]] = None,
        outcome: Optional[Union[Outcome, str]] = None,
        timestamp: Optional[datetime] = None,
    ) -> JourneyUpdate:
        """
        Record a touchpoint and recompute the journey.

        The touchpoint is stamped with `timestamp` when given (the time the
        event happened), otherwise with the tracker clock.

        Returns:
            JourneyUpdate with the recomputed journey and persistence flag
        """
        async with self._lock_for(lead_id):
            journey, loaded = await self._load(lead_id)
            previous_stage = journey.stage

            touchpoint = create_touchpoint(
                touchpoint_type,
                channel,
                payload=payload,
                outcome=outcome,
                id_provider=self.id_provider,
                clock=self.clock,
                timestamp=timestamp,
            )
            journey.touchpoints.append(touchpoint)
            self._recompute(journey, milestone_event=False)

            # A journey rebuilt from a failed read must not overwrite stored history
            persisted = await self._save(journey) if loaded else False

        if journey.stage != previous_stage:
            logger.info(f"Lead {lead_id} moved {previous_stage.value} -> {journey.stage.value}")

        return JourneyUpdate(
            journey=journey,
            previous_stage=previous_stage,
            persisted=persisted,
            touchpoint=touchpoint,
        )

    async def track_milestone(
        self,
        lead_id: str,
        milestone_type: Union[MilestoneType, str],
        payload: Optional[Dict[str, Any]] = None,
        achieved_at: Optional[datetime] = None,
    ) -> JourneyUpdate:
        """Record a milestone once per type. Duplicates are a no-op."""
        async with self._lock_for(lead_id):
            journey, loaded = await self._load(lead_id)
            previous_stage = journey.stage

            if milestone_exists(journey.milestones, milestone_type):
                logger.debug(f"Milestone {milestone_type} already recorded for lead {lead_id}")
                return JourneyUpdate(
                    journey=journey,
                    previous_stage=previous_stage,
                    persisted=loaded,
                    duplicate=True,
                )

            milestone = create_milestone(
                milestone_type,
                payload=payload,
                id_provider=self.id_provider,
                clock=self.clock,
                achieved_at=achieved_at,
            )
            journey.milestones.append(milestone)
            self._recompute(journey, milestone_event=True)

            persisted = await self._save(journey) if loaded else False

        if journey.stage != previous_stage:
            logger.info(f"Lead {lead_id} moved {previous_stage.value} -> {journey.stage.value}")

        return JourneyUpdate(
            journey=journey,
            previous_stage=previous_stage,
            persisted=persisted,
            milestone=milestone,
        )

    async def get_journey(self, lead_id: str) -> CustomerJourney:
        journey, _ = await self._load(lead_id)
        return journey

    async def get_journey_insights(self, lead_id: str) -> JourneyInsights:
        """Insights for a lead; the stored journey is returned as-is, not recomputed."""
        journey, loaded = await self._load(lead_id)
        return build_insights(journey, persisted=loaded)
