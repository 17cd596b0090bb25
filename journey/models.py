"""
Journey data model for the lead intelligence engine.

Touchpoints and milestones are immutable records appended to a per-lead
CustomerJourney. Factory functions stamp ids and timestamps and derive the
touchpoint engagement score.
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


Clock = Callable[[], datetime]


class TouchpointType(str, Enum):
    """Known interaction types. Unknown types are kept as raw strings."""
    WEBSITE_VISIT = "website_visit"
    EMAIL_OPEN = "email_open"
    SMS_REPLY = "sms_reply"
    PHONE_CALL = "phone_call"
    APPOINTMENT = "appointment"
    TEST_DRIVE = "test_drive"


class Channel(str, Enum):
    WEB = "web"
    EMAIL = "email"
    SMS = "sms"
    PHONE = "phone"
    IN_PERSON = "in_person"


class Outcome(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class MilestoneType(str, Enum):
    FIRST_CONTACT = "first_contact"
    VEHICLE_INTEREST = "vehicle_interest"
    PRICE_INQUIRY = "price_inquiry"
    FINANCING_DISCUSSION = "financing_discussion"
    TEST_DRIVE_SCHEDULED = "test_drive_scheduled"
    OFFER_MADE = "offer_made"
    CONTRACT_SIGNED = "contract_signed"


class JourneyStage(str, Enum):
    """Coarse purchase readiness. Recomputed on every event."""
    AWARENESS = "awareness"
    CONSIDERATION = "consideration"
    DECISION = "decision"
    PURCHASE = "purchase"
    ADVOCACY = "advocacy"


# Base engagement by touchpoint type
BASE_ENGAGEMENT: Dict[str, float] = {
    TouchpointType.WEBSITE_VISIT.value: 0.3,
    TouchpointType.EMAIL_OPEN.value: 0.4,
    TouchpointType.SMS_REPLY.value: 0.7,
    TouchpointType.PHONE_CALL.value: 0.8,
    TouchpointType.APPOINTMENT.value: 0.9,
    TouchpointType.TEST_DRIVE.value: 0.95,
}
DEFAULT_BASE_ENGAGEMENT = 0.5

OUTCOME_ADJUSTMENT: Dict[str, float] = {
    Outcome.POSITIVE.value: 0.2,
    Outcome.NEGATIVE.value: -0.3,
}

DEFAULT_PROBABILITY = 0.3
DEFAULT_TIME_TO_DECISION = 30
DEFAULT_NEXT_ACTION = "send welcome message"


class IdProvider(Protocol):
    """Source of record identifiers."""

    def new_id(self, prefix: str) -> str:
        ...


class UuidIdProvider:
    """Default id provider: `<prefix>_<12 hex chars>`."""

    def new_id(self, prefix: str) -> str:
        return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _coerce_enum(enum_cls, value: Any) -> Union[Enum, str]:
    """Map a raw value onto a known enum member, keeping unknown strings as-is."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return str(value) if value is not None else ""


def _value(item: Any) -> str:
    return item.value if isinstance(item, Enum) else str(item)


def _as_number(value: Any) -> Optional[float]:
    """Finite float value, or None for bools, non-numbers, inf and nan."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class Touchpoint:
    """One recorded interaction event."""
    id: str
    type: Union[TouchpointType, str]
    timestamp: datetime
    channel: Union[Channel, str]
    payload: Dict[str, Any] = field(default_factory=dict)
    engagement_score: float = DEFAULT_BASE_ENGAGEMENT
    outcome: Optional[Union[Outcome, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": _value(self.type),
            "timestamp": self.timestamp.isoformat(),
            "channel": _value(self.channel),
            "payload": dict(self.payload),
            "engagement_score": self.engagement_score,
            "outcome": _value(self.outcome) if self.outcome is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Touchpoint":
        """Rebuild a stored touchpoint. Raises on malformed records."""
        score = _as_number(data["engagement_score"])
        if score is None:
            raise ValueError("engagement_score is not numeric")
        outcome = data.get("outcome")
        return cls(
            id=str(data["id"]),
            type=_coerce_enum(TouchpointType, data["type"]),
            timestamp=_parse_timestamp(data["timestamp"]),
            channel=_coerce_enum(Channel, data.get("channel", "")),
            payload=dict(data.get("payload") or {}),
            engagement_score=min(1.0, max(0.0, score)),
            outcome=_coerce_enum(Outcome, outcome) if outcome else None,
        )


@dataclass(frozen=True)
class Milestone:
    """A significant, non-repeating journey event."""
    id: str
    type: Union[MilestoneType, str]
    achieved_at: datetime
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": _value(self.type),
            "achieved_at": self.achieved_at.isoformat(),
            "payload": dict(self.payload),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Milestone":
        return cls(
            id=str(data["id"]),
            type=_coerce_enum(MilestoneType, data["type"]),
            achieved_at=_parse_timestamp(data["achieved_at"]),
            payload=dict(data.get("payload") or {}),
        )


@dataclass
class CustomerJourney:
    """Per-lead journey aggregate."""
    lead_id: str
    stage: JourneyStage = JourneyStage.AWARENESS
    touchpoints: List[Touchpoint] = field(default_factory=list)
    milestones: List[Milestone] = field(default_factory=list)
    next_best_action: str = DEFAULT_NEXT_ACTION
    estimated_time_to_decision: int = DEFAULT_TIME_TO_DECISION
    conversion_probability: float = DEFAULT_PROBABILITY
    last_updated: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lead_id": self.lead_id,
            "stage": self.stage.value,
            "touchpoints": [tp.to_dict() for tp in self.touchpoints],
            "milestones": [ms.to_dict() for ms in self.milestones],
            "next_best_action": self.next_best_action,
            "estimated_time_to_decision": self.estimated_time_to_decision,
            "conversion_probability": self.conversion_probability,
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "CustomerJourney":
        """
        Rebuild a journey from a stored record.

        Corrupted touchpoints and milestones are dropped with a warning
        instead of failing the whole load. Duplicate milestone types keep
        the first occurrence.
        """
        lead_id = str(data.get("lead_id", ""))

        touchpoints: List[Touchpoint] = []
        raw_touchpoints = data.get("touchpoints")
        if not isinstance(raw_touchpoints, list):
            raw_touchpoints = []
        for raw in raw_touchpoints:
            try:
                touchpoints.append(Touchpoint.from_dict(raw))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Dropping corrupted touchpoint for lead {lead_id}: {e}")

        milestones: List[Milestone] = []
        raw_milestones = data.get("milestones")
        if not isinstance(raw_milestones, list):
            raw_milestones = []
        for raw in raw_milestones:
            try:
                milestone = Milestone.from_dict(raw)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Dropping corrupted milestone for lead {lead_id}: {e}")
                continue
            if milestone_exists(milestones, milestone.type):
                logger.warning(f"Dropping duplicate milestone {_value(milestone.type)} for lead {lead_id}")
                continue
            milestones.append(milestone)

        stage = _coerce_enum(JourneyStage, data.get("stage") or JourneyStage.AWARENESS.value)
        if not isinstance(stage, JourneyStage):
            stage = JourneyStage.AWARENESS

        probability = _as_number(data.get("conversion_probability"))
        time_to_decision = _as_number(data.get("estimated_time_to_decision"))
        try:
            last_updated = _parse_timestamp(data.get("last_updated"))
        except (TypeError, ValueError):
            last_updated = utcnow()

        return cls(
            lead_id=lead_id,
            stage=stage,
            touchpoints=touchpoints,
            milestones=milestones,
            next_best_action=data.get("next_best_action") or DEFAULT_NEXT_ACTION,
            estimated_time_to_decision=max(1, int(time_to_decision)) if time_to_decision is not None else DEFAULT_TIME_TO_DECISION,
            conversion_probability=min(0.98, max(0.02, probability)) if probability is not None else DEFAULT_PROBABILITY,
            last_updated=last_updated,
        )


def new_journey(lead_id: str, now: Optional[datetime] = None) -> CustomerJourney:
    """Fresh default journey for a lead with no history."""
    return CustomerJourney(lead_id=lead_id, last_updated=now or utcnow())


def calculate_engagement_score(
    touchpoint_type: Union[TouchpointType, str],
    payload: Optional[Dict[str, Any]] = None,
    outcome: Optional[Union[Outcome, str]] = None,
) -> float:
    """
    Engagement score for one touchpoint.

    Base score by type, plus payload bonuses for the matching type,
    plus outcome adjustment, clamped to [0, 1].
    """
    payload = payload if isinstance(payload, dict) else {}
    type_value = _value(touchpoint_type)
    score = BASE_ENGAGEMENT.get(type_value, DEFAULT_BASE_ENGAGEMENT)

    if type_value == TouchpointType.WEBSITE_VISIT.value:
        time_spent = _as_number(payload.get("time_spent"))
        if time_spent is not None and time_spent > 120:
            score += 0.2
        pages_viewed = _as_number(payload.get("pages_viewed"))
        if pages_viewed is not None and pages_viewed > 3:
            score += 0.2
    elif type_value == TouchpointType.EMAIL_OPEN.value:
        if payload.get("clicked_links"):
            score += 0.3
    elif type_value == TouchpointType.SMS_REPLY.value:
        message_length = _as_number(payload.get("message_length"))
        if message_length is not None and message_length > 50:
            score += 0.2
    elif type_value == TouchpointType.PHONE_CALL.value:
        duration = _as_number(payload.get("duration"))
        if duration is not None and duration > 300:
            score += 0.2

    if outcome is not None:
        score += OUTCOME_ADJUSTMENT.get(_value(outcome), 0.0)

    return round(min(1.0, max(0.0, score)), 4)


def create_touchpoint(
    touchpoint_type: Union[TouchpointType, str],
    channel: Union[Channel, str],
    payload: Optional[Dict[str, Any]] = None,
    outcome: Optional[Union[Outcome, str]] = None,
    id_provider: Optional[IdProvider] = None,
    clock: Clock = utcnow,
    timestamp: Optional[datetime] = None,
) -> Touchpoint:
    """Build a touchpoint with a fresh id and engagement score, stamped at `timestamp` or now."""
    ids = id_provider or UuidIdProvider()
    payload = dict(payload) if isinstance(payload, dict) else {}
    tp_type = _coerce_enum(TouchpointType, touchpoint_type)
    tp_outcome = _coerce_enum(Outcome, outcome) if outcome else None
    return Touchpoint(
        id=ids.new_id("tp"),
        type=tp_type,
        timestamp=timestamp or clock(),
        channel=_coerce_enum(Channel, channel),
        payload=payload,
        engagement_score=calculate_engagement_score(tp_type, payload, tp_outcome),
        outcome=tp_outcome,
    )


def create_milestone(
    milestone_type: Union[MilestoneType, str],
    payload: Optional[Dict[str, Any]] = None,
    id_provider: Optional[IdProvider] = None,
    clock: Clock = utcnow,
    achieved_at: Optional[datetime] = None,
) -> Milestone:
    """Build a milestone with a fresh id, achieved at `achieved_at` or now."""
    ids = id_provider or UuidIdProvider()
    return Milestone(
        id=ids.new_id("ms"),
        type=_coerce_enum(MilestoneType, milestone_type),
        achieved_at=achieved_at or clock(),
        payload=dict(payload) if isinstance(payload, dict) else {},
    )


def milestone_exists(milestones: List[Milestone], milestone_type: Union[MilestoneType, str]) -> bool:
    """Whether a milestone of this type is already recorded."""
    wanted = _value(milestone_type)
    return any(_value(m.type) == wanted for m in milestones)
