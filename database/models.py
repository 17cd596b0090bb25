"""
SQLAlchemy ORM models for the lead intelligence engine.

Persistent entities: customer journeys, conversation context summaries
and conversation messages.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Float, DateTime, Text, JSON, Index,
)
from sqlalchemy.orm import DeclarativeBase


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class CustomerJourneyRecord(Base):
    __tablename__ = "customer_journeys"

    lead_id = Column(String(64), primary_key=True)
    stage = Column(String(20), nullable=False, default="awareness")  # awareness, consideration, decision, purchase, advocacy
    touchpoints = Column(JSON, default=list)
    milestones = Column(JSON, default=list)
    next_best_action = Column(String(100), nullable=True)
    estimated_time_to_decision = Column(Integer, default=30)
    conversion_probability = Column(Float, default=0.3)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_journey_stage", "stage"),
    )


class ConversationContextRecord(Base):
    __tablename__ = "ai_conversation_context"

    id = Column(String(36), primary_key=True, default=_uuid)
    lead_id = Column(String(64), unique=True, nullable=False, index=True)
    conversation_summary = Column(Text, nullable=True)
    key_topics = Column(JSON, default=list)
    last_interaction_type = Column(String(40), nullable=True)
    context_score = Column(Integer, default=0)
    response_style = Column(String(20), default="standard")  # standard, priority, escalated
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ConversationMessageRecord(Base):
    __tablename__ = "conversation_messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    lead_id = Column(String(64), nullable=False, index=True)
    direction = Column(String(3), nullable=False)  # in, out
    content = Column(Text, nullable=False, default="")
    intent = Column(String(40), nullable=True)
    sentiment = Column(Float, default=0.0)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_conv_msg_lead_created", "lead_id", "created_at"),
    )
