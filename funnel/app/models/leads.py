"""
Lead Funnel Lead Models
"""

from sqlalchemy import (
    Column, String, Numeric, DateTime, Text, Integer, Boolean, ForeignKey, Index, JSON, Uuid,
)
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from enum import Enum

from ..core.database import Base


class LeadSource(str, Enum):
    """Acquisition channel"""
    BLOG = "blog"
    SOCIAL = "social"
    PAID_AD = "paid-ad"
    REFERRAL = "referral"
    DIRECT = "direct"


class CareerGoal(str, Enum):
    """Career track a lead is interested in"""
    DATA_ENGINEERING = "data-engineering"
    SOFTWARE_ENGINEERING = "software-engineering"
    PRODUCT_MANAGEMENT = "product-management"
    AI_ML = "ai-ml"
    OTHER = "other"


class ExperienceLevel(str, Enum):
    """Self-reported experience"""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class LeadStage(str, Enum):
    """Funnel stage enumeration"""
    COLD = "cold"
    WARM = "warm"
    HOT = "hot"
    CONVERTED = "converted"
    CHURNED = "churned"


class Intent(str, Enum):
    """Classified purpose of a chatbot message"""
    DATA_ENGINEERING_INTEREST = "data_engineering_interest"
    SOFTWARE_ENGINEERING_INTEREST = "software_engineering_interest"
    CAREER_GUIDANCE = "career_guidance"
    COURSE_INTEREST = "course_interest"
    PRICING_INQUIRY = "pricing_inquiry"
    BOOKING_INTENT = "booking_intent"
    GOODBYE = "goodbye"
    GENERAL_INQUIRY = "general_inquiry"


class Touchpoint(str, Enum):
    """Most recent engagement channel"""
    CHATBOT = "chatbot"
    EMAIL = "email"
    CALL_BOOKED = "call-booked"
    CALL_COMPLETED = "call-completed"
    PURCHASE = "purchase"


class Lead(Base):
    """Prospective student tracked through the funnel"""
    __tablename__ = "leads"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Identity
    email = Column(String(255), nullable=False, unique=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100))
    phone = Column(String(30))

    # Acquisition
    source = Column(String(20), default=LeadSource.BLOG.value, index=True)
    utm_source = Column(String(100))
    utm_medium = Column(String(100))
    utm_campaign = Column(String(100))
    referrer_url = Column(Text)

    # Segmentation
    career_goal = Column(String(30))
    experience_level = Column(String(20))
    current_role = Column(String(200))
    company = Column(String(200))

    # Funnel state
    stage = Column(String(20), default=LeadStage.COLD.value, nullable=False, index=True)
    last_touchpoint = Column(String(20))

    # Engagement counters, only ever incremented
    interaction_count = Column(Integer, default=0, nullable=False)
    email_opened_count = Column(Integer, default=0, nullable=False)
    email_clicked_count = Column(Integer, default=0, nullable=False)
    email_last_opened = Column(DateTime)
    email_last_clicked = Column(DateTime)

    # Booking & conversion
    booking_id = Column(String(100), index=True)
    call_scheduled = Column(DateTime)
    call_completed = Column(Boolean, default=False, nullable=False)
    call_completed_at = Column(DateTime)
    call_notes = Column(Text)
    course_interest = Column(String(200))
    purchase_id = Column(String(100))
    purchase_amount = Column(Numeric(10, 2))
    purchase_date = Column(DateTime)

    # Housekeeping
    is_active = Column(Boolean, default=True, nullable=False)
    tags = Column(JSON, default=list)
    notes = Column(Text)
    assigned_to = Column(String(100))
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Loaded explicitly with selectinload; the listing never needs it
    interactions = relationship(
        "ChatbotInteraction",
        back_populates="lead",
        order_by="ChatbotInteraction.id",
        lazy="raise",
    )

    __table_args__ = (
        Index("ix_leads_career_goal_experience_level", "career_goal", "experience_level"),
    )

    def append_note(self, note: str):
        """Append a line to the free-text notes"""
        self.notes = f"{self.notes}\n{note}" if self.notes else note

    def __repr__(self):
        return f"<Lead(email='{self.email}', stage='{self.stage}')>"


class ChatbotInteraction(Base):
    """One chatbot turn; rows are never updated"""
    __tablename__ = "chatbot_interactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Uuid, ForeignKey("leads.id"), nullable=False, index=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    message = Column(Text, nullable=False)
    response = Column(Text)
    intent = Column(String(50))

    lead = relationship("Lead", back_populates="interactions", lazy="raise")

    def __repr__(self):
        return f"<ChatbotInteraction(lead_id='{self.lead_id}', intent='{self.intent}')>"
