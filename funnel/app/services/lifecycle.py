"""
Lead Funnel Lifecycle Engine
Derived lead fields and event-driven stage transitions

Everything here is pure: functions read attributes off a lead (an ORM row or
any object with the same attribute names) and never touch storage.
"""

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional

from ..models.leads import Intent, LeadStage, Touchpoint

# Generic inference only ever moves a lead up this ladder
STAGE_RANK = {
    LeadStage.COLD: 0,
    LeadStage.WARM: 1,
    LeadStage.HOT: 2,
    LeadStage.CONVERTED: 3,
}

BOOKING_URL_KEYWORDS = ("book", "call", "consultation")

MAX_SCORE = 100


class CallOutcome(str, Enum):
    """Result recorded when a consultation call is completed"""
    INTERESTED = "interested"
    NOT_READY = "not-ready"
    NOT_INTERESTED = "not-interested"


def full_name(lead) -> str:
    """First and last name joined and trimmed"""
    return f"{lead.first_name or ''} {lead.last_name or ''}".strip()


def lead_score(lead) -> int:
    """Engagement score in [0, 100], recomputed from current attributes"""
    score = 0

    # Profile completeness
    if lead.phone:
        score += 10
    if lead.current_role:
        score += 10
    if lead.company:
        score += 10

    # Engagement
    score += (lead.interaction_count or 0) * 5
    score += (lead.email_opened_count or 0) * 2
    score += (lead.email_clicked_count or 0) * 5

    # Booking activity
    if lead.call_scheduled:
        score += 30
    if lead.call_completed:
        score += 50

    return max(0, min(score, MAX_SCORE))


def current_stage(lead) -> LeadStage:
    return LeadStage(lead.stage) if lead.stage else LeadStage.COLD


def infer_stage(lead) -> Optional[LeadStage]:
    """Stage implied by accumulated activity, highest priority first"""
    if lead.purchase_id:
        return LeadStage.CONVERTED
    if lead.call_completed:
        return LeadStage.HOT
    if lead.call_scheduled or (lead.email_clicked_count or 0) > 0:
        return LeadStage.WARM
    return None


def derive_stage(lead) -> LeadStage:
    """Apply the generic rule as a ratchet on top of the current stage"""
    stage = current_stage(lead)
    inferred = infer_stage(lead)

    if inferred is LeadStage.CONVERTED:
        return inferred
    if inferred is None or stage is LeadStage.CHURNED:
        return stage
    if STAGE_RANK[inferred] > STAGE_RANK[stage]:
        return inferred
    return stage


@dataclass(frozen=True)
class LeadEvent:
    """Something that happened to a lead"""

    touchpoint: ClassVar[Optional[Touchpoint]] = None

    def target_stage(self, stage: LeadStage) -> Optional[LeadStage]:
        """Explicit transition imposed by this event, if any"""
        return None


@dataclass(frozen=True)
class LeadCreated(LeadEvent):
    pass


@dataclass(frozen=True)
class LeadUpdated(LeadEvent):
    pass


@dataclass(frozen=True)
class InteractionRecorded(LeadEvent):
    intent: Optional[str] = None

    touchpoint = Touchpoint.CHATBOT

    def target_stage(self, stage: LeadStage) -> Optional[LeadStage]:
        if self.intent == Intent.BOOKING_INTENT.value:
            return LeadStage.HOT
        if self.intent == Intent.COURSE_INTEREST.value and stage is LeadStage.COLD:
            return LeadStage.WARM
        return None


@dataclass(frozen=True)
class InfoCollected(LeadEvent):
    touchpoint = Touchpoint.CHATBOT

    def target_stage(self, stage: LeadStage) -> Optional[LeadStage]:
        if stage in (LeadStage.COLD, LeadStage.CHURNED):
            return LeadStage.WARM
        return None


@dataclass(frozen=True)
class EmailOpened(LeadEvent):
    touchpoint = Touchpoint.EMAIL


@dataclass(frozen=True)
class EmailClicked(LeadEvent):
    url: Optional[str] = None

    touchpoint = Touchpoint.EMAIL

    def target_stage(self, stage: LeadStage) -> Optional[LeadStage]:
        url = (self.url or "").lower()
        if any(keyword in url for keyword in BOOKING_URL_KEYWORDS):
            return LeadStage.HOT
        return None


@dataclass(frozen=True)
class Subscribed(LeadEvent):
    touchpoint = Touchpoint.EMAIL

    def target_stage(self, stage: LeadStage) -> Optional[LeadStage]:
        return LeadStage.WARM if stage is LeadStage.COLD else None


@dataclass(frozen=True)
class CallbackRequested(LeadEvent):
    touchpoint = Touchpoint.CALL_BOOKED

    def target_stage(self, stage: LeadStage) -> Optional[LeadStage]:
        return LeadStage.HOT


@dataclass(frozen=True)
class CallBooked(LeadEvent):
    touchpoint = Touchpoint.CALL_BOOKED

    def target_stage(self, stage: LeadStage) -> Optional[LeadStage]:
        return LeadStage.HOT


@dataclass(frozen=True)
class CallRescheduled(LeadEvent):
    touchpoint = Touchpoint.CALL_BOOKED


@dataclass(frozen=True)
class BookingCancelled(LeadEvent):

    def target_stage(self, stage: LeadStage) -> Optional[LeadStage]:
        return LeadStage.WARM


@dataclass(frozen=True)
class CallCompleted(LeadEvent):
    outcome: Optional[str] = None
    course_interest: Optional[str] = None

    touchpoint = Touchpoint.CALL_COMPLETED

    def target_stage(self, stage: LeadStage) -> Optional[LeadStage]:
        if self.outcome == CallOutcome.INTERESTED.value or self.course_interest:
            return LeadStage.HOT
        if self.outcome == CallOutcome.NOT_READY.value:
            return LeadStage.WARM
        if self.outcome == CallOutcome.NOT_INTERESTED.value:
            return LeadStage.CHURNED
        return None


@dataclass(frozen=True)
class PurchaseRecorded(LeadEvent):
    touchpoint = Touchpoint.PURCHASE


def next_stage(lead, event: LeadEvent) -> LeadStage:
    """Stage the lead should hold once the event has been applied"""
    stage = derive_stage(lead)

    # A purchase outranks every explicit transition
    if stage is LeadStage.CONVERTED:
        return stage

    return event.target_stage(stage) or stage


def apply_event(lead, event: LeadEvent) -> LeadStage:
    """Set stage and touchpoint on the lead; returns the previous stage"""
    previous = current_stage(lead)

    lead.stage = next_stage(lead, event).value
    if event.touchpoint is not None:
        lead.last_touchpoint = event.touchpoint.value

    return previous
