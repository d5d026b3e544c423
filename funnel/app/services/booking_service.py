"""
Lead Funnel Booking Service
Consultation scheduling, rescheduling, cancellation and completion
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import structlog

from ..core.dates import DateRange
from ..core.exceptions import ValidationError
from ..models.leads import CareerGoal, Lead
from .calendar_service import CalendarService
from .email_provider import EmailProvider
from .email_service import send_best_effort
from .email_templates import booking_confirmation_email, cancellation_email, post_call_email, reschedule_email
from .lead_service import LeadService
from .lifecycle import BookingCancelled, CallBooked, CallCompleted, CallRescheduled, full_name, lead_score
from .notification_service import NotificationService

logger = structlog.get_logger()

# Booking answers that are copied onto the lead profile
ANSWER_FIELDS = ("career_goal", "current_role", "company")


def validate_slot(start_time: datetime, end_time: datetime):
    """Reject inverted or past slots"""
    if start_time >= end_time:
        raise ValidationError("Start time must be before end time")
    if start_time < datetime.utcnow():
        raise ValidationError("Cannot schedule booking in the past")


def _answer(answers: Dict[str, Any], field: str) -> Optional[Any]:
    # Booking forms send camelCase question keys
    camel = field.split("_")[0] + "".join(part.title() for part in field.split("_")[1:])
    return answers.get(field) or answers.get(camel)


class BookingService:
    """Service for consultation bookings"""

    def __init__(
        self,
        db: AsyncSession,
        calendar: CalendarService,
        email_provider: Optional[EmailProvider] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.db = db
        self.leads = LeadService(db)
        self.calendar = calendar
        self.email_provider = email_provider
        self.notifier = notifier

    async def schedule(
        self,
        email: str,
        start_time: datetime,
        end_time: datetime,
        event_type: Optional[str] = None,
        timezone: Optional[str] = None,
        guest_name: Optional[str] = None,
        guest_email: Optional[str] = None,
        answers: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Book a consultation for an existing lead"""
        answers = answers or {}
        validate_slot(start_time, end_time)
        career_goal = _answer(answers, "career_goal")
        if career_goal and career_goal not in {goal.value for goal in CareerGoal}:
            raise ValidationError(f"Invalid career goal: {career_goal}")

        lead = await self.leads.require_by_email(guest_email or email)

        event_id = await self.calendar.create_event(
            start_time=start_time,
            end_time=end_time,
            invitee_email=lead.email,
            invitee_name=guest_name or full_name(lead),
            event_type=event_type,
            answers=answers,
        )

        lead.booking_id = event_id
        lead.call_scheduled = start_time
        for field in ANSWER_FIELDS:
            value = _answer(answers, field)
            if value:
                setattr(lead, field, value)

        await self.leads.save(lead, CallBooked())

        confirmation_sent = await self._send(lead, booking_confirmation_email(lead, start_time))
        await self._notify("call_booked", lead, {
            "booking_id": event_id,
            "call_time": start_time.isoformat(),
            "timezone": timezone,
            "additional_context": answers,
        })

        logger.info("Booking scheduled", lead_id=str(lead.id), booking_id=event_id, start_time=start_time.isoformat())

        return {
            "message": "Booking scheduled successfully",
            "booking_id": event_id,
            "scheduled_time": start_time.isoformat(),
            "lead_id": str(lead.id),
            "confirmation_sent": confirmation_sent,
        }

    async def availability(self, date_range: DateRange, event_type: Optional[str] = None) -> Dict[str, Any]:
        slots = await self.calendar.available_times(date_range.start, date_range.end, event_type=event_type)

        return {
            "event_type": event_type or self.calendar.event_type,
            "date_range": date_range.as_dict(),
            "available_slots": slots,
            "timezone": "UTC",
        }

    async def reschedule(
        self,
        booking_id: str,
        new_start_time: datetime,
        new_end_time: datetime,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        validate_slot(new_start_time, new_end_time)
        lead = await self.leads.find_by_booking_id(booking_id)

        await self.calendar.cancel_event(booking_id)
        new_event_id = await self.calendar.create_event(
            start_time=new_start_time,
            end_time=new_end_time,
            invitee_email=lead.email,
            invitee_name=full_name(lead),
        )

        lead.booking_id = new_event_id
        lead.call_scheduled = new_start_time
        lead.append_note(f"Rescheduled: {reason or 'No reason provided'}")
        await self.leads.save(lead, CallRescheduled())

        await self._send(lead, reschedule_email(lead, new_start_time, reason))

        logger.info("Booking rescheduled", lead_id=str(lead.id), old_booking_id=booking_id, new_booking_id=new_event_id)

        return {
            "message": "Booking rescheduled successfully",
            "new_booking_id": new_event_id,
            "new_scheduled_time": new_start_time.isoformat(),
            "lead_id": str(lead.id),
        }

    async def cancel(self, booking_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        lead = await self.leads.find_by_booking_id(booking_id)

        await self.calendar.cancel_event(booking_id)

        lead.booking_id = None
        lead.call_scheduled = None
        lead.append_note(f"Cancelled: {reason or 'No reason provided'}")
        await self.leads.save(lead, BookingCancelled())

        await self._send(lead, cancellation_email(lead, reason))

        logger.info("Booking cancelled", lead_id=str(lead.id), booking_id=booking_id, stage=lead.stage)

        return {
            "message": "Booking cancelled successfully",
            "lead_id": str(lead.id),
            "new_stage": lead.stage,
        }

    async def complete(
        self,
        booking_id: str,
        call_notes: Optional[str] = None,
        outcome: Optional[str] = None,
        next_steps: Optional[str] = None,
        course_interest: Optional[str] = None,
        follow_up_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Record the result of a consultation call"""
        lead = await self.leads.find_by_booking_id(booking_id)

        lead.call_completed = True
        lead.call_completed_at = datetime.utcnow()
        lead.call_notes = call_notes
        if course_interest:
            lead.course_interest = course_interest
        if next_steps:
            lead.append_note(f"Call completed - Next steps: {next_steps}")
        if follow_up_date:
            lead.append_note(f"Follow up on {follow_up_date.date().isoformat()}")

        await self.leads.save(lead, CallCompleted(outcome=outcome, course_interest=course_interest))

        await self._send(lead, post_call_email(lead, outcome, next_steps))
        if outcome == "interested" and course_interest:
            await self._notify("enrollment_interest", lead, {"course_interest": course_interest})

        logger.info("Call completed", lead_id=str(lead.id), outcome=outcome, stage=lead.stage)

        return {
            "message": "Call marked as completed",
            "lead_id": str(lead.id),
            "new_stage": lead.stage,
        }

    async def upcoming(self, days: int = 7) -> Dict[str, Any]:
        """Scheduled calls in the next few days that have not happened yet"""
        start = datetime.utcnow()
        end = start + timedelta(days=days)

        result = await self.db.execute(
            select(Lead)
            .where(
                Lead.is_active.is_(True),
                Lead.call_scheduled.between(start, end),
                Lead.call_completed.is_(False),
            )
            .order_by(Lead.call_scheduled)
        )
        leads = result.scalars().all()

        bookings = [
            {
                "lead_id": str(lead.id),
                "email": lead.email,
                "first_name": lead.first_name,
                "last_name": lead.last_name,
                "phone": lead.phone,
                "career_goal": lead.career_goal,
                "call_scheduled": lead.call_scheduled.isoformat(),
                "booking_id": lead.booking_id,
                "notes": lead.notes,
            }
            for lead in leads
        ]

        return {
            "bookings": bookings,
            "count": len(bookings),
            "date_range": {"start_date": start.isoformat(), "end_date": end.isoformat()},
        }

    async def _send(self, lead: Lead, template: Dict[str, str]) -> bool:
        if self.email_provider is None:
            return False
        return await send_best_effort(self.email_provider, lead, template)

    async def _notify(self, event: str, lead: Lead, details: Dict[str, Any]) -> bool:
        if self.notifier is None:
            return False
        return await self.notifier.notify(event, {
            "lead_id": str(lead.id),
            "lead_name": full_name(lead),
            "email": lead.email,
            "phone": lead.phone,
            "career_goal": lead.career_goal,
            "lead_score": lead_score(lead),
            **details,
        })
