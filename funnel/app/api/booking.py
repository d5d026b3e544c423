"""
Lead Funnel API Booking Endpoints
"""

from datetime import datetime
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import EmailStr, Field
import structlog

from ..core.database import get_db
from ..core.dates import DateRange, to_naive_utc
from ..core.dependencies import get_calendar_service, get_email_provider, get_notification_service
from ..core.exceptions import FunnelError, InternalError
from ..middleware.rate_limit import booking_rate_limit
from ..services.booking_service import BookingService
from ..services.calendar_service import CalendarService
from ..services.email_provider import EmailProvider
from ..services.lifecycle import CallOutcome
from ..services.notification_service import NotificationService
from .schemas import CamelModel

logger = structlog.get_logger()
router = APIRouter(prefix="/booking", tags=["booking"])


class ScheduleRequest(CamelModel):
    """Request model for booking a consultation"""
    email: EmailStr
    start_time: datetime
    end_time: datetime
    event_type_uuid: Optional[str] = None
    timezone: Optional[str] = None
    guest_name: Optional[str] = None
    guest_email: Optional[EmailStr] = None
    additional_questions: Dict[str, Any] = Field(default_factory=dict)


class RescheduleRequest(CamelModel):
    booking_id: str = Field(..., min_length=1)
    new_start_time: datetime
    new_end_time: datetime
    reason: Optional[str] = None


class CancelRequest(CamelModel):
    booking_id: str = Field(..., min_length=1)
    reason: Optional[str] = None


class CompleteRequest(CamelModel):
    booking_id: str = Field(..., min_length=1)
    call_notes: Optional[str] = None
    outcome: Optional[CallOutcome] = None
    next_steps: Optional[str] = None
    course_interest: Optional[str] = None
    follow_up_date: Optional[datetime] = None


def get_booking_service(
    db: AsyncSession = Depends(get_db),
    calendar: CalendarService = Depends(get_calendar_service),
    email_provider: EmailProvider = Depends(get_email_provider),
    notifier: NotificationService = Depends(get_notification_service),
) -> BookingService:
    return BookingService(db, calendar, email_provider, notifier)


@router.post("/schedule", dependencies=[Depends(booking_rate_limit)])
async def schedule(
    request: ScheduleRequest,
    booking: BookingService = Depends(get_booking_service)
):
    """Book a consultation call"""
    try:
        return await booking.schedule(
            email=request.email,
            start_time=to_naive_utc(request.start_time),
            end_time=to_naive_utc(request.end_time),
            event_type=request.event_type_uuid,
            timezone=request.timezone,
            guest_name=request.guest_name,
            guest_email=request.guest_email,
            answers=request.additional_questions,
        )

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Booking failed", email=request.email, error=str(e))
        raise InternalError("Failed to schedule booking")


@router.get("/availability")
async def availability(
    event_type: Optional[str] = Query(None, alias="eventType"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    booking: BookingService = Depends(get_booking_service)
):
    """Open consultation slots, next seven days by default"""
    try:
        return await booking.availability(DateRange.ahead(start_date, end_date), event_type)

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Failed to fetch availability", error=str(e))
        raise InternalError("Failed to fetch availability")


@router.post("/reschedule", dependencies=[Depends(booking_rate_limit)])
async def reschedule(
    request: RescheduleRequest,
    booking: BookingService = Depends(get_booking_service)
):
    try:
        return await booking.reschedule(
            booking_id=request.booking_id,
            new_start_time=to_naive_utc(request.new_start_time),
            new_end_time=to_naive_utc(request.new_end_time),
            reason=request.reason,
        )

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Reschedule failed", booking_id=request.booking_id, error=str(e))
        raise InternalError("Failed to reschedule booking")


@router.post("/cancel", dependencies=[Depends(booking_rate_limit)])
async def cancel(
    request: CancelRequest,
    booking: BookingService = Depends(get_booking_service)
):
    try:
        return await booking.cancel(request.booking_id, request.reason)

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Cancellation failed", booking_id=request.booking_id, error=str(e))
        raise InternalError("Failed to cancel booking")


@router.post("/complete")
async def complete(
    request: CompleteRequest,
    booking: BookingService = Depends(get_booking_service)
):
    """Record the outcome of a consultation call"""
    try:
        return await booking.complete(
            booking_id=request.booking_id,
            call_notes=request.call_notes,
            outcome=request.outcome,
            next_steps=request.next_steps,
            course_interest=request.course_interest,
            follow_up_date=to_naive_utc(request.follow_up_date),
        )

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Failed to complete call", booking_id=request.booking_id, error=str(e))
        raise InternalError("Failed to complete call")


@router.get("/upcoming")
async def upcoming(
    days: int = Query(7, ge=1, le=90, description="Look-ahead window in days"),
    booking: BookingService = Depends(get_booking_service)
):
    try:
        return await booking.upcoming(days)

    except Exception as e:
        logger.error("Failed to list upcoming bookings", error=str(e))
        raise InternalError("Failed to retrieve upcoming bookings")
