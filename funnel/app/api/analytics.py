"""
Lead Funnel API Analytics Endpoints
"""

from typing import Literal, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from ..core.config import settings
from ..core.database import get_db
from ..core.dates import DateRange
from ..core.exceptions import FunnelError, InternalError
from ..services.analytics_service import AnalyticsService

logger = structlog.get_logger()
router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/dashboard")
async def dashboard(
    start_date: Optional[str] = Query(None, alias="startDate", description="ISO date, defaults to 30 days ago"),
    end_date: Optional[str] = Query(None, alias="endDate", description="ISO date, defaults to now"),
    db: AsyncSession = Depends(get_db)
):
    """Dashboard metrics for a date range"""
    try:
        date_range = DateRange.parse(start_date, end_date, default_days=settings.analytics_default_days)
        return await AnalyticsService(db).dashboard(date_range)

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Failed to compute dashboard", error=str(e))
        raise InternalError("Failed to retrieve dashboard metrics")


@router.get("/funnel")
async def funnel(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    segment_by: Optional[str] = Query(None, alias="segmentBy", description="source, career_goal or experience_level"),
    db: AsyncSession = Depends(get_db)
):
    """Conversion funnel, optionally split by a lead attribute"""
    try:
        date_range = DateRange.parse(start_date, end_date, default_days=settings.analytics_default_days)
        return await AnalyticsService(db).funnel(date_range, segment_by)

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Failed to compute funnel", segment_by=segment_by, error=str(e))
        raise InternalError("Failed to retrieve funnel analytics")


@router.get("/cohort")
async def cohort(
    period: Literal["weekly", "monthly"] = Query("weekly"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    db: AsyncSession = Depends(get_db)
):
    try:
        return await AnalyticsService(db).cohort(period, DateRange.optional(start_date, end_date))

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Failed to compute cohorts", period=period, error=str(e))
        raise InternalError("Failed to retrieve cohort analysis")


@router.get("/attribution")
async def attribution(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    db: AsyncSession = Depends(get_db)
):
    """Revenue and conversion by lead source"""
    try:
        return await AnalyticsService(db).attribution(DateRange.optional(start_date, end_date))

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Failed to compute attribution", error=str(e))
        raise InternalError("Failed to retrieve attribution analytics")


@router.get("/leads/{lead_id}")
async def lead_analytics(
    lead_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    """Journey timeline for one lead"""
    try:
        return await AnalyticsService(db).lead_analytics(lead_id)

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Failed to compute lead analytics", lead_id=str(lead_id), error=str(e))
        raise InternalError("Failed to retrieve lead analytics")
