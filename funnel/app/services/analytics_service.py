"""
Lead Funnel Analytics Service
Loads active leads for a date range and composes the aggregate reports
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_, and_
import structlog

from ..core.dates import DateRange
from ..models.leads import Lead
from . import analytics
from .lead_service import LeadService

logger = structlog.get_logger()


class AnalyticsService:
    """Read-only reporting over the lead store"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def dashboard(self, date_range: DateRange) -> Dict[str, Any]:
        """Every dashboard aggregate from one snapshot of the store"""
        snapshot = await self._load_leads(
            or_(
                Lead.created_at.between(date_range.start, date_range.end),
                Lead.purchase_date.between(date_range.start, date_range.end),
            )
        )
        leads = analytics.created_within(snapshot, date_range)

        logger.info("Dashboard computed", leads=len(leads), **date_range.as_dict())

        return {
            "date_range": date_range.as_dict(),
            "overview": analytics.overview(leads),
            "funnel": {
                "stages": analytics.stage_distribution(leads),
                "conversion": analytics.conversion_funnel(leads),
            },
            "sources": analytics.source_distribution(leads),
            "revenue": analytics.revenue_metrics(snapshot, date_range),
            "engagement": analytics.engagement_metrics(leads),
            "trends": analytics.time_series(leads),
            "last_updated": datetime.utcnow().isoformat(),
        }

    async def funnel(self, date_range: DateRange, segment_by: Optional[str] = None) -> Dict[str, Any]:
        leads = await self._load_leads(Lead.created_at.between(date_range.start, date_range.end))

        return {
            "segment_by": segment_by or "overall",
            "date_range": date_range.as_dict(),
            "funnel": analytics.funnel_segments(leads, segment_by),
        }

    async def cohort(self, period: str = "weekly", date_range: Optional[DateRange] = None) -> Dict[str, Any]:
        leads = await self._load_leads(self._created_filter(date_range))
        result = analytics.cohort_analysis(leads, period)
        result["date_range"] = date_range.as_dict() if date_range else None
        return result

    async def attribution(self, date_range: Optional[DateRange] = None) -> Dict[str, Any]:
        leads = await self._load_leads(self._created_filter(date_range))
        result = analytics.attribution(leads)
        result["date_range"] = date_range.as_dict() if date_range else None
        return result

    async def lead_analytics(self, lead_id: UUID) -> Dict[str, Any]:
        """Journey timeline and engagement summary for one lead"""
        lead = await LeadService(self.db).get_lead(lead_id, with_interactions=True)
        interactions = list(lead.interactions)

        result = analytics.lead_summary(lead, len(interactions))
        result["timeline"] = analytics.lead_timeline(lead, interactions)
        return result

    async def _load_leads(self, *criteria) -> List[Lead]:
        conditions = [Lead.is_active.is_(True)]
        conditions.extend(c for c in criteria if c is not None)

        result = await self.db.execute(
            select(Lead).where(and_(*conditions)).order_by(Lead.created_at, Lead.id)
        )
        return list(result.scalars().all())

    @staticmethod
    def _created_filter(date_range: Optional[DateRange]):
        if date_range is None:
            return None
        return Lead.created_at.between(date_range.start, date_range.end)
