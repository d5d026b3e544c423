"""
Lead Funnel Lead Service
Business logic for lead storage, engagement tracking and stage bookkeeping
"""

import math
import re
from datetime import datetime
from typing import Any, Dict, Optional, Sequence, Tuple
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlalchemy import select, update, func
import structlog

from ..core.dates import to_naive_utc
from ..core.exceptions import NotFoundError, ValidationError
from ..models.leads import Lead, ChatbotInteraction, LeadStage
from . import analytics
from .lifecycle import (
    LeadEvent, LeadCreated, LeadUpdated, InteractionRecorded, EmailOpened, EmailClicked,
    PurchaseRecorded, apply_event, full_name, lead_score,
)

logger = structlog.get_logger()

# Columns a caller may set directly; stage and counters are never among them
WRITABLE_FIELDS = (
    "first_name", "last_name", "phone",
    "source", "utm_source", "utm_medium", "utm_campaign", "referrer_url",
    "career_goal", "experience_level", "current_role", "company",
    "course_interest", "purchase_id", "purchase_amount", "purchase_date",
    "tags", "notes", "assigned_to",
)

SORT_FIELDS = {
    "created_at": Lead.created_at,
    "updated_at": Lead.updated_at,
    "first_name": Lead.first_name,
    "last_name": Lead.last_name,
    "email": Lead.email,
    "stage": Lead.stage,
    "source": Lead.source,
    "career_goal": Lead.career_goal,
}

ENGAGEMENT_TYPES = ("opened", "clicked")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _writable(data: Dict[str, Any]) -> Dict[str, Any]:
    """Keep writable fields, with datetimes normalized to naive UTC"""
    return {
        key: to_naive_utc(value) if isinstance(value, datetime) else value
        for key, value in data.items()
        if key in WRITABLE_FIELDS
    }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def interaction_to_dict(interaction: ChatbotInteraction) -> Dict[str, Any]:
    return {
        "id": interaction.id,
        "timestamp": _iso(interaction.timestamp),
        "message": interaction.message,
        "response": interaction.response,
        "intent": interaction.intent,
    }


def lead_to_dict(
    lead: Lead,
    interactions: Optional[Sequence[ChatbotInteraction]] = None,
    include_notes: bool = True,
) -> Dict[str, Any]:
    """Serialize a lead with its derived fields"""
    data = {
        "id": str(lead.id),
        "email": lead.email,
        "first_name": lead.first_name,
        "last_name": lead.last_name,
        "full_name": full_name(lead),
        "phone": lead.phone,
        "source": lead.source,
        "utm_source": lead.utm_source,
        "utm_medium": lead.utm_medium,
        "utm_campaign": lead.utm_campaign,
        "referrer_url": lead.referrer_url,
        "career_goal": lead.career_goal,
        "experience_level": lead.experience_level,
        "current_role": lead.current_role,
        "company": lead.company,
        "stage": lead.stage,
        "last_touchpoint": lead.last_touchpoint,
        "lead_score": lead_score(lead),
        "interaction_count": lead.interaction_count or 0,
        "email_engagement": {
            "opened": lead.email_opened_count or 0,
            "clicked": lead.email_clicked_count or 0,
            "last_opened": _iso(lead.email_last_opened),
            "last_clicked": _iso(lead.email_last_clicked),
        },
        "booking_id": lead.booking_id,
        "call_scheduled": _iso(lead.call_scheduled),
        "call_completed": bool(lead.call_completed),
        "call_completed_at": _iso(lead.call_completed_at),
        "call_notes": lead.call_notes,
        "course_interest": lead.course_interest,
        "purchase_id": lead.purchase_id,
        "purchase_amount": float(lead.purchase_amount) if lead.purchase_amount is not None else None,
        "purchase_date": _iso(lead.purchase_date),
        "is_active": lead.is_active,
        "tags": lead.tags or [],
        "assigned_to": lead.assigned_to,
        "created_at": _iso(lead.created_at),
        "updated_at": _iso(lead.updated_at),
    }

    if include_notes:
        data["notes"] = lead.notes
    if interactions is not None:
        data["chatbot_interactions"] = [interaction_to_dict(i) for i in interactions]

    return data


class LeadService:
    """Service for lead management operations"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_or_update(self, data: Dict[str, Any]) -> Tuple[Lead, bool]:
        """Create a lead, or update the one that already owns the email

        Returns the lead and whether it was newly created.
        """
        email = normalize_email(data["email"])
        fields = _writable(data)

        lead = await self.find_by_email(email, include_inactive=True)

        if lead is None:
            lead = Lead(email=email, **fields)
            if lead.purchase_id and not lead.purchase_date:
                lead.purchase_date = datetime.utcnow()
            apply_event(lead, PurchaseRecorded() if lead.purchase_id else LeadCreated())
            self.db.add(lead)

            try:
                await self.db.commit()
                await self.db.refresh(lead)
                logger.info("Lead created", lead_id=str(lead.id), email=email, source=lead.source)
                return lead, True

            except IntegrityError:
                # Another request inserted the same email first
                await self.db.rollback()
                logger.info("Duplicate lead insert detected, updating instead", email=email)
                lead = await self.find_by_email(email, include_inactive=True)
                if lead is None:
                    raise

        if not lead.is_active:
            lead.is_active = True
            logger.info("Reactivating soft-deleted lead", lead_id=str(lead.id), email=email)

        # Absent values never clear what the existing record already holds
        event = self._assign_fields(lead, {key: value for key, value in fields.items() if value is not None})
        await self.save(lead, event)

        logger.info("Lead updated from create request", lead_id=str(lead.id), email=email)
        return lead, False

    async def list_leads(
        self,
        stage: Optional[str] = None,
        source: Optional[str] = None,
        career_goal: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Dict[str, Any]:
        """Get active leads with filtering, sorting and pagination"""

        sort_column = SORT_FIELDS.get(_snake_case(sort_by))
        if sort_column is None:
            raise ValidationError(f"Invalid sort field: {sort_by}")
        if sort_order not in ("asc", "desc"):
            raise ValidationError(f"Invalid sort order: {sort_order}")

        filters = [Lead.is_active.is_(True)]
        if stage:
            filters.append(Lead.stage == stage)
        if source:
            filters.append(Lead.source == source)
        if career_goal:
            filters.append(Lead.career_goal == career_goal)

        total = (await self.db.execute(
            select(func.count()).select_from(Lead).where(*filters)
        )).scalar_one()

        ordering = sort_column.desc() if sort_order == "desc" else sort_column.asc()
        query = (
            select(Lead)
            .where(*filters)
            .order_by(ordering, Lead.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        leads = (await self.db.execute(query)).scalars().all()

        return {
            "leads": [lead_to_dict(lead, include_notes=False) for lead in leads],
            "pagination": {
                "current": page,
                "pages": math.ceil(total / limit) if total else 0,
                "total": total,
                "has_next": page * limit < total,
                "has_prev": page > 1,
            },
        }

    async def get_lead(self, lead_id: UUID, with_interactions: bool = False) -> Lead:
        """Get a lead by id, active or not"""
        query = select(Lead).where(Lead.id == lead_id)
        if with_interactions:
            query = query.options(selectinload(Lead.interactions))

        lead = (await self.db.execute(query)).scalar_one_or_none()
        if lead is None:
            raise NotFoundError("Lead not found")
        return lead

    async def find_by_email(
        self,
        email: str,
        include_inactive: bool = False,
        with_interactions: bool = False,
    ) -> Optional[Lead]:
        query = select(Lead).where(Lead.email == normalize_email(email))
        if not include_inactive:
            query = query.where(Lead.is_active.is_(True))
        if with_interactions:
            query = query.options(selectinload(Lead.interactions))
        return (await self.db.execute(query)).scalar_one_or_none()

    async def require_by_email(self, email: str, with_interactions: bool = False) -> Lead:
        lead = await self.find_by_email(email, with_interactions=with_interactions)
        if lead is None:
            raise NotFoundError("Lead not found")
        return lead

    async def find_by_booking_id(self, booking_id: str) -> Lead:
        lead = (await self.db.execute(
            select(Lead).where(Lead.booking_id == booking_id, Lead.is_active.is_(True))
        )).scalar_one_or_none()
        if lead is None:
            raise NotFoundError("Booking not found")
        return lead

    async def update_lead(self, lead_id: UUID, data: Dict[str, Any]) -> Lead:
        """Partial update of profile fields"""
        lead = await self.get_lead(lead_id)

        if data.get("email"):
            email = normalize_email(data["email"])
            if email != lead.email:
                if await self.find_by_email(email, include_inactive=True) is not None:
                    raise ValidationError("Lead with this email already exists")
                lead.email = email

        event = self._assign_fields(lead, _writable(data))
        await self.save(lead, event)

        logger.info("Lead updated", lead_id=str(lead_id), fields=sorted(data.keys()))
        return lead

    async def delete_lead(self, lead_id: UUID):
        """Soft delete"""
        lead = await self.get_lead(lead_id)
        lead.is_active = False
        await self.db.commit()
        logger.info("Lead soft-deleted", lead_id=str(lead_id))

    async def add_interaction(
        self,
        lead: Lead,
        message: str,
        response: Optional[str],
        intent: Optional[str],
    ) -> ChatbotInteraction:
        """Append an interaction row and bump the counter; the caller commits"""
        interaction = ChatbotInteraction(
            lead_id=lead.id,
            timestamp=datetime.utcnow(),
            message=message,
            response=response,
            intent=intent,
        )
        self.db.add(interaction)
        await self._increment(lead, "interaction_count")
        return interaction

    async def record_interaction(
        self,
        lead_id: UUID,
        message: str,
        response: Optional[str] = None,
        intent: Optional[str] = None,
    ) -> Lead:
        lead = await self.get_lead(lead_id)
        await self.add_interaction(lead, message, response, intent)
        await self.save(lead, InteractionRecorded(intent=intent))

        logger.info("Interaction recorded", lead_id=str(lead_id), intent=intent)
        return lead

    async def track_email_engagement(
        self,
        engagement_type: str,
        lead_id: Optional[UUID] = None,
        email: Optional[str] = None,
        url: Optional[str] = None,
    ) -> Optional[Lead]:
        """Count an email open or click

        A lookup by id that misses raises NotFoundError. A lookup by email that
        misses returns None, since tracking pixels and redirects never fail.
        """
        if engagement_type not in ENGAGEMENT_TYPES:
            raise ValidationError(f"Invalid engagement type: {engagement_type}")

        if lead_id is not None:
            lead = await self.get_lead(lead_id)
        else:
            lead = await self.find_by_email(email) if email else None
            if lead is None:
                logger.info("Email engagement for unknown lead ignored", email=email, type=engagement_type)
                return None

        now = datetime.utcnow()
        if engagement_type == "opened":
            await self._increment(lead, "email_opened_count", email_last_opened=now)
            event: LeadEvent = EmailOpened()
        else:
            await self._increment(lead, "email_clicked_count", email_last_clicked=now)
            event = EmailClicked(url=url)

        await self.save(lead, event)

        logger.info("Email engagement tracked", lead_id=str(lead.id), type=engagement_type, stage=lead.stage)
        return lead

    async def get_stats(self) -> Dict[str, Any]:
        """Aggregate counts over active leads"""
        leads = (await self.db.execute(select(Lead).where(Lead.is_active.is_(True)))).scalars().all()
        counts = analytics.stage_counts(leads)

        return {
            "total_leads": len(leads),
            "cold_leads": counts[LeadStage.COLD.value],
            "warm_leads": counts[LeadStage.WARM.value],
            "hot_leads": counts[LeadStage.HOT.value],
            "converted_leads": counts[LeadStage.CONVERTED.value],
            "churned_leads": counts[LeadStage.CHURNED.value],
            "avg_lead_score": analytics.average_score(leads),
            "total_revenue": analytics.total_revenue(leads),
            "conversion_rate": analytics.rate(counts[LeadStage.CONVERTED.value], len(leads)),
        }

    async def save(self, lead: Lead, event: LeadEvent) -> LeadStage:
        """Run the lifecycle engine for an event and commit"""
        previous = apply_event(lead, event)

        try:
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error("Failed to save lead", lead_id=str(lead.id), error=str(e))
            raise

        await self.db.refresh(lead)

        if previous.value != lead.stage:
            logger.info(
                "Lead stage changed",
                lead_id=str(lead.id),
                event_type=type(event).__name__,
                old_stage=previous.value,
                new_stage=lead.stage,
            )
        return previous

    async def _increment(self, lead: Lead, *counters: str, **values: Any):
        """Atomic counter increment in SQL, then reload the row"""
        changes: Dict[str, Any] = {name: getattr(Lead, name) + 1 for name in counters}
        changes.update(values)
        changes["updated_at"] = datetime.utcnow()

        await self.db.execute(
            update(Lead)
            .where(Lead.id == lead.id)
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(lead, attribute_names=list(changes.keys()))

    def _assign_fields(self, lead: Lead, fields: Dict[str, Any]) -> LeadEvent:
        """Copy writable fields onto the lead and pick the matching event"""
        newly_purchased = bool(fields.get("purchase_id")) and not lead.purchase_id

        for key, value in fields.items():
            setattr(lead, key, value)

        if newly_purchased:
            if not lead.purchase_date:
                lead.purchase_date = datetime.utcnow()
            return PurchaseRecorded()
        return LeadUpdated()

