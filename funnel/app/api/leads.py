"""
Lead Funnel API Lead Endpoints
"""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import EmailStr, Field
import structlog

from ..core.database import get_db
from ..core.exceptions import FunnelError, InternalError
from ..models.leads import CareerGoal, ExperienceLevel, Intent, LeadSource, LeadStage
from ..services.lead_service import LeadService, lead_to_dict
from .schemas import CamelModel

logger = structlog.get_logger()
router = APIRouter(prefix="/leads", tags=["leads"])


class LeadProfile(CamelModel):
    """Profile fields shared by create and update"""
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    source: Optional[LeadSource] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    referrer_url: Optional[str] = None
    career_goal: Optional[CareerGoal] = None
    experience_level: Optional[ExperienceLevel] = None
    current_role: Optional[str] = Field(None, max_length=200)
    company: Optional[str] = Field(None, max_length=200)
    course_interest: Optional[str] = None
    purchase_id: Optional[str] = None
    purchase_amount: Optional[float] = Field(None, ge=0)
    purchase_date: Optional[datetime] = None
    tags: Optional[List[str]] = None
    notes: Optional[str] = None
    assigned_to: Optional[str] = None


class LeadCreateRequest(LeadProfile):
    """Request model for lead creation"""
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100, description="Lead first name")


class LeadUpdateRequest(LeadProfile):
    """Request model for partial lead updates"""
    email: Optional[EmailStr] = None


class InteractionRequest(CamelModel):
    message: str = Field(..., min_length=1, max_length=1000)
    response: Optional[str] = None
    intent: Optional[Intent] = None


class EmailEngagementRequest(CamelModel):
    type: Literal["opened", "clicked"] = Field(..., description="Engagement type")
    url: Optional[str] = Field(None, description="Clicked link, if any")


@router.post("")
async def create_lead(
    request: LeadCreateRequest,
    response: Response,
    db: AsyncSession = Depends(get_db)
):
    """Create a lead, or update the existing lead with the same email"""
    try:
        lead_service = LeadService(db)
        lead, created = await lead_service.create_or_update(request.model_dump(exclude_unset=True))

        response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
        return {
            "message": "Lead created successfully" if created else "Lead updated successfully",
            "lead": lead_to_dict(lead),
        }

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Lead creation failed", email=request.email, error=str(e))
        raise InternalError("Failed to create lead")


@router.get("")
async def list_leads(
    stage: Optional[LeadStage] = Query(None, description="Filter by stage"),
    source: Optional[LeadSource] = Query(None, description="Filter by source"),
    career_goal: Optional[CareerGoal] = Query(None, alias="careerGoal", description="Filter by career goal"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100, description="Number of leads per page"),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    db: AsyncSession = Depends(get_db)
):
    """List active leads with filtering and pagination"""
    try:
        lead_service = LeadService(db)
        return await lead_service.list_leads(
            stage=stage.value if stage else None,
            source=source.value if source else None,
            career_goal=career_goal.value if career_goal else None,
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
        )

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Failed to list leads", error=str(e))
        raise InternalError("Failed to retrieve leads")


@router.get("/stats")
async def lead_stats(db: AsyncSession = Depends(get_db)):
    """Aggregate lead statistics"""
    try:
        return await LeadService(db).get_stats()
    except Exception as e:
        logger.error("Failed to compute lead stats", error=str(e))
        raise InternalError("Failed to retrieve lead statistics")


@router.get("/{lead_id}")
async def get_lead(
    lead_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    """Get a lead with its chatbot interactions"""
    try:
        lead = await LeadService(db).get_lead(lead_id, with_interactions=True)
        return {"lead": lead_to_dict(lead, interactions=lead.interactions)}

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Failed to get lead", lead_id=str(lead_id), error=str(e))
        raise InternalError("Failed to retrieve lead")


@router.put("/{lead_id}")
async def update_lead(
    lead_id: UUID,
    request: LeadUpdateRequest,
    db: AsyncSession = Depends(get_db)
):
    try:
        lead = await LeadService(db).update_lead(
            lead_id, request.model_dump(exclude_unset=True, exclude_none=True)
        )
        return {"message": "Lead updated successfully", "lead": lead_to_dict(lead)}

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Failed to update lead", lead_id=str(lead_id), error=str(e))
        raise InternalError("Failed to update lead")


@router.delete("/{lead_id}")
async def delete_lead(
    lead_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    """Soft delete a lead"""
    try:
        await LeadService(db).delete_lead(lead_id)
        return {"message": "Lead deleted successfully"}

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Failed to delete lead", lead_id=str(lead_id), error=str(e))
        raise InternalError("Failed to delete lead")


@router.post("/{lead_id}/interaction")
async def record_interaction(
    lead_id: UUID,
    request: InteractionRequest,
    db: AsyncSession = Depends(get_db)
):
    """Record a chatbot exchange against a lead"""
    try:
        lead = await LeadService(db).record_interaction(
            lead_id,
            message=request.message,
            response=request.response,
            intent=request.intent,
        )
        return {
            "message": "Interaction recorded successfully",
            "lead": lead_to_dict(lead),
        }

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Failed to record interaction", lead_id=str(lead_id), error=str(e))
        raise InternalError("Failed to record interaction")


@router.post("/{lead_id}/email-engagement")
async def track_email_engagement(
    lead_id: UUID,
    request: EmailEngagementRequest,
    db: AsyncSession = Depends(get_db)
):
    try:
        lead = await LeadService(db).track_email_engagement(request.type, lead_id=lead_id, url=request.url)
        return {
            "message": "Email engagement tracked successfully",
            "lead": lead_to_dict(lead),
        }

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Failed to track email engagement", lead_id=str(lead_id), error=str(e))
        raise InternalError("Failed to track email engagement")
