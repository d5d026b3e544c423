"""
Lead Funnel API Email Endpoints
"""

from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import EmailStr, Field
import structlog

from ..core.database import get_db
from ..core.dependencies import get_ai_service, get_email_provider
from ..core.exceptions import FunnelError, InternalError
from ..middleware.rate_limit import email_rate_limit
from ..models.leads import CareerGoal, ExperienceLevel, LeadSource, LeadStage
from ..services.ai_service import AIService
from ..services.email_provider import EmailProvider
from ..services.email_service import EmailService
from ..services.email_templates import TEMPLATE_CATALOG
from .schemas import CamelModel

logger = structlog.get_logger()
router = APIRouter(prefix="/email", tags=["email"])

PIXEL_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


class SubscribeRequest(CamelModel):
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    career_goal: Optional[CareerGoal] = None
    source: Optional[LeadSource] = None


class TrackOpenRequest(CamelModel):
    email: Optional[str] = None
    email_id: Optional[str] = None
    campaign_id: Optional[str] = None


class TrackClickRequest(CamelModel):
    email: Optional[str] = None
    url: Optional[str] = None
    email_id: Optional[str] = None
    campaign_id: Optional[str] = None


class SendNurtureRequest(CamelModel):
    lead_id: UUID
    email_type: str = Field(..., description="resource-delivery, social-proof, booking-reminder or final-offer")


class SegmentCriteria(CamelModel):
    stage: Optional[LeadStage] = None
    source: Optional[LeadSource] = None
    career_goal: Optional[CareerGoal] = None
    experience_level: Optional[ExperienceLevel] = None


class CampaignTemplate(CamelModel):
    subject: str = Field(..., min_length=1)
    html: Optional[str] = None
    text: Optional[str] = None


class BulkSendRequest(CamelModel):
    """Request model for a campaign send"""
    email_template: CampaignTemplate
    segment_criteria: Optional[SegmentCriteria] = None
    test_mode: bool = False


def get_email_service(
    db: AsyncSession = Depends(get_db),
    provider: EmailProvider = Depends(get_email_provider),
    ai_service: AIService = Depends(get_ai_service),
) -> EmailService:
    return EmailService(db, provider, ai_service)


@router.post("/subscribe", dependencies=[Depends(email_rate_limit)])
async def subscribe(
    request: SubscribeRequest,
    email_service: EmailService = Depends(get_email_service)
):
    """Subscribe a lead to the mailing list"""
    try:
        return await email_service.subscribe(
            email=request.email,
            first_name=request.first_name,
            last_name=request.last_name,
            career_goal=request.career_goal,
            source=request.source,
        )

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Email subscription failed", email=request.email, error=str(e))
        raise InternalError("Failed to subscribe to email sequence")


def _pixel(content: bytes) -> Response:
    return Response(content=content, media_type="image/png", headers=PIXEL_HEADERS)


@router.get("/track-open")
async def track_open(
    email: Optional[str] = Query(None),
    email_service: EmailService = Depends(get_email_service)
):
    """Tracking pixel"""
    return _pixel(await email_service.track_open(email))


@router.post("/track-open")
async def track_open_post(
    request: Optional[TrackOpenRequest] = None,
    email_service: EmailService = Depends(get_email_service)
):
    return _pixel(await email_service.track_open(request.email if request else None))


@router.get("/track-click")
async def track_click(
    email: Optional[str] = Query(None),
    url: Optional[str] = Query(None),
    email_service: EmailService = Depends(get_email_service)
):
    """Count a click and redirect to its target"""
    target = await email_service.track_click(email, url)
    return RedirectResponse(url=target, status_code=302)


@router.post("/track-click")
async def track_click_post(
    request: Optional[TrackClickRequest] = None,
    email_service: EmailService = Depends(get_email_service)
):
    target = await email_service.track_click(
        request.email if request else None,
        request.url if request else None,
    )
    return RedirectResponse(url=target, status_code=302)


@router.post("/send-nurture", dependencies=[Depends(email_rate_limit)])
async def send_nurture(
    request: SendNurtureRequest,
    email_service: EmailService = Depends(get_email_service)
):
    """Send one nurture-sequence email to a lead"""
    try:
        return await email_service.send_nurture(request.lead_id, request.email_type)

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Nurture email failed", lead_id=str(request.lead_id), error=str(e))
        raise InternalError("Failed to send nurture email")


@router.get("/templates")
async def list_templates():
    return {"templates": TEMPLATE_CATALOG}


@router.post("/bulk-send", dependencies=[Depends(email_rate_limit)])
async def bulk_send(
    request: BulkSendRequest,
    email_service: EmailService = Depends(get_email_service)
):
    """Send a campaign to a lead segment"""
    try:
        return await email_service.bulk_send(
            template=request.email_template.model_dump(exclude_none=True),
            segment_criteria=request.segment_criteria.model_dump(exclude_none=True) if request.segment_criteria else None,
            test_mode=request.test_mode,
        )

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Bulk email campaign failed", error=str(e))
        raise InternalError("Failed to send bulk email campaign")
