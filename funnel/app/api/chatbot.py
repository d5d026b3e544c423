"""
Lead Funnel API Chatbot Endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import EmailStr, Field, field_validator
import structlog

from ..core.database import get_db
from ..core.dependencies import get_notification_service, get_response_selector
from ..core.exceptions import FunnelError, InternalError
from ..middleware.rate_limit import chatbot_rate_limit
from ..models.leads import CareerGoal, ExperienceLevel, LeadSource
from ..services.chatbot_service import BOT_CONFIG, ChatbotService
from ..services.intents import ResponseSelector
from ..services.notification_service import NotificationService
from .schemas import CamelModel

logger = structlog.get_logger()
router = APIRouter(prefix="/chatbot", tags=["chatbot"])


class UserInfo(CamelModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = None
    current_role: Optional[str] = None
    company: Optional[str] = None
    experience_level: Optional[ExperienceLevel] = None


class ChatContext(CamelModel):
    source: Optional[LeadSource] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    referrer_url: Optional[str] = None


class InteractRequest(CamelModel):
    """Request model for a chatbot turn"""
    message: str = Field(..., max_length=1000, description="Visitor message")
    email: Optional[EmailStr] = None
    session_id: Optional[str] = None
    user_info: Optional[UserInfo] = None
    context: Optional[ChatContext] = None

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        if not value:
            raise ValueError("Message is required")
        return value


class CollectInfoRequest(CamelModel):
    email: EmailStr
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = None
    career_goal: Optional[CareerGoal] = None
    experience_level: Optional[ExperienceLevel] = None
    current_role: Optional[str] = None
    company: Optional[str] = None


class CallbackRequest(CamelModel):
    email: EmailStr
    preferred_time: Optional[str] = None
    timezone: Optional[str] = None
    urgency: Optional[str] = Field(None, description="low, medium or high")


def get_chatbot_service(
    db: AsyncSession = Depends(get_db),
    selector: ResponseSelector = Depends(get_response_selector),
    notifier: NotificationService = Depends(get_notification_service),
) -> ChatbotService:
    return ChatbotService(db, selector, notifier)


@router.post("/interact", dependencies=[Depends(chatbot_rate_limit)])
async def interact(
    request: InteractRequest,
    chatbot: ChatbotService = Depends(get_chatbot_service)
):
    """Answer a visitor message"""
    try:
        return await chatbot.interact(
            message=request.message,
            email=request.email,
            session_id=request.session_id,
            user_info=request.user_info.model_dump(exclude_none=True) if request.user_info else None,
            context=request.context.model_dump(exclude_none=True) if request.context else None,
        )

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Chatbot interaction failed", error=str(e))
        raise InternalError("Failed to process chatbot message")


@router.post("/collect-info", dependencies=[Depends(chatbot_rate_limit)])
async def collect_info(
    request: CollectInfoRequest,
    chatbot: ChatbotService = Depends(get_chatbot_service)
):
    """Capture profile details gathered during the conversation"""
    try:
        return await chatbot.collect_info(request.model_dump())

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Chatbot info collection failed", error=str(e))
        raise InternalError("Failed to collect information")


@router.post("/request-callback", dependencies=[Depends(chatbot_rate_limit)])
async def request_callback(
    request: CallbackRequest,
    chatbot: ChatbotService = Depends(get_chatbot_service)
):
    try:
        return await chatbot.request_callback(
            email=request.email,
            preferred_time=request.preferred_time,
            timezone=request.timezone,
            urgency=request.urgency,
        )

    except FunnelError:
        raise
    except Exception as e:
        logger.error("Callback request failed", error=str(e))
        raise InternalError("Failed to request callback")


@router.get("/bot-config")
async def bot_config():
    """Static widget configuration"""
    return BOT_CONFIG
