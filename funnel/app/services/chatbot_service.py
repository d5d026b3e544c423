"""
Lead Funnel Chatbot Service
Conversation handling, info collection and callback requests
"""

from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from ..models.leads import CareerGoal, Intent, LeadSource
from .intents import ResponseSelector, classify_intent
from .lead_service import LeadService, lead_to_dict
from .lifecycle import CallbackRequested, InfoCollected, InteractionRecorded, full_name, lead_score
from .notification_service import NotificationService

logger = structlog.get_logger()

ANONYMOUS = "Anonymous"

INTENT_CAREER_GOALS = {
    Intent.DATA_ENGINEERING_INTEREST: CareerGoal.DATA_ENGINEERING.value,
    Intent.SOFTWARE_ENGINEERING_INTEREST: CareerGoal.SOFTWARE_ENGINEERING.value,
}

# Profile fields a chat message may carry along
USER_INFO_FIELDS = ("current_role", "company", "experience_level")

FOLLOW_UP_MESSAGES = {
    CareerGoal.DATA_ENGINEERING.value: (
        "Great choice, {name}! Data Engineering is one of the hottest fields right now. "
        "I'll send you our \"Complete Data Engineering Roadmap\" to your email. Would you like to speak "
        "with one of our Data Engineering experts for a free career consultation?"
    ),
    CareerGoal.SOFTWARE_ENGINEERING.value: (
        "Excellent, {name}! Software Engineering offers amazing opportunities. I'm sending you our "
        "\"Software Engineer Career Guide\" right now. Want to chat with a senior engineer about your path forward?"
    ),
    CareerGoal.AI_ML.value: (
        "Fantastic, {name}! AI/ML is transforming every industry. Check your email for our "
        "\"AI Career Transition Guide\". Ready to discuss your AI journey with an expert?"
    ),
}

DEFAULT_FOLLOW_UP = (
    "Thanks for sharing that information, {name}! I'm preparing some personalized resources for you. "
    "Would you like to book a free consultation to discuss your career goals in detail?"
)

BOT_CONFIG = {
    "welcome_message": "Hi! I'm here to help you accelerate your tech career. What's your biggest goal right now?",
    "quick_replies": [
        "Learn Data Engineering",
        "Switch to Tech",
        "Get Better Job",
        "Skill Assessment",
    ],
    "flows": {
        "greeting": {
            "triggers": ["hi", "hello", "hey", "start"],
            "response": "Hello! I'm excited to help you with your tech career journey. To get started, could you tell me your name and what you're looking to achieve?",
        },
        "career_goal": {
            "triggers": ["data engineering", "software engineering", "career switch", "job"],
            "response": "That's a great goal! {name}, I'd love to share some resources that could help. Could you share your email so I can send you a personalized roadmap?",
        },
        "resource_sharing": {
            "triggers": ["roadmap", "resources", "guide", "help"],
            "response": "Perfect! I'll send you our comprehensive career roadmap. Would you also like to book a free 30-minute consultation with one of our career experts?",
        },
        "booking": {
            "triggers": ["book", "call", "consultation", "expert", "yes"],
            "response": "Excellent! I'll connect you with our booking system. Our experts have helped 10,000+ professionals land their dream tech jobs.",
        },
    },
}


def follow_up_message(lead) -> str:
    template = FOLLOW_UP_MESSAGES.get(lead.career_goal or "", DEFAULT_FOLLOW_UP)
    return template.format(name=lead.first_name)


class ChatbotService:
    """Service for chatbot conversations"""

    def __init__(
        self,
        db: AsyncSession,
        selector: ResponseSelector,
        notifier: Optional[NotificationService] = None,
    ):
        self.db = db
        self.leads = LeadService(db)
        self.selector = selector
        self.notifier = notifier

    async def interact(
        self,
        message: str,
        email: Optional[str] = None,
        session_id: Optional[str] = None,
        user_info: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Classify a message, reply to it and record the turn"""
        user_info = user_info or {}
        context = context or {}

        lead = None
        history = []
        if email:
            lead = await self.leads.find_by_email(email, with_interactions=True)
            if lead is None:
                lead = await self._upsert_from_chat(email, user_info, context)
            else:
                history = list(lead.interactions)

        intent = classify_intent(message)
        reply = await self.selector.select(message, intent, lead, history)

        if lead is not None:
            await self.leads.add_interaction(lead, message, reply.text, intent.value)

            career_goal = INTENT_CAREER_GOALS.get(intent)
            if career_goal:
                lead.career_goal = career_goal
            for field in USER_INFO_FIELDS:
                if user_info.get(field):
                    setattr(lead, field, user_info[field])

            await self.leads.save(lead, InteractionRecorded(intent=intent.value))

        logger.info(
            "Chatbot interaction handled",
            lead_id=str(lead.id) if lead is not None else None,
            intent=intent.value,
            response_source=reply.source,
            session_id=session_id,
        )

        return {
            "response": reply.text,
            "intent": intent.value,
            "actions": reply.actions,
            "response_source": reply.source,
            "lead_id": str(lead.id) if lead is not None else None,
            "session_id": session_id,
        }

    async def collect_info(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Upsert the profile from the chat form"""
        lead, created = await self.leads.create_or_update(await self._with_defaults(data, first_name=ANONYMOUS))
        await self.leads.save(lead, InfoCollected())

        logger.info("Chatbot info collected", lead_id=str(lead.id), created=created, stage=lead.stage)

        return {
            "message": "Information collected successfully",
            "follow_up_message": follow_up_message(lead),
            "lead_id": str(lead.id),
            "next_action": "offer_resource_or_call",
        }

    async def request_callback(
        self,
        email: str,
        preferred_time: Optional[str] = None,
        timezone: Optional[str] = None,
        urgency: Optional[str] = None,
    ) -> Dict[str, Any]:
        lead = await self.leads.require_by_email(email)

        lead.append_note(
            f"Callback requested - Preferred time: {preferred_time}, Timezone: {timezone}, Urgency: {urgency}"
        )
        await self.leads.save(lead, CallbackRequested())

        notified = False
        if self.notifier is not None:
            notified = await self.notifier.notify("callback_requested", {
                "lead_id": str(lead.id),
                "email": lead.email,
                "name": full_name(lead),
                "phone": lead.phone,
                "career_goal": lead.career_goal,
                "lead_score": lead_score(lead),
                "callback_request": {
                    "preferred_time": preferred_time,
                    "timezone": timezone,
                    "urgency": urgency,
                },
            })

        logger.info("Callback requested", lead_id=str(lead.id), urgency=urgency, notified=notified)

        return {
            "message": "Callback request submitted successfully",
            "expected_callback": "within 24 hours",
            "lead_id": str(lead.id),
            "lead": lead_to_dict(lead),
        }

    async def _with_defaults(self, data: Dict[str, Any], **defaults: Any) -> Dict[str, Any]:
        """Drop empty values; defaults only fill in for an email never seen before"""
        fields = {key: value for key, value in data.items() if value is not None}
        if await self.leads.find_by_email(fields["email"], include_inactive=True) is None:
            for key, value in defaults.items():
                if not fields.get(key):
                    fields[key] = value
        return fields

    async def _upsert_from_chat(self, email: str, user_info: Dict[str, Any], context: Dict[str, Any]):
        """New lead for an unknown email, or revive a soft-deleted one"""
        fields = {
            "email": email,
            "first_name": user_info.get("first_name"),
            "last_name": user_info.get("last_name"),
            "phone": user_info.get("phone"),
            "source": context.get("source"),
            "utm_source": context.get("utm_source"),
            "utm_medium": context.get("utm_medium"),
            "utm_campaign": context.get("utm_campaign"),
            "referrer_url": context.get("referrer_url"),
        }
        lead, created = await self.leads.create_or_update(
            await self._with_defaults(fields, first_name=ANONYMOUS, source=LeadSource.BLOG.value)
        )
        logger.info("Lead captured from chatbot", lead_id=str(lead.id), email=lead.email, created=created)
        return lead
