"""
Lead Funnel Intent Classifier and Response Selector

Intent classification is an ordered keyword table: the first rule with a
matching keyword wins. Replies come from the AI provider when it is available
and from canned variants otherwise.
"""

import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
import structlog

from ..models.leads import Intent, LeadStage
from .lifecycle import lead_score

logger = structlog.get_logger()

INTENT_RULES: List[Tuple[Tuple[str, ...], Intent]] = [
    (("data engineer", "data science"), Intent.DATA_ENGINEERING_INTEREST),
    (("software engineer", "coding"), Intent.SOFTWARE_ENGINEERING_INTEREST),
    (("career", "job", "switch"), Intent.CAREER_GUIDANCE),
    (("course", "program", "learn"), Intent.COURSE_INTEREST),
    (("price", "cost", "fee"), Intent.PRICING_INQUIRY),
    (("book", "call", "consultation"), Intent.BOOKING_INTENT),
    (("bye", "thanks", "thank you"), Intent.GOODBYE),
]

# Anti-repetition window and the prefix length compared against it
RECENT_RESPONSES = 3
PREFIX_LENGTH = 30

TOPIC_OPTIONS = ["Data Engineering", "Software Engineering", "AI/ML", "Career Consultation"]

FALLBACK_RESPONSES: Dict[Intent, List[str]] = {
    Intent.DATA_ENGINEERING_INTEREST: [
        "That's awesome! Data Engineering is one of the fastest-growing fields in tech. {name}I'd love to share our complete Data Engineering roadmap with you. Would you like me to send it to your email?",
        "Great choice! {name}Data Engineering is where the real magic happens in tech companies. I have some exclusive resources that could jumpstart your journey. Can I share them with you?",
        "Fantastic! {name}Data Engineers are in huge demand right now. I'd love to show you exactly how to break into this field. Shall I send you our step-by-step guide?",
    ],
    Intent.SOFTWARE_ENGINEERING_INTEREST: [
        "Excellent choice! Software Engineering offers incredible opportunities. {name}let me share some resources that can help you get started. What's your current experience level?",
        "Perfect! {name}Software Engineering is such a rewarding career path. I have some insider tips on how to land your first role. What's your background like?",
        "Smart move! {name}The software engineering market is booming. I can help you navigate this journey. Are you just starting out or do you have some experience?",
    ],
    Intent.CAREER_GUIDANCE: [
        "Career moves are exciting! {name}Whether you're switching into tech or levelling up, a clear roadmap makes all the difference. Want me to send you ours?",
        "I can definitely help with that. {name}Most people we work with started by mapping their current skills to a target role. What role are you aiming for?",
        "Good question! {name}Our career experts have guided 10,000+ professionals through exactly this kind of transition. Shall I share a personalized roadmap?",
    ],
    Intent.COURSE_INTEREST: [
        "Our programs are built around real industry projects. {name}Would you like to see the course catalog that fits your goals?",
        "Happy to walk you through our courses! {name}Each one comes with mentorship and career support. Shall I send you the catalog?",
    ],
    Intent.PRICING_INQUIRY: [
        "Great question about pricing! {name}Fees depend on the program and the financing option you choose. A quick call with an advisor is the best way to get exact numbers. Want to book one?",
        "We offer flexible payment plans, including EMI options. {name}An advisor can walk you through the numbers for your chosen program. Shall I set up a free consultation?",
    ],
    Intent.BOOKING_INTENT: [
        "I'd be happy to connect you with one of our career experts! {name}they've helped thousands of professionals land their dream tech jobs. Let me show you available time slots.",
        "Great idea! {name}Our career consultants are amazing - they know exactly what it takes to break into tech. Ready to book your free session?",
        "Perfect! {name}A one-on-one session with our experts can really accelerate your journey. Let's get you scheduled!",
    ],
    Intent.GOODBYE: [
        "Thanks for chatting! {name}Feel free to come back anytime, your roadmap is just a message away.",
        "It was great talking with you! {name}Whenever you're ready to take the next step, I'm here to help.",
    ],
    Intent.GENERAL_INQUIRY: [
        "Thanks for reaching out! I'm here to help you accelerate your tech career. {name}what specific area are you most interested in learning about?",
        "Hello! {name}I'm excited to help you navigate your tech career journey. What brings you here today?",
        "Hi there! {name}I'm here to help you unlock amazing opportunities in tech. What area interests you most?",
    ],
}


def classify_intent(message: str) -> Intent:
    """Map free text onto the closed intent set"""
    text = (message or "").lower()
    for keywords, intent in INTENT_RULES:
        if any(keyword in text for keyword in keywords):
            return intent
    return Intent.GENERAL_INQUIRY


def _action(action_type: str, **data: Any) -> Dict[str, Any]:
    return {"type": action_type, "data": data}


def determine_actions(intent: Intent, lead: Any = None) -> List[Dict[str, Any]]:
    """Advisory follow-up actions for the caller"""
    if intent is Intent.DATA_ENGINEERING_INTEREST:
        return [
            _action("offer_resource", resource_type="data_engineering_roadmap"),
            _action("collect_email"),
        ]

    if intent is Intent.SOFTWARE_ENGINEERING_INTEREST:
        return [
            _action("collect_info", fields=["experience_level"]),
            _action("offer_resource", resource_type="swe_guide"),
        ]

    if intent is Intent.CAREER_GUIDANCE:
        return [
            _action("offer_resource", resource_type="career_roadmap"),
            _action("collect_info", fields=["career_goal", "experience_level"]),
        ]

    if intent is Intent.COURSE_INTEREST:
        actions = [_action("offer_resource", resource_type="course_catalog")]
        if lead is not None and lead.stage == LeadStage.WARM.value:
            actions.append(_action("suggest_consultation", urgency="medium"))
        return actions

    if intent is Intent.PRICING_INQUIRY:
        return [_action("offer_consultation", reason="discuss_pricing")]

    if intent is Intent.BOOKING_INTENT:
        return [_action("show_calendar", direct=True)]

    if intent is Intent.GOODBYE:
        return []

    actions = [_action("show_options", options=list(TOPIC_OPTIONS))]
    if lead is None or lead_score(lead) < 30:
        actions.append(_action("collect_info", fields=["first_name", "career_goal"]))
    return actions


def _render(variant: str, lead: Any) -> str:
    first_name = getattr(lead, "first_name", None) if lead is not None else None
    name = f"{first_name}, " if first_name and first_name != "Anonymous" else ""
    return variant.format(name=name)


@dataclass
class BotReply:
    """Reply chosen for a chatbot message"""
    text: str
    intent: Intent
    actions: List[Dict[str, Any]] = field(default_factory=list)
    source: str = "fallback"


class ResponseSelector:
    """Selects a reply for a classified message"""

    def __init__(self, ai_service: Any = None, rng: Optional[random.Random] = None):
        self.ai_service = ai_service
        self.rng = rng or random.Random()

    async def select(
        self,
        message: str,
        intent: Intent,
        lead: Any = None,
        history: Sequence[Any] = (),
    ) -> BotReply:
        actions = determine_actions(intent, lead)

        if self.ai_service is not None and self.ai_service.enabled:
            try:
                text = await self.ai_service.generate_chat_reply(message, intent.value, lead, history)
                return BotReply(text=text, intent=intent, actions=actions, source="ai")
            except Exception as e:
                logger.warning("AI response generation failed, using fallback", intent=intent.value, error=str(e))

        return BotReply(
            text=self.fallback_text(intent, lead, history),
            intent=intent,
            actions=actions,
            source="fallback",
        )

    def fallback_text(self, intent: Intent, lead: Any = None, history: Sequence[Any] = ()) -> str:
        """Pick a canned variant that was not used in the last few bot turns"""
        variants = [
            _render(variant, lead)
            for variant in FALLBACK_RESPONSES.get(intent, FALLBACK_RESPONSES[Intent.GENERAL_INQUIRY])
        ]
        recent = [turn.response or "" for turn in list(history)[-RECENT_RESPONSES:]]

        available = [
            variant for variant in variants
            if not any(variant[:PREFIX_LENGTH] in response for response in recent)
        ]

        return self.rng.choice(available or variants)
