"""
Lead Funnel AI Service
OpenAI-compatible chat completions for chatbot replies and email personalization
"""

import httpx
from typing import Any, Dict, List, Optional, Sequence
import structlog

from ..core.config import settings
from .lifecycle import full_name, lead_score

logger = structlog.get_logger()

HISTORY_TURNS = 5

SYSTEM_PROMPT = """
You are a helpful AI career advisor for Scaler Academy, specializing in tech career transitions.
Your role is to:
- Help people understand career paths in data engineering, software engineering, AI/ML
- Provide valuable insights and resources
- Guide qualified leads toward booking a consultation
- Be personable, knowledgeable, and results-focused

Key facts about Scaler:
- Helped 10,000+ professionals transition to tech
- Graduates work at Google, Microsoft, Amazon, etc.
- Offers comprehensive courses in various tech domains
- Provides career support and job placement assistance

Always be helpful, never pushy, and focus on providing genuine value.
"""

EMAIL_SYSTEM_PROMPT = (
    "You are an expert email marketer specializing in EdTech and career development. "
    "Create personalized, engaging emails that convert."
)


class AIServiceError(Exception):
    """Raised when the completion provider cannot produce a reply"""


class AIService:
    """Client for the text-generation provider"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url or settings.openrouter_base_url
        self.model = model or settings.openrouter_model
        self.client = client or httpx.AsyncClient(timeout=timeout or settings.ai_timeout_seconds)

    @classmethod
    def from_settings(cls) -> "AIService":
        return cls(
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            model=settings.openrouter_model,
            timeout=settings.ai_timeout_seconds,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def generate_chat_reply(
        self,
        message: str,
        intent: str,
        lead: Any = None,
        history: Sequence[Any] = (),
    ) -> str:
        """Generate a personalized chatbot reply"""
        prompt = self._build_response_prompt(
            message,
            intent,
            self._build_lead_context(lead),
            self._build_conversation_history(history),
        )
        return await self._make_llm_request(
            prompt=prompt,
            system_message=SYSTEM_PROMPT,
            max_tokens=300,
            temperature=0.8,
        )

    async def personalize_email(self, template: Dict[str, str], lead: Any) -> str:
        """Rewrite an email body for one lead"""
        prompt = f"""
Personalize this email template for a lead with the following context:
{self._build_lead_context(lead)}

Template:
{template.get('html') or template.get('text')}

Make it feel personal and relevant to their career goals. Keep the same structure but customize the content.
Return only the personalized email content.
"""
        return await self._make_llm_request(
            prompt=prompt,
            system_message=EMAIL_SYSTEM_PROMPT,
            max_tokens=800,
            temperature=0.6,
        )

    async def _make_llm_request(
        self,
        prompt: str,
        system_message: str,
        max_tokens: int = 300,
        temperature: float = 0.3,
    ) -> str:
        """Make request to the chat completions endpoint"""
        if not self.enabled:
            raise AIServiceError("AI provider is not configured")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_message},
                {"role": "user", "content": prompt}
            ],
            "temperature": temperature,
            "max_tokens": max_tokens
        }

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": "Lead Funnel"
        }

        try:
            response = await self.client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=headers
            )
            response.raise_for_status()
            result = response.json()

        except httpx.HTTPStatusError as e:
            logger.error("AI provider API error", status_code=e.response.status_code, response=e.response.text)
            raise AIServiceError(f"AI provider returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("AI request failed", error=str(e))
            raise AIServiceError(str(e)) from e

        choices = result.get("choices") or []
        if choices:
            content = (choices[0].get("message") or {}).get("content") or ""
            if content.strip():
                return content.strip()

        raise AIServiceError("No response from LLM")

    def _build_lead_context(self, lead: Any) -> str:
        """Build prompt context from the lead profile"""
        if lead is None:
            return "New lead with minimal information."

        return f"""
Name: {full_name(lead)}
Email: {lead.email}
Career Goal: {lead.career_goal or 'Not specified'}
Experience Level: {lead.experience_level or 'Not specified'}
Current Role: {lead.current_role or 'Not specified'}
Company: {lead.company or 'Not specified'}
Stage: {lead.stage}
Lead Score: {lead_score(lead)}
Source: {lead.source}
Chatbot Interactions: {lead.interaction_count or 0}
Email Engagement: {lead.email_opened_count or 0} opens, {lead.email_clicked_count or 0} clicks
Call Scheduled: {'Yes' if lead.call_scheduled else 'No'}
Call Completed: {'Yes' if lead.call_completed else 'No'}
"""

    def _build_conversation_history(self, history: Sequence[Any]) -> str:
        """Render the most recent turns of the conversation"""
        recent: List[Any] = list(history)[-HISTORY_TURNS:]
        if not recent:
            return "No previous conversation history."

        return "\n\n".join(
            f"User: {turn.message}\nBot: {turn.response}" for turn in recent
        )

    def _build_response_prompt(
        self,
        message: str,
        intent: str,
        context: str,
        conversation_history: str
    ) -> str:
        """Build prompt for a chatbot reply"""
        return f"""
User message: "{message}"
Detected intent: {intent}
Lead context: {context}

Previous conversation:
{conversation_history}

Generate a helpful, personalized response that:
1. Addresses their specific message
2. Considers the conversation history to avoid repetition
3. Shows understanding of their career goals
4. Provides value (insights, resources, next steps)
5. Naturally guides them toward booking a consultation
6. Maintains a friendly, professional tone
7. Varies the language and approach from previous responses

Keep response under 150 words and make it conversational.
"""

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()
