"""
Lead Funnel Email Provider
Mailchimp list subscriptions and Mandrill transactional delivery
"""

import httpx
from datetime import datetime
from typing import Any, Dict, List, Optional
import structlog

from ..core.config import settings
from ..core.exceptions import UpstreamError

logger = structlog.get_logger()

MANDRILL_SEND_URL = "https://mandrillapp.com/api/1.0/messages/send.json"

# Mandrill reports per-recipient status inside a 200 response
MANDRILL_FAILED_STATUSES = ("rejected", "invalid")


class EmailProvider:
    """Client for the list and transactional email services"""

    def __init__(
        self,
        mailchimp_api_key: Optional[str] = None,
        list_id: Optional[str] = None,
        mandrill_api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.mailchimp_api_key = mailchimp_api_key
        self.list_id = list_id
        self.mandrill_api_key = mandrill_api_key
        self.from_email = from_email or settings.email_from
        self.from_name = from_name or settings.email_from_name
        self.client = client or httpx.AsyncClient(timeout=timeout or settings.http_timeout_seconds)

    @classmethod
    def from_settings(cls) -> "EmailProvider":
        return cls(
            mailchimp_api_key=settings.mailchimp_api_key,
            list_id=settings.mailchimp_list_id,
            mandrill_api_key=settings.mandrill_api_key,
            from_email=settings.email_from,
            from_name=settings.email_from_name,
            timeout=settings.http_timeout_seconds,
        )

    @property
    def mailchimp_url(self) -> str:
        # Keys end with the datacenter, e.g. "abc123-us21"
        datacenter = (self.mailchimp_api_key or "").rsplit("-", 1)[-1]
        return f"https://{datacenter}.api.mailchimp.com/3.0"

    async def subscribe(
        self,
        email: str,
        merge_fields: Dict[str, str],
        tags: List[str],
    ) -> Dict[str, Any]:
        """Add a member to the marketing list"""
        if not (self.mailchimp_api_key and self.list_id):
            logger.info("Mailchimp not configured, skipping subscribe", email=email)
            return {"status": "skipped"}

        payload = {
            "email_address": email,
            "status": "subscribed",
            "merge_fields": merge_fields,
            "tags": tags,
        }

        try:
            response = await self.client.post(
                f"{self.mailchimp_url}/lists/{self.list_id}/members",
                json=payload,
                auth=("funnel", self.mailchimp_api_key),
            )
            response.raise_for_status()

        except httpx.HTTPStatusError as e:
            detail = self._error_detail(e.response)
            if e.response.status_code == 400 and "already a list member" in detail.lower():
                logger.info("Lead already on mailing list", email=email)
                return {"status": "already_subscribed"}

            logger.error("Mailchimp API error", status_code=e.response.status_code, detail=detail)
            raise UpstreamError.from_status(e.response.status_code, "Failed to subscribe to email sequence")
        except httpx.HTTPError as e:
            logger.error("Mailchimp request failed", error=str(e))
            raise UpstreamError("Failed to subscribe to email sequence")

        logger.info("Lead subscribed to mailing list", email=email)
        return {"status": "subscribed", "id": response.json().get("id")}

    async def send(self, email: str, template: Dict[str, str]) -> Dict[str, Any]:
        """Send one transactional email"""
        if not self.mandrill_api_key:
            logger.info("Mandrill not configured, email not delivered", to_email=email, subject=template.get("subject"))
            return {"status": "skipped", "email": email}

        payload = {
            "key": self.mandrill_api_key,
            "message": {
                "html": template.get("html"),
                "text": template.get("text"),
                "subject": template.get("subject"),
                "from_email": self.from_email,
                "from_name": self.from_name,
                "to": [{"email": email, "type": "to"}],
                "track_opens": True,
                "track_clicks": True,
                "auto_text": True,
                "auto_html": False,
            },
        }

        try:
            response = await self.client.post(MANDRILL_SEND_URL, json=payload)
            response.raise_for_status()
            results = response.json()

        except httpx.HTTPStatusError as e:
            logger.error("Mandrill API error", status_code=e.response.status_code, detail=self._error_detail(e.response))
            raise UpstreamError.from_status(e.response.status_code, "Failed to send email")
        except httpx.HTTPError as e:
            logger.error("Mandrill request failed", to_email=email, error=str(e))
            raise UpstreamError("Failed to send email")

        result = results[0] if isinstance(results, list) and results else {}
        if result.get("status") in MANDRILL_FAILED_STATUSES:
            logger.warning("Email rejected by provider", to_email=email, reason=result.get("reject_reason"))
            raise UpstreamError(f"Email to {email} was {result.get('status')}", status_code=422)

        logger.info("Email sent", to_email=email, subject=template.get("subject"))
        return {
            "status": result.get("status", "sent"),
            "email": email,
            "provider_id": result.get("_id"),
            "timestamp": datetime.utcnow().isoformat(),
        }

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text
        if isinstance(body, dict):
            return str(body.get("detail") or body.get("message") or body.get("title") or "")
        return str(body)

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()
