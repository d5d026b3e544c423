"""
Lead Funnel Email Service
Subscriptions, engagement tracking, nurture emails and bulk campaigns
"""

import asyncio
import base64
import time
import httpx
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import structlog

from ..core.config import settings
from ..core.exceptions import FunnelError
from ..models.leads import Lead
from .ai_service import AIService
from .email_provider import EmailProvider
from .email_templates import nurture_email, render_email, welcome_email
from .lead_service import LeadService
from .lifecycle import Subscribed

logger = structlog.get_logger()

# 1x1 transparent PNG
TRACKING_PIXEL = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mP8/5+hHgAHggJ/PchI7wAAAABJRU5ErkJggg=="
)

SEGMENT_CRITERIA = ("stage", "source", "career_goal", "experience_level")


def redirect_hosts() -> set:
    links = (settings.default_redirect_url, settings.booking_url, settings.public_base_url)
    hosts = {httpx.URL(link).host for link in links}
    hosts.update(host.lower() for host in settings.redirect_allowed_hosts)
    return hosts


def is_safe_redirect(url: Optional[str]) -> bool:
    """Absolute http(s) URL on an allowed host or one of its subdomains"""
    if not url:
        return False
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        return False
    if parsed.scheme not in ("http", "https") or not parsed.host:
        return False
    return any(parsed.host == host or parsed.host.endswith("." + host) for host in redirect_hosts())


async def send_best_effort(provider: EmailProvider, lead: Lead, template: Dict[str, str]) -> bool:
    """Send a follow-up email; delivery failures are logged and reported as False"""
    try:
        await provider.send(lead.email, template)
        return True
    except FunnelError as e:
        logger.warning("Follow-up email not sent", lead_id=str(lead.id), error=e.message)
        return False


class EmailService:
    """Service for email workflows"""

    def __init__(
        self,
        db: AsyncSession,
        provider: EmailProvider,
        ai_service: Optional[AIService] = None,
    ):
        self.db = db
        self.leads = LeadService(db)
        self.provider = provider
        self.ai_service = ai_service

    async def subscribe(
        self,
        email: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        career_goal: Optional[str] = None,
        source: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Add an existing lead to the mailing list and start the sequence"""
        lead = await self.leads.require_by_email(email)

        merge_fields = {
            "FNAME": first_name or lead.first_name,
            "LNAME": last_name or lead.last_name or "",
            "CAREER": career_goal or lead.career_goal or "general",
            "SOURCE": source or lead.source,
            "PHONE": lead.phone or "",
            "COMPANY": lead.company or "",
            "ROLE": lead.current_role or "",
        }
        tags = [
            tag for tag in (
                lead.career_goal,
                lead.experience_level,
                f"source-{lead.source}",
                f"stage-{lead.stage}",
            ) if tag
        ]

        result = await self.provider.subscribe(lead.email, merge_fields, tags)
        if result.get("status") == "already_subscribed":
            return {"message": "Already subscribed", "lead_id": str(lead.id)}

        await self.leads.save(lead, Subscribed())

        welcome_sent = await send_best_effort(self.provider, lead, welcome_email(lead))

        logger.info("Lead subscribed to email sequence", lead_id=str(lead.id), welcome_sent=welcome_sent)

        return {
            "message": "Successfully subscribed to email sequence",
            "lead_id": str(lead.id),
            "welcome_email_sent": welcome_sent,
        }

    async def track_open(self, email: Optional[str]) -> bytes:
        """Count an open when the lead is known; always returns the pixel"""
        try:
            await self.leads.track_email_engagement("opened", email=email)
        except Exception as e:
            logger.error("Email open tracking failed", email=email, error=str(e))
        return TRACKING_PIXEL

    async def track_click(self, email: Optional[str], url: Optional[str]) -> str:
        """Count a click and return the redirect target"""
        if url and not is_safe_redirect(url):
            logger.warning("Click redirect to unlisted host refused", email=email, url=url)
            url = None
        target = url or settings.default_redirect_url
        try:
            await self.leads.track_email_engagement("clicked", email=email, url=url)
        except Exception as e:
            logger.error("Email click tracking failed", email=email, url=url, error=str(e))
        return target

    async def send_nurture(self, lead_id, email_type: str) -> Dict[str, Any]:
        lead = await self.leads.get_lead(lead_id)
        template = nurture_email(lead, email_type)

        await self.provider.send(lead.email, template)

        logger.info("Nurture email sent", lead_id=str(lead.id), email_type=email_type)
        return {
            "message": "Nurture email sent successfully",
            "email_type": email_type,
            "lead_id": str(lead.id),
        }

    async def bulk_send(
        self,
        template: Dict[str, str],
        segment_criteria: Optional[Dict[str, Any]] = None,
        test_mode: bool = False,
    ) -> Dict[str, Any]:
        """Send a campaign to a segment in rate-limited chunks"""
        limit = settings.bulk_email_test_recipients if test_mode else settings.bulk_email_max_recipients
        leads = await self._select_segment(segment_criteria or {}, limit)

        campaign_id = f"campaign_{int(time.time() * 1000)}"
        chunk_size = max(1, settings.bulk_email_chunk_size)
        success_count = 0
        error_count = 0

        logger.info("Bulk email campaign started", campaign_id=campaign_id, recipients=len(leads), test_mode=test_mode)

        for start in range(0, len(leads), chunk_size):
            chunk = leads[start:start + chunk_size]
            results = await asyncio.gather(*(self._send_personalized(lead, template) for lead in chunk))

            success_count += sum(1 for sent in results if sent)
            error_count += sum(1 for sent in results if not sent)

            if start + chunk_size < len(leads):
                await asyncio.sleep(settings.bulk_email_chunk_delay_seconds)

        total = len(leads)
        logger.info(
            "Bulk email campaign completed",
            campaign_id=campaign_id,
            total=total,
            success_count=success_count,
            error_count=error_count,
        )

        return {
            "message": "Bulk email campaign completed",
            "campaign_id": campaign_id,
            "stats": {
                "total_targeted": total,
                "success_count": success_count,
                "error_count": error_count,
                "success_rate": round(success_count / total * 100, 2) if total else 0.0,
            },
        }

    async def _select_segment(self, criteria: Dict[str, Any], limit: int) -> List[Lead]:
        query = select(Lead).where(Lead.is_active.is_(True))
        for field in SEGMENT_CRITERIA:
            if criteria.get(field):
                query = query.where(getattr(Lead, field) == criteria[field])

        result = await self.db.execute(query.order_by(Lead.created_at, Lead.id).limit(limit))
        return list(result.scalars().all())

    async def _send_personalized(self, lead: Lead, template: Dict[str, str]) -> bool:
        """Send one campaign email; failures are counted, not raised"""
        message = render_email(template, lead)

        if self.ai_service is not None and self.ai_service.enabled:
            try:
                message["html"] = await self.ai_service.personalize_email(message, lead)
            except Exception as e:
                logger.warning("Email personalization failed, sending template", lead_id=str(lead.id), error=str(e))

        try:
            await self.provider.send(lead.email, message)
            return True
        except Exception as e:
            logger.error("Failed to send campaign email", to_email=lead.email, error=str(e))
            return False
