"""
Lead Funnel Notification Service
Sales team notifications through a Zapier webhook
"""

import httpx
from datetime import datetime
from typing import Any, Dict, Optional
import structlog

from ..core.config import settings

logger = structlog.get_logger()


class NotificationService:
    """Best-effort webhook notifications"""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.webhook_url = webhook_url
        self.client = client or httpx.AsyncClient(timeout=timeout or settings.http_timeout_seconds)

    @classmethod
    def from_settings(cls) -> "NotificationService":
        return cls(webhook_url=settings.zapier_webhook_url, timeout=settings.http_timeout_seconds)

    async def notify(self, event: str, payload: Dict[str, Any]) -> bool:
        """Post an event to the sales webhook; never raises"""
        if not self.webhook_url:
            logger.info("Sales webhook not configured", notification=event, lead_id=payload.get("lead_id"))
            return False

        body = {
            "event": event,
            "timestamp": datetime.utcnow().isoformat(),
            **payload,
        }

        try:
            response = await self.client.post(self.webhook_url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Sales notification failed", notification=event, error=str(e))
            return False

        logger.info("Sales team notified", notification=event, lead_id=payload.get("lead_id"))
        return True

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()
