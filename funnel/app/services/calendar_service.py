"""
Lead Funnel Calendar Service
Calendly scheduling API client
"""

import httpx
from datetime import datetime
from typing import Any, Dict, List, Optional
import structlog

from ..core.config import settings
from ..core.exceptions import UpstreamError

logger = structlog.get_logger()


class CalendarService:
    """Client for the booking provider"""

    def __init__(
        self,
        api_token: Optional[str] = None,
        base_url: Optional[str] = None,
        user_uuid: Optional[str] = None,
        event_type: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_token = api_token
        self.base_url = base_url or settings.calendly_base_url
        self.user_uuid = user_uuid
        self.event_type = event_type
        self.client = client or httpx.AsyncClient(timeout=timeout or settings.http_timeout_seconds)

    @classmethod
    def from_settings(cls) -> "CalendarService":
        return cls(
            api_token=settings.calendly_api_token,
            base_url=settings.calendly_base_url,
            user_uuid=settings.calendly_user_uuid,
            event_type=settings.calendly_event_type,
            timeout=settings.http_timeout_seconds,
        )

    async def create_event(
        self,
        start_time: datetime,
        end_time: datetime,
        invitee_email: str,
        invitee_name: str,
        event_type: Optional[str] = None,
        answers: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Book an event and return its id"""
        payload = {
            "event_type": event_type or self.event_type,
            "start_time": start_time.isoformat() + "Z",
            "end_time": end_time.isoformat() + "Z",
            "invitees": [{"email": invitee_email, "name": invitee_name}],
            "questions_and_answers": [
                {"question": question, "answer": str(answer)}
                for question, answer in (answers or {}).items()
            ],
        }
        if self.user_uuid:
            payload["event_memberships"] = [{"user": self.user_uuid}]

        result = await self._request("POST", "/scheduled_events", "Failed to schedule booking", json=payload)

        uri = (result.get("resource") or {}).get("uri") or ""
        event_id = uri.rstrip("/").split("/")[-1]
        if not event_id:
            raise UpstreamError("Booking provider returned no event id")

        logger.info("Calendar event created", event_id=event_id, invitee=invitee_email)
        return event_id

    async def cancel_event(self, event_id: str):
        """Cancel a scheduled event"""
        await self._request("DELETE", f"/scheduled_events/{event_id}", "Failed to cancel booking")
        logger.info("Calendar event cancelled", event_id=event_id)

    async def available_times(
        self,
        start_time: datetime,
        end_time: datetime,
        event_type: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Open slots for an event type"""
        result = await self._request(
            "GET",
            "/event_type_available_times",
            "Failed to fetch availability",
            params={
                "event_type": event_type or self.event_type,
                "start_time": start_time.isoformat() + "Z",
                "end_time": end_time.isoformat() + "Z",
            },
        )

        return [
            {
                "start": slot.get("start_time"),
                "end": slot.get("end_time"),
                "status": slot.get("status"),
            }
            for slot in result.get("collection") or []
        ]

    async def _request(self, method: str, path: str, failure_message: str, **kwargs) -> Dict[str, Any]:
        if not self.api_token:
            logger.error("Calendly not configured", path=path)
            raise UpstreamError("Booking provider is not configured")

        headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

        try:
            response = await self.client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
            response.raise_for_status()

        except httpx.HTTPStatusError as e:
            logger.error(
                "Calendly API error",
                method=method,
                path=path,
                status_code=e.response.status_code,
                response=e.response.text,
            )
            raise UpstreamError.from_status(e.response.status_code, failure_message)
        except httpx.HTTPError as e:
            logger.error("Calendly request failed", method=method, path=path, error=str(e))
            raise UpstreamError(failure_message)

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()
