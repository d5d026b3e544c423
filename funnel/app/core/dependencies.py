"""
Lead Funnel Collaborator Dependencies

The lifespan stores one instance of each external client on app.state. Routes
reach them through these providers, which tests replace with
app.dependency_overrides.
"""

from fastapi import Request

from ..services.ai_service import AIService
from ..services.calendar_service import CalendarService
from ..services.email_provider import EmailProvider
from ..services.intents import ResponseSelector
from ..services.notification_service import NotificationService


def _shared(request: Request, name: str, factory):
    client = getattr(request.app.state, name, None)
    if client is None:
        client = factory()
        setattr(request.app.state, name, client)
    return client


def get_ai_service(request: Request) -> AIService:
    return _shared(request, "ai_service", AIService.from_settings)


def get_email_provider(request: Request) -> EmailProvider:
    return _shared(request, "email_provider", EmailProvider.from_settings)


def get_calendar_service(request: Request) -> CalendarService:
    return _shared(request, "calendar_service", CalendarService.from_settings)


def get_notification_service(request: Request) -> NotificationService:
    return _shared(request, "notification_service", NotificationService.from_settings)


def get_response_selector(request: Request) -> ResponseSelector:
    return ResponseSelector(ai_service=get_ai_service(request))
