"""
Test external service clients against mocked HTTP transports
"""

import json
from datetime import datetime

import httpx
import pytest

from funnel.app.core.exceptions import UpstreamError
from funnel.app.services.ai_service import AIService, AIServiceError
from funnel.app.services.calendar_service import CalendarService
from funnel.app.services.email_provider import EmailProvider
from funnel.app.services.notification_service import NotificationService


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def test_ai_reply_includes_recent_history(lead_factory):
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"choices": [{"message": {"content": "  Let's talk roadmaps.  "}}]})

    service = AIService(api_key="sk-test", base_url="https://llm.test/v1", model="m", client=mock_client(handler))
    history = [type("Turn", (), {"message": f"msg {i}", "response": f"reply {i}"})() for i in range(7)]

    reply = await service.generate_chat_reply("hi", "general_inquiry", lead_factory(first_name="Ravi"), history)

    assert reply == "Let's talk roadmaps."
    assert seen["auth"] == "Bearer sk-test"
    prompt = seen["body"]["messages"][1]["content"]
    assert "Name: Ravi" in prompt
    assert "msg 6" in prompt and "msg 2" in prompt
    assert "msg 1" not in prompt


async def test_ai_disabled_without_key():
    service = AIService(api_key=None, client=mock_client(lambda request: httpx.Response(500)))

    assert service.enabled is False
    with pytest.raises(AIServiceError):
        await service.generate_chat_reply("hi", "general_inquiry")


async def test_ai_provider_error_raises():
    service = AIService(api_key="sk-test", client=mock_client(lambda request: httpx.Response(503)))

    with pytest.raises(AIServiceError):
        await service.generate_chat_reply("hi", "general_inquiry")


async def test_ai_empty_choice_raises():
    service = AIService(api_key="sk-test", client=mock_client(lambda request: httpx.Response(200, json={"choices": []})))

    with pytest.raises(AIServiceError, match="No response"):
        await service.personalize_email({"html": "<p>Hi</p>"}, None)


async def test_mailchimp_subscribe_uses_datacenter_url():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        return httpx.Response(200, json={"id": "member-1"})

    provider = EmailProvider(mailchimp_api_key="key-us21", list_id="L1", client=mock_client(handler))

    result = await provider.subscribe("a@example.com", {"FNAME": "A"}, ["blog"])

    assert result == {"status": "subscribed", "id": "member-1"}
    assert seen["url"] == "https://us21.api.mailchimp.com/3.0/lists/L1/members"


async def test_mailchimp_existing_member():
    def handler(request):
        return httpx.Response(400, json={"title": "Member Exists", "detail": "a@example.com is already a list member."})

    provider = EmailProvider(mailchimp_api_key="key-us21", list_id="L1", client=mock_client(handler))

    assert await provider.subscribe("a@example.com", {}, []) == {"status": "already_subscribed"}


@pytest.mark.parametrize("upstream,expected", [(401, 401), (403, 401), (422, 422), (400, 422), (502, 500)])
async def test_mailchimp_error_status_mapping(upstream, expected):
    provider = EmailProvider(
        mailchimp_api_key="key-us21", list_id="L1",
        client=mock_client(lambda request: httpx.Response(upstream, json={"detail": "nope"})),
    )

    with pytest.raises(UpstreamError) as excinfo:
        await provider.subscribe("a@example.com", {}, [])

    assert excinfo.value.status_code == expected


async def test_email_provider_skips_when_unconfigured():
    provider = EmailProvider(client=mock_client(lambda request: httpx.Response(500)))

    assert (await provider.subscribe("a@example.com", {}, []))["status"] == "skipped"
    assert (await provider.send("a@example.com", {"subject": "Hi"}))["status"] == "skipped"


async def test_mandrill_rejection_raises():
    def handler(request):
        return httpx.Response(200, json=[{"email": "a@example.com", "status": "rejected", "reject_reason": "hard-bounce"}])

    provider = EmailProvider(mandrill_api_key="md-key", client=mock_client(handler))

    with pytest.raises(UpstreamError) as excinfo:
        await provider.send("a@example.com", {"subject": "Hi", "html": "<p>Hi</p>"})

    assert excinfo.value.status_code == 422


async def test_calendar_create_event_returns_id_from_uri():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"resource": {"uri": "https://api.calendly.test/scheduled_events/EVT123"}})

    calendar = CalendarService(api_token="tok", base_url="https://api.calendly.test", event_type="ET", client=mock_client(handler))

    event_id = await calendar.create_event(
        datetime(2030, 1, 1, 9, 0), datetime(2030, 1, 1, 9, 30), "a@example.com", "A", answers={"career_goal": "ai-ml"},
    )

    assert event_id == "EVT123"
    assert seen["body"]["event_type"] == "ET"
    assert seen["body"]["start_time"] == "2030-01-01T09:00:00Z"
    assert seen["body"]["questions_and_answers"] == [{"question": "career_goal", "answer": "ai-ml"}]


async def test_calendar_requires_token():
    calendar = CalendarService(api_token=None, client=mock_client(lambda request: httpx.Response(200)))

    with pytest.raises(UpstreamError):
        await calendar.cancel_event("EVT1")


async def test_calendar_unauthorized_maps_to_401():
    calendar = CalendarService(api_token="bad", client=mock_client(lambda request: httpx.Response(403)))

    with pytest.raises(UpstreamError) as excinfo:
        await calendar.available_times(datetime(2030, 1, 1), datetime(2030, 1, 2))

    assert excinfo.value.status_code == 401


async def test_calendar_available_times():
    def handler(request):
        assert request.url.params["event_type"] == "ET"
        return httpx.Response(200, json={"collection": [
            {"start_time": "2030-01-01T09:00:00Z", "end_time": "2030-01-01T09:30:00Z", "status": "available"},
        ]})

    calendar = CalendarService(api_token="tok", event_type="ET", client=mock_client(handler))

    slots = await calendar.available_times(datetime(2030, 1, 1), datetime(2030, 1, 2))

    assert slots == [{"start": "2030-01-01T09:00:00Z", "end": "2030-01-01T09:30:00Z", "status": "available"}]


async def test_notification_is_best_effort():
    failing = NotificationService(webhook_url="https://hooks.test/x", client=mock_client(lambda request: httpx.Response(500)))
    unconfigured = NotificationService(webhook_url=None, client=mock_client(lambda request: httpx.Response(200)))

    assert await failing.notify("call_booked", {"lead_id": "1"}) is False
    assert await unconfigured.notify("call_booked", {"lead_id": "1"}) is False


async def test_notification_posts_event():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200)

    notifier = NotificationService(webhook_url="https://hooks.test/x", client=mock_client(handler))

    assert await notifier.notify("callback_requested", {"lead_id": "42"}) is True
    assert seen["body"]["event"] == "callback_requested"
    assert seen["body"]["lead_id"] == "42"
