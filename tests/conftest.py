"""
Test configuration and fixtures for the Lead Funnel API
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"

import itertools
import random
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

from funnel.app.main import app
from funnel.app.core import dependencies
from funnel.app.core.database import Base, build_engine, build_session_factory, get_db
from funnel.app.core.exceptions import UpstreamError
from funnel.app.middleware.rate_limit import limiter
from funnel.app.models.leads import Lead
from funnel.app.services.intents import ResponseSelector


class StubEmailProvider:
    """Records subscriptions and sends instead of calling Mailchimp/Mandrill"""

    def __init__(self):
        self.subscribed = []
        self.sent = []
        self.already_subscribed = set()
        self.failing = set()

    async def subscribe(self, email, merge_fields=None, tags=None):
        if email in self.already_subscribed:
            return {"status": "already_subscribed", "email": email}
        self.subscribed.append({"email": email, "merge_fields": merge_fields, "tags": tags})
        return {"status": "subscribed", "email": email}

    async def send(self, email, template):
        if email in self.failing:
            raise UpstreamError("Failed to send email")
        self.sent.append({"email": email, **template})
        return {"status": "sent", "email": email}


class StubCalendar:
    """In-memory stand-in for the Calendly client"""

    event_type = "consultation"

    def __init__(self):
        self._ids = itertools.count(1)
        self.created = []
        self.cancelled = []

    async def create_event(self, start_time, end_time, invitee_email, invitee_name, event_type=None, answers=None):
        event_id = f"evt-{next(self._ids)}"
        self.created.append({"id": event_id, "start_time": start_time, "email": invitee_email, "name": invitee_name})
        return event_id

    async def cancel_event(self, event_id):
        self.cancelled.append(event_id)

    async def available_times(self, start, end, event_type=None):
        return [{"start": start.isoformat(), "end": (start + timedelta(minutes=30)).isoformat(), "status": "available"}]


class StubNotifier:
    def __init__(self):
        self.events = []

    async def notify(self, event, payload):
        self.events.append((event, payload))
        return True


class StubAIService:
    enabled = False

    async def personalize_email(self, template, lead):
        return template["html"]


@pytest.fixture
def engine(tmp_path):
    """Fresh SQLite file per test; NullPool keeps connections off any one event loop"""
    path = tmp_path / "funnel.db"

    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()

    test_engine = build_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)
    yield test_engine
    test_engine.sync_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db_session(session_factory):
    """Session for calling services directly"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def stubs():
    return SimpleNamespace(
        email=StubEmailProvider(),
        calendar=StubCalendar(),
        notifier=StubNotifier(),
        ai=StubAIService(),
        selector=ResponseSelector(rng=random.Random(7)),
    )


@pytest.fixture
def client(session_factory, stubs):
    """Create test client with database and collaborator overrides."""
    async def get_test_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = get_test_db
    app.dependency_overrides[dependencies.get_email_provider] = lambda: stubs.email
    app.dependency_overrides[dependencies.get_calendar_service] = lambda: stubs.calendar
    app.dependency_overrides[dependencies.get_notification_service] = lambda: stubs.notifier
    app.dependency_overrides[dependencies.get_ai_service] = lambda: stubs.ai
    app.dependency_overrides[dependencies.get_response_selector] = lambda: stubs.selector
    limiter.reset()

    yield TestClient(app)

    app.dependency_overrides.clear()
    limiter.reset()


@pytest.fixture
def sample_lead_data():
    """Sample lead data for testing."""
    return {
        "email": "priya@example.com",
        "firstName": "Priya",
        "lastName": "Sharma",
        "phone": "+919876543210",
        "source": "social",
        "utmSource": "linkedin",
        "utmCampaign": "de-roadmap",
        "careerGoal": "data-engineering",
        "experienceLevel": "intermediate",
    }


@pytest.fixture
def create_lead(client):
    """Create a lead through the API and return its JSON"""
    def _create(**overrides):
        payload = {"email": "lead@example.com", "firstName": "Lead"}
        payload.update(overrides)
        response = client.post("/api/leads", json=payload)
        assert response.status_code in (200, 201), response.text
        return response.json()["lead"]

    return _create


@pytest.fixture
def future_slot():
    start = (datetime.utcnow() + timedelta(days=2)).replace(microsecond=0)
    return {"startTime": start.isoformat() + "Z", "endTime": (start + timedelta(minutes=30)).isoformat() + "Z"}


def make_lead(**fields) -> Lead:
    """Transient lead with zeroed counters for pure-function tests"""
    values = {
        "email": "pure@example.com",
        "first_name": "Pure",
        "source": "blog",
        "stage": "cold",
        "interaction_count": 0,
        "email_opened_count": 0,
        "email_clicked_count": 0,
        "call_completed": False,
        "is_active": True,
        "created_at": datetime(2024, 3, 4, 10, 0, 0),
    }
    values.update(fields)
    return Lead(**values)


@pytest.fixture
def lead_factory():
    return make_lead
