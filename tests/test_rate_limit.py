"""
Test the in-memory sliding-window limiter
"""

from types import SimpleNamespace

import pytest

from funnel.app.middleware import rate_limit
from funnel.app.middleware.rate_limit import InMemoryRateLimiter


@pytest.fixture
def clock(monkeypatch):
    now = SimpleNamespace(value=1000.0)
    monkeypatch.setattr(rate_limit, "time", SimpleNamespace(time=lambda: now.value))
    return now


def test_limit_within_window(clock):
    limiter = InMemoryRateLimiter()

    assert [limiter.is_allowed("booking:ip:1", 3, 900) for _ in range(4)] == [True, True, True, False]
    assert limiter.get_remaining("booking:ip:1", 3, 900) == 0
    assert limiter.get_reset_time("booking:ip:1", 900) == 1900.0

    clock.value += 901
    assert limiter.is_allowed("booking:ip:1", 3, 900) is True


def test_expired_key_is_dropped(clock):
    limiter = InMemoryRateLimiter()
    limiter.is_allowed("chatbot:ip:1", 30, 60)

    clock.value += 61
    assert limiter.get_remaining("chatbot:ip:1", 30, 60) == 30
    assert "chatbot:ip:1" not in limiter.requests
    assert limiter.get_reset_time("chatbot:ip:1", 60) is None


def test_idle_clients_are_swept(clock):
    limiter = InMemoryRateLimiter()
    for client in range(5):
        limiter.is_allowed(f"chatbot:ip:{client}", 30, 60)
    limiter.is_allowed("email:ip:0", 10, 3600)

    clock.value += limiter.sweep_interval + 61
    limiter.is_allowed("chatbot:ip:new", 30, 60)

    # email window is an hour, so that key survives
    assert set(limiter.requests) == {"email:ip:0", "chatbot:ip:new"}
    assert set(limiter.windows) == set(limiter.requests)
