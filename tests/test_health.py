"""
Test health and service endpoints
"""

from fastapi.testclient import TestClient

from funnel.app.core.database import get_db
from funnel.app.main import app


def test_health_check(client: TestClient):
    """Test basic health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "lead-funnel"
    assert "timestamp" in data
    assert "version" in data


def test_readiness_check(client: TestClient):
    response = client.get("/health/ready")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "ready"
    assert data["services"]["database"] == "healthy"


def test_readiness_reports_unreachable_database(client: TestClient):
    class BrokenSession:
        async def execute(self, statement):
            raise ConnectionRefusedError("database is down")

    async def broken_db():
        yield BrokenSession()

    app.dependency_overrides[get_db] = broken_db

    data = client.get("/health/ready").json()

    assert data["status"] == "not_ready"
    assert data["services"]["database"] == "unhealthy"


def test_liveness_check(client: TestClient):
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json()["status"] == "alive"


def test_root_endpoint(client: TestClient):
    response = client.get("/")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "operational"
    assert data["environment"] == "test"


def test_metrics_endpoint(client: TestClient):
    """Prometheus exposition includes the request counter"""
    client.get("/health")

    response = client.get("/metrics")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "funnel_http_requests_total" in response.text


def test_unknown_route_uses_error_envelope(client: TestClient):
    response = client.get("/api/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


def test_response_time_header(client: TestClient):
    response = client.get("/health/live")
    assert response.headers["X-Response-Time"].endswith("s")
