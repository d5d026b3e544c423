"""
Test lead management endpoints
"""

import uuid

from fastapi.testclient import TestClient


def test_create_lead(client: TestClient, sample_lead_data):
    """Test lead creation."""
    response = client.post("/api/leads", json=sample_lead_data)
    assert response.status_code == 201

    lead = response.json()["lead"]
    assert lead["email"] == "priya@example.com"
    assert lead["full_name"] == "Priya Sharma"
    assert lead["stage"] == "cold"
    assert lead["source"] == "social"
    assert lead["utm_source"] == "linkedin"
    assert lead["career_goal"] == "data-engineering"
    # phone is the only profile field filled in
    assert lead["lead_score"] == 10
    assert lead["email_engagement"]["opened"] == 0


def test_create_lead_accepts_snake_case_keys(client: TestClient):
    response = client.post("/api/leads", json={"email": "snake@example.com", "first_name": "Snake"})
    assert response.status_code == 201
    assert response.json()["lead"]["first_name"] == "Snake"


def test_duplicate_email_updates_existing_lead(client: TestClient, create_lead):
    original = create_lead(email="dup@example.com", firstName="First")

    response = client.post("/api/leads", json={
        "email": "DUP@example.com",
        "firstName": "Second",
        "company": "Acme",
    })

    assert response.status_code == 200
    lead = response.json()["lead"]
    assert lead["id"] == original["id"]
    assert lead["first_name"] == "Second"
    assert lead["company"] == "Acme"
    assert client.get("/api/leads").json()["pagination"]["total"] == 1


def test_create_lead_rejects_invalid_email(client: TestClient):
    response = client.post("/api/leads", json={"email": "not-an-email", "firstName": "Bad"})
    assert response.status_code == 400
    assert "email" in response.json()["error"]


def test_create_lead_requires_first_name(client: TestClient):
    response = client.post("/api/leads", json={"email": "nameless@example.com"})
    assert response.status_code == 400
    assert "firstName" in response.json()["error"]


def test_create_lead_rejects_unknown_source(client: TestClient):
    response = client.post("/api/leads", json={"email": "s@example.com", "firstName": "S", "source": "tv"})
    assert response.status_code == 400


def test_list_leads_pagination(client: TestClient, create_lead):
    for i in range(3):
        create_lead(email=f"page{i}@example.com", firstName=f"Page{i}")

    data = client.get("/api/leads", params={"limit": 2}).json()

    assert len(data["leads"]) == 2
    assert data["pagination"] == {"current": 1, "pages": 2, "total": 3, "has_next": True, "has_prev": False}
    assert "notes" not in data["leads"][0]

    second = client.get("/api/leads", params={"limit": 2, "page": 2}).json()
    assert len(second["leads"]) == 1
    assert second["pagination"]["has_prev"] is True


def test_list_leads_filters_and_sorting(client: TestClient, create_lead):
    create_lead(email="b@example.com", firstName="Bea", source="blog", careerGoal="ai-ml")
    create_lead(email="a@example.com", firstName="Ann", source="referral", careerGoal="ai-ml")
    create_lead(email="c@example.com", firstName="Cal", source="referral", careerGoal="other")

    by_source = client.get("/api/leads", params={"source": "referral"}).json()
    assert {lead["email"] for lead in by_source["leads"]} == {"a@example.com", "c@example.com"}

    by_goal = client.get("/api/leads", params={"careerGoal": "ai-ml", "sortBy": "firstName", "sortOrder": "asc"}).json()
    assert [lead["first_name"] for lead in by_goal["leads"]] == ["Ann", "Bea"]


def test_list_leads_rejects_bad_sort_field(client: TestClient):
    response = client.get("/api/leads", params={"sortBy": "password"})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid sort field: password"}


def test_list_leads_rejects_limit_above_maximum(client: TestClient):
    assert client.get("/api/leads", params={"limit": 500}).status_code == 400


def test_get_lead_includes_interactions(client: TestClient, create_lead):
    lead = create_lead()
    client.post(f"/api/leads/{lead['id']}/interaction", json={"message": "hi", "response": "hello", "intent": "general_inquiry"})

    data = client.get(f"/api/leads/{lead['id']}").json()["lead"]

    assert len(data["chatbot_interactions"]) == 1
    assert data["chatbot_interactions"][0]["message"] == "hi"
    assert data["chatbot_interactions"][0]["intent"] == "general_inquiry"


def test_get_missing_lead(client: TestClient):
    response = client.get(f"/api/leads/{uuid.uuid4()}")
    assert response.status_code == 404
    assert response.json() == {"error": "Lead not found"}


def test_get_lead_with_malformed_id(client: TestClient):
    assert client.get("/api/leads/not-a-uuid").status_code == 400


def test_update_lead(client: TestClient, create_lead):
    lead = create_lead()

    response = client.put(f"/api/leads/{lead['id']}", json={"phone": "+15550100", "currentRole": "Analyst"})

    assert response.status_code == 200
    updated = response.json()["lead"]
    assert updated["phone"] == "+15550100"
    assert updated["lead_score"] == 20
    assert updated["stage"] == "cold"


def test_update_lead_email_conflict(client: TestClient, create_lead):
    create_lead(email="taken@example.com")
    lead = create_lead(email="mine@example.com")

    response = client.put(f"/api/leads/{lead['id']}", json={"email": "taken@example.com"})

    assert response.status_code == 400
    assert response.json()["error"] == "Lead with this email already exists"


def test_recording_purchase_converts_lead(client: TestClient, create_lead):
    lead = create_lead()

    updated = client.put(
        f"/api/leads/{lead['id']}", json={"purchaseId": "ord-77", "purchaseAmount": 1200}
    ).json()["lead"]

    assert updated["stage"] == "converted"
    assert updated["last_touchpoint"] == "purchase"
    assert updated["purchase_date"] is not None


def test_delete_is_soft(client: TestClient, create_lead):
    lead = create_lead(email="gone@example.com")

    assert client.delete(f"/api/leads/{lead['id']}").status_code == 200
    assert client.get("/api/leads").json()["pagination"]["total"] == 0

    # Re-capturing the same email revives the original record
    response = client.post("/api/leads", json={"email": "gone@example.com", "firstName": "Back"})
    assert response.status_code == 200
    assert response.json()["lead"]["id"] == lead["id"]
    assert response.json()["lead"]["is_active"] is True


def test_recreate_after_delete_keeps_profile(client: TestClient, sample_lead_data):
    lead = client.post("/api/leads", json=sample_lead_data).json()["lead"]
    client.delete(f"/api/leads/{lead['id']}")

    response = client.post("/api/leads", json={
        "email": "Priya@Example.com", "firstName": "Priya", "phone": None, "company": "Acme",
    })

    assert response.status_code == 200
    revived = response.json()["lead"]
    assert revived["id"] == lead["id"]
    assert revived["is_active"] is True
    assert revived["last_name"] == "Sharma"
    assert revived["phone"] == "+919876543210"
    assert revived["utm_campaign"] == "de-roadmap"
    assert revived["career_goal"] == "data-engineering"
    assert revived["company"] == "Acme"
    assert client.get("/api/leads").json()["pagination"]["total"] == 1


def test_stage_changing_interaction_succeeds(client: TestClient, create_lead):
    lead = create_lead()

    response = client.post(
        f"/api/leads/{lead['id']}/interaction",
        json={"message": "book a call", "intent": "booking_intent"},
    )

    assert response.status_code == 200
    assert response.json()["lead"]["stage"] == "hot"


def test_record_interaction_updates_score(client: TestClient, create_lead):
    lead = create_lead()

    response = client.post(f"/api/leads/{lead['id']}/interaction", json={"message": "I want a course", "intent": "course_interest"})

    assert response.status_code == 200
    data = response.json()["lead"]
    assert data["interaction_count"] == 1
    assert data["lead_score"] == 5
    assert data["stage"] == "warm"
    assert data["last_touchpoint"] == "chatbot"


def test_record_interaction_requires_message(client: TestClient, create_lead):
    lead = create_lead()
    response = client.post(f"/api/leads/{lead['id']}/interaction", json={"message": ""})
    assert response.status_code == 400


def test_email_open_engagement(client: TestClient, create_lead):
    lead = create_lead()

    data = client.post(f"/api/leads/{lead['id']}/email-engagement", json={"type": "opened"}).json()["lead"]

    assert data["email_engagement"]["opened"] == 1
    assert data["email_engagement"]["last_opened"] is not None
    assert data["lead_score"] == 2
    assert data["stage"] == "cold"


def test_email_engagement_rejects_unknown_type(client: TestClient, create_lead):
    lead = create_lead()
    response = client.post(f"/api/leads/{lead['id']}/email-engagement", json={"type": "bounced"})
    assert response.status_code == 400


def test_email_engagement_unknown_lead(client: TestClient):
    response = client.post(f"/api/leads/{uuid.uuid4()}/email-engagement", json={"type": "opened"})
    assert response.status_code == 404


def test_lead_stats(client: TestClient, create_lead):
    empty = client.get("/api/leads/stats").json()
    assert empty["total_leads"] == 0
    assert empty["conversion_rate"] == 0.0
    assert empty["avg_lead_score"] == 0.0

    create_lead(email="one@example.com")
    converted = create_lead(email="two@example.com")
    client.put(f"/api/leads/{converted['id']}", json={"purchaseId": "ord-1", "purchaseAmount": 250.5})

    stats = client.get("/api/leads/stats").json()
    assert stats["total_leads"] == 2
    assert stats["cold_leads"] == 1
    assert stats["converted_leads"] == 1
    assert stats["total_revenue"] == 250.5
    assert stats["conversion_rate"] == 50.0


def test_lead_journey_from_capture_to_churn(client: TestClient, stubs, future_slot):
    """A lead warms through chat and email, books, and churns after the call"""
    response = client.post("/api/leads", json={"email": "journey@example.com", "firstName": "Journey"})
    assert response.status_code == 201
    lead = response.json()["lead"]
    assert lead["stage"] == "cold"
    assert lead["lead_score"] == 0

    for _ in range(3):
        lead = client.post(f"/api/leads/{lead['id']}/interaction", json={"message": "hello"}).json()["lead"]
    assert lead["lead_score"] == 15
    assert lead["stage"] == "cold"

    lead = client.post(
        f"/api/leads/{lead['id']}/email-engagement",
        json={"type": "clicked", "url": "https://example.com/book-a-call"},
    ).json()["lead"]
    assert lead["stage"] == "hot"
    assert lead["lead_score"] == 20

    booking = client.post("/api/booking/schedule", json={"email": "journey@example.com", **future_slot})
    assert booking.status_code == 200, booking.text
    booking_id = booking.json()["booking_id"]
    assert client.get(f"/api/leads/{lead['id']}").json()["lead"]["stage"] == "hot"

    completed = client.post("/api/booking/complete", json={"bookingId": booking_id, "outcome": "not-interested"})
    assert completed.status_code == 200
    assert completed.json()["new_stage"] == "churned"
