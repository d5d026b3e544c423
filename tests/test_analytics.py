"""
Test analytics aggregations
"""

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from funnel.app.core.dates import DateRange
from funnel.app.core.exceptions import ValidationError
from funnel.app.services import analytics


@pytest.fixture
def population(lead_factory):
    day = datetime(2024, 3, 4, 10, 0)
    return [
        lead_factory(email="a@example.com", source="blog", stage="cold", created_at=day),
        lead_factory(email="b@example.com", source="blog", stage="warm", created_at=day, email_opened_count=2),
        lead_factory(
            email="c@example.com", source="social", stage="hot", created_at=day + timedelta(days=1),
            call_scheduled=day + timedelta(days=3),
        ),
        lead_factory(
            email="d@example.com", source="blog", stage="converted", created_at=day + timedelta(days=8),
            purchase_id="ord-1", purchase_amount=499.5, purchase_date=day + timedelta(days=10),
            utm_source="google",
        ),
    ]


def test_rate_and_mean_sentinels():
    assert analytics.rate(0, 0) == 0.0
    assert analytics.rate(1, 3) == 33.33
    assert analytics.mean([]) == 0.0


def test_empty_population_aggregates():
    assert analytics.conversion_funnel([]) == {
        "total_leads": 0,
        "engaged": 0,
        "scheduled": 0,
        "converted": 0,
        "engagement_rate": 0.0,
        "scheduling_rate": 0.0,
        "conversion_rate": 0.0,
    }
    assert analytics.average_score([]) == 0.0
    assert analytics.time_series([]) == []

    row = analytics.funnel_segments([])[0]
    assert row["segment"] == "overall"
    assert row["conversion_rates"] == {
        "cold_to_warm": 0.0, "warm_to_hot": 0.0, "hot_to_converted": 0.0, "overall": 0.0,
    }
    assert row["metrics"]["revenue_per_lead"] == 0.0


def test_stage_distribution_lists_every_stage(population):
    rows = analytics.stage_distribution(population[:1])
    assert [row["stage"] for row in rows] == ["cold", "warm", "hot", "converted", "churned"]
    assert [row["count"] for row in rows] == [1, 0, 0, 0, 0]


def test_source_distribution_sorted_by_count(population):
    rows = analytics.source_distribution(population)

    assert rows[0] == {"source": "blog", "count": 3, "conversions": 1, "conversion_rate": 33.33}
    assert rows[1]["source"] == "social"


def test_conversion_funnel(population):
    funnel = analytics.conversion_funnel(population)

    assert funnel["engaged"] == 1
    assert funnel["scheduled"] == 1
    assert funnel["converted"] == 1
    assert funnel["conversion_rate"] == 25.0


def test_revenue_counts_purchases_inside_range(population):
    inside = DateRange(start=datetime(2024, 3, 1), end=datetime(2024, 3, 31))
    outside = DateRange(start=datetime(2024, 4, 1), end=datetime(2024, 4, 30))

    assert analytics.revenue_metrics(population, inside) == {
        "total_revenue": 499.5, "total_purchases": 1, "avg_order_value": 499.5,
    }
    assert analytics.revenue_metrics(population, outside)["total_revenue"] == 0.0


def test_time_series_buckets_by_creation_day(population):
    series = analytics.time_series(population)

    assert series[0] == {"date": "2024-03-04", "leads": 2, "conversions": 0}
    assert series[-1] == {"date": "2024-03-12", "leads": 1, "conversions": 1}


def test_funnel_segments_by_source(population):
    rows = analytics.funnel_segments(population, "source")

    blog = rows[0]
    assert blog["segment"] == "blog"
    assert blog["stages"]["cold"] == 1
    assert blog["conversion_rates"]["cold_to_warm"] == 50.0
    assert blog["conversion_rates"]["hot_to_converted"] == 100.0
    assert blog["metrics"]["total_revenue"] == 499.5


def test_funnel_segments_label_missing_values_unknown(population):
    segments = {row["segment"] for row in analytics.funnel_segments(population, "utm_source")}
    assert segments == {"google", "unknown"}


def test_funnel_segments_rejects_unknown_field(population):
    with pytest.raises(ValidationError):
        analytics.funnel_segments(population, "password")


@pytest.mark.parametrize("created_at,period,key", [
    (datetime(2024, 3, 4), "weekly", "2024-W10"),
    (datetime(2021, 1, 1), "weekly", "2020-W53"),
    (datetime(2024, 12, 31), "weekly", "2025-W01"),
    (datetime(2024, 3, 4), "monthly", "2024-03"),
])
def test_cohort_key(created_at, period, key):
    assert analytics.cohort_key(created_at, period) == key


def test_cohort_analysis(population):
    result = analytics.cohort_analysis(population, "weekly")

    assert [c["period"] for c in result["cohorts"]] == ["2024-W10", "2024-W11"]
    first, second = result["cohorts"]
    assert first["total_leads"] == 3
    assert first["avg_days_to_conversion"] is None
    assert second["converted_leads"] == 1
    assert second["avg_days_to_conversion"] == 2.0
    assert result["summary"]["total_revenue"] == 499.5


def test_cohort_analysis_rejects_unknown_period(population):
    with pytest.raises(ValidationError):
        analytics.cohort_analysis(population, "daily")


def test_attribution_groups_by_source_and_utm(population):
    result = analytics.attribution(population)

    assert result["summary"]["total_sources"] == 3
    assert result["summary"]["best_performing_source"]["source"] == "blog"
    assert result["summary"]["best_performing_source"]["leads"] == 2
    assert result["summary"]["total_revenue"] == 499.5


def test_attribution_empty():
    assert analytics.attribution([]) == {
        "attribution": [],
        "summary": {"total_sources": 0, "best_performing_source": None, "total_revenue": 0.0},
    }


def test_lead_timeline_is_chronological(lead_factory):
    created = datetime(2024, 3, 4, 10, 0)
    lead = lead_factory(
        created_at=created,
        email_last_opened=created + timedelta(hours=5),
        email_opened_count=1,
        call_scheduled=created + timedelta(days=2),
        booking_id="evt-9",
    )
    interactions = [SimpleNamespace(timestamp=created + timedelta(hours=1), message="x" * 120)]

    timeline = analytics.lead_timeline(lead, interactions)

    assert [e["event"] for e in timeline] == [
        "Lead Created", "Chatbot Interaction", "Email Opened", "Call Scheduled",
    ]
    assert timeline[1]["details"] == "x" * 100 + "..."
    assert timeline[0]["date"] == "2024-03-04T10:00:00"
    assert timeline[3]["details"] == "Booking ID: evt-9"
