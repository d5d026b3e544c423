"""
Lead Funnel Analytics Aggregations

Pure functions over a sequence of leads. Callers load the population once and
every aggregate here is computed from that snapshot.

Zero denominators give 0.0 rates and empty populations give 0.0 averages.
The one exception is average days to conversion, which is None when no lead
has both a creation and a purchase date.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..core.dates import DateRange
from ..core.exceptions import ValidationError
from ..models.leads import LeadStage
from .lifecycle import full_name, lead_score

SEGMENT_FIELDS = ("source", "career_goal", "experience_level", "utm_source", "utm_campaign")

COHORT_PERIODS = ("weekly", "monthly")

UNKNOWN_SEGMENT = "unknown"

CONVERTED = LeadStage.CONVERTED.value


def rate(numerator: float, denominator: float) -> float:
    """Percentage rounded to 2 decimals"""
    if not denominator:
        return 0.0
    return round(numerator / denominator * 100, 2)


def mean(values: Iterable[float], digits: int = 2) -> float:
    values = list(values)
    if not values:
        return 0.0
    return round(sum(values) / len(values), digits)


def amount(lead) -> float:
    return float(lead.purchase_amount) if lead.purchase_amount is not None else 0.0


def total_revenue(leads: Sequence[Any]) -> float:
    return round(sum(amount(lead) for lead in leads), 2)


def average_score(leads: Sequence[Any]) -> float:
    return mean((lead_score(lead) for lead in leads), digits=1)


def is_converted(lead) -> bool:
    return lead.stage == CONVERTED


def stage_counts(leads: Sequence[Any]) -> Dict[str, int]:
    counts = {stage.value: 0 for stage in LeadStage}
    for lead in leads:
        counts[lead.stage] = counts.get(lead.stage, 0) + 1
    return counts


def created_within(leads: Sequence[Any], date_range: DateRange) -> List[Any]:
    return [lead for lead in leads if date_range.contains(lead.created_at)]


def overview(leads: Sequence[Any]) -> Dict[str, Any]:
    return {
        "total": len(leads),
        "new_this_period": len(leads),
        "avg_lead_score": average_score(leads),
    }


def stage_distribution(leads: Sequence[Any]) -> List[Dict[str, Any]]:
    """Count and average score per stage, every stage listed"""
    by_stage: Dict[str, List[Any]] = defaultdict(list)
    for lead in leads:
        by_stage[lead.stage].append(lead)

    return [
        {
            "stage": stage.value,
            "count": len(by_stage[stage.value]),
            "avg_lead_score": average_score(by_stage[stage.value]),
        }
        for stage in LeadStage
    ]


def source_distribution(leads: Sequence[Any]) -> List[Dict[str, Any]]:
    by_source: Dict[str, List[Any]] = defaultdict(list)
    for lead in leads:
        by_source[lead.source or UNKNOWN_SEGMENT].append(lead)

    rows = []
    for source, members in by_source.items():
        conversions = sum(1 for lead in members if is_converted(lead))
        rows.append({
            "source": source,
            "count": len(members),
            "conversions": conversions,
            "conversion_rate": rate(conversions, len(members)),
        })

    return sorted(rows, key=lambda row: row["count"], reverse=True)


def conversion_funnel(leads: Sequence[Any]) -> Dict[str, Any]:
    total = len(leads)
    engaged = sum(1 for lead in leads if (lead.email_opened_count or 0) >= 1)
    scheduled = sum(1 for lead in leads if lead.call_scheduled is not None)
    converted = sum(1 for lead in leads if is_converted(lead))

    return {
        "total_leads": total,
        "engaged": engaged,
        "scheduled": scheduled,
        "converted": converted,
        "engagement_rate": rate(engaged, total),
        "scheduling_rate": rate(scheduled, total),
        "conversion_rate": rate(converted, total),
    }


def revenue_metrics(leads: Sequence[Any], date_range: DateRange) -> Dict[str, Any]:
    """Revenue from purchases dated inside the range"""
    purchases = [lead for lead in leads if date_range.contains(lead.purchase_date)]
    amounts = [float(lead.purchase_amount) for lead in purchases if lead.purchase_amount is not None]

    return {
        "total_revenue": total_revenue(purchases),
        "total_purchases": len(purchases),
        "avg_order_value": mean(amounts),
    }


def engagement_metrics(leads: Sequence[Any]) -> Dict[str, Any]:
    return {
        "avg_chatbot_interactions": mean(lead.interaction_count or 0 for lead in leads),
        "avg_email_opens": mean(lead.email_opened_count or 0 for lead in leads),
        "avg_email_clicks": mean(lead.email_clicked_count or 0 for lead in leads),
        "total_calls_scheduled": sum(1 for lead in leads if lead.call_scheduled is not None),
        "total_calls_completed": sum(1 for lead in leads if lead.call_completed),
    }


def time_series(leads: Sequence[Any]) -> List[Dict[str, Any]]:
    """Leads and conversions per UTC creation day, oldest first"""
    buckets: Dict[str, Dict[str, int]] = defaultdict(lambda: {"leads": 0, "conversions": 0})
    for lead in leads:
        bucket = buckets[lead.created_at.strftime("%Y-%m-%d")]
        bucket["leads"] += 1
        if is_converted(lead):
            bucket["conversions"] += 1

    return [{"date": day, **counts} for day, counts in sorted(buckets.items())]


def segment_value(lead, segment_by: str) -> str:
    return getattr(lead, segment_by) or UNKNOWN_SEGMENT


def funnel_row(segment: str, leads: Sequence[Any]) -> Dict[str, Any]:
    counts = stage_counts(leads)
    cold = counts[LeadStage.COLD.value]
    warm = counts[LeadStage.WARM.value]
    hot = counts[LeadStage.HOT.value]
    converted = counts[CONVERTED]
    revenue = total_revenue(leads)

    return {
        "segment": segment,
        "stages": counts,
        "conversion_rates": {
            "cold_to_warm": rate(warm, cold + warm),
            "warm_to_hot": rate(hot, warm + hot),
            "hot_to_converted": rate(converted, hot + converted),
            "overall": rate(converted, len(leads)),
        },
        "metrics": {
            "total_leads": len(leads),
            "total_revenue": revenue,
            "avg_lead_score": average_score(leads),
            "revenue_per_lead": round(revenue / len(leads), 2) if leads else 0.0,
        },
    }


def funnel_segments(leads: Sequence[Any], segment_by: Optional[str] = None) -> List[Dict[str, Any]]:
    """Stage counts and step conversion rates, optionally per segment"""
    if not segment_by:
        return [funnel_row("overall", leads)]

    if segment_by not in SEGMENT_FIELDS:
        raise ValidationError(f"Invalid segment field: {segment_by}")

    groups: Dict[str, List[Any]] = defaultdict(list)
    for lead in leads:
        groups[segment_value(lead, segment_by)].append(lead)

    rows = [funnel_row(segment, members) for segment, members in groups.items()]
    return sorted(rows, key=lambda row: row["metrics"]["total_leads"], reverse=True)


def cohort_key(created_at: datetime, period: str) -> str:
    """ISO week (YYYY-Www) or month (YYYY-MM) of a creation date"""
    if period == "weekly":
        year, week, _ = created_at.isocalendar()
        return f"{year}-W{week:02d}"
    if period == "monthly":
        return created_at.strftime("%Y-%m")
    raise ValidationError(f"Invalid cohort period: {period}")


def days_to_conversion(lead) -> Optional[float]:
    if lead.purchase_date is None or lead.created_at is None:
        return None
    return (lead.purchase_date - lead.created_at).total_seconds() / 86400


def cohort_analysis(leads: Sequence[Any], period: str = "weekly") -> Dict[str, Any]:
    if period not in COHORT_PERIODS:
        raise ValidationError(f"Invalid cohort period: {period}")

    groups: Dict[str, List[Any]] = defaultdict(list)
    for lead in leads:
        groups[cohort_key(lead.created_at, period)].append(lead)

    cohorts = []
    for key in sorted(groups):
        members = groups[key]
        converted = sum(1 for lead in members if is_converted(lead))
        durations = [d for d in (days_to_conversion(lead) for lead in members) if d is not None]

        cohorts.append({
            "period": key,
            "total_leads": len(members),
            "converted_leads": converted,
            "conversion_rate": rate(converted, len(members)),
            "total_revenue": total_revenue(members),
            "avg_days_to_conversion": round(sum(durations) / len(durations), 1) if durations else None,
        })

    return {
        "period": period,
        "cohorts": cohorts,
        "summary": {
            "total_cohorts": len(cohorts),
            "avg_conversion_rate": mean(c["conversion_rate"] for c in cohorts),
            "total_revenue": round(sum(c["total_revenue"] for c in cohorts), 2),
        },
    }


def attribution(leads: Sequence[Any]) -> Dict[str, Any]:
    """Leads, conversions and revenue per acquisition tuple"""
    groups: Dict[tuple, List[Any]] = defaultdict(list)
    for lead in leads:
        key = (lead.source, lead.utm_source, lead.utm_medium, lead.utm_campaign)
        groups[key].append(lead)

    rows = []
    for (source, utm_source, utm_medium, utm_campaign), members in groups.items():
        conversions = sum(1 for lead in members if is_converted(lead))
        rows.append({
            "source": source,
            "utm_source": utm_source,
            "utm_medium": utm_medium,
            "utm_campaign": utm_campaign,
            "leads": len(members),
            "conversions": conversions,
            "conversion_rate": rate(conversions, len(members)),
            "revenue": total_revenue(members),
            "avg_lead_score": average_score(members),
        })

    rows.sort(key=lambda row: row["leads"], reverse=True)

    return {
        "attribution": rows,
        "summary": {
            "total_sources": len(rows),
            "best_performing_source": rows[0] if rows else None,
            "total_revenue": round(sum(row["revenue"] for row in rows), 2),
        },
    }


def _event(date: datetime, event: str, details: str, stage: LeadStage) -> Dict[str, Any]:
    return {"date": date, "event": event, "details": details, "stage": stage.value}


def lead_timeline(lead, interactions: Sequence[Any] = ()) -> List[Dict[str, Any]]:
    """Chronological journey of one lead"""
    events = [_event(lead.created_at, "Lead Created", f"Source: {lead.source}", LeadStage.COLD)]

    for interaction in interactions:
        message = interaction.message or ""
        details = message[:100] + "..." if len(message) > 100 else message
        events.append(_event(interaction.timestamp, "Chatbot Interaction", details, LeadStage.WARM))

    if lead.email_last_opened:
        events.append(_event(
            lead.email_last_opened, "Email Opened",
            f"Total opens: {lead.email_opened_count or 0}", LeadStage.WARM,
        ))

    if lead.email_last_clicked:
        events.append(_event(
            lead.email_last_clicked, "Email Clicked",
            f"Total clicks: {lead.email_clicked_count or 0}", LeadStage.WARM,
        ))

    if lead.call_scheduled:
        events.append(_event(lead.call_scheduled, "Call Scheduled", f"Booking ID: {lead.booking_id}", LeadStage.HOT))

    if lead.call_completed:
        events.append(_event(
            lead.call_completed_at or lead.updated_at, "Call Completed",
            lead.call_notes or "Call completed", LeadStage.HOT,
        ))

    if lead.purchase_date:
        events.append(_event(
            lead.purchase_date, "Purchase Made",
            f"Amount: ${amount(lead):.2f}", LeadStage.CONVERTED,
        ))

    # sorted() is stable, so same-instant events keep their natural order
    events = sorted(events, key=lambda e: e["date"])
    for event in events:
        event["date"] = event["date"].isoformat()
    return events


def lead_summary(lead, interaction_count: int) -> Dict[str, Any]:
    """Profile, engagement and conversion blocks for one lead"""
    return {
        "lead": {
            "id": str(lead.id),
            "name": full_name(lead),
            "email": lead.email,
            "phone": lead.phone,
            "stage": lead.stage,
            "lead_score": lead_score(lead),
            "source": lead.source,
            "career_goal": lead.career_goal,
            "created_at": lead.created_at.isoformat(),
            "updated_at": lead.updated_at.isoformat() if lead.updated_at else None,
        },
        "engagement": {
            "chatbot_interactions": interaction_count,
            "email_opens": lead.email_opened_count or 0,
            "email_clicks": lead.email_clicked_count or 0,
            "call_scheduled": lead.call_scheduled is not None,
            "call_completed": bool(lead.call_completed),
        },
        "conversion": {
            "purchased": bool(lead.purchase_id),
            "amount": float(lead.purchase_amount) if lead.purchase_amount is not None else None,
            "course": lead.course_interest,
        },
    }
