"""Overview service — payloads for the dashboard, boards, list and calendar.

All site-bearing payloads take the same CapacityEvaluator so their
over-limit flags agree for a given site list, limit and day.
"""

import calendar
from datetime import date, timedelta

from app.models.records import LeadRecord, SiteRecord
from app.services.capacity_service import to_day

CALENDAR_VIEWS = ["day", "week", "month", "year"]


def annotate_site(site, evaluator, today):
    return {**site, "over_limit": evaluator.is_site_over_limit_today(site, today)}


def build_site_board(sites, evaluator, today):
    """One column per site status, cards flagged when over the limit today."""
    columns = []
    for status in SiteRecord.STATUSES:
        cards = [annotate_site(s, evaluator, today) for s in sites if s.get("status") == status]
        columns.append({"status": status, "count": len(cards), "sites": cards})
    return columns


def build_lead_board(leads):
    """One column per lead status. Lost leads stay on the board."""
    columns = []
    for status in LeadRecord.STATUSES:
        cards = [dict(lead) for lead in leads if lead.get("status") == status]
        columns.append({
            "status": status,
            "count": len(cards),
            "total_budget": sum(_amount(lead.get("estimated_budget")) for lead in cards),
            "leads": cards,
        })
    return columns


def build_site_list(sites, evaluator, today, status=None, search=None):
    """Flat site list, optionally filtered, ordered by start date."""
    rows = sites
    if status:
        rows = [s for s in rows if s.get("status") == status]
    if search:
        needle = search.lower()
        rows = [
            s for s in rows
            if needle in (s.get("name") or "").lower()
            or needle in (s.get("client") or "").lower()
            or needle in (s.get("address") or "").lower()
        ]
    rows = sorted(rows, key=lambda s: s.get("start_date") or "")
    return [annotate_site(s, evaluator, today) for s in rows]


def build_dashboard(sites, evaluator, today, recent_count=4):
    """Headline numbers and recent sites for the dashboard."""
    in_progress = [s for s in sites if s.get("status") == SiteRecord.IN_PROGRESS]
    new = [s for s in sites if s.get("status") == SiteRecord.NEW]
    active_budget = sum(_amount(s.get("budget")) for s in in_progress + new)

    upcoming = sorted(
        in_progress + new, key=lambda s: s.get("start_date") or ""
    )
    recent = sorted(
        sites, key=lambda s: s.get("start_date") or "", reverse=True
    )[:recent_count]

    return {
        "in_progress_count": len(in_progress),
        "new_count": len(new),
        "active_budget": active_budget,
        "active_today": evaluator.count_active_on(today),
        "simultaneous_limit": evaluator.limit,
        "over_limit_today": evaluator.is_over_limit_on(today),
        "upcoming": [annotate_site(s, evaluator, today) for s in upcoming],
        "recent": [annotate_site(s, evaluator, today) for s in recent],
    }


def calendar_range(view, anchor):
    """(first_day, last_day) shown by a calendar view around `anchor`.

    Raises:
        ValueError: If view is not one of CALENDAR_VIEWS.
    """
    anchor = to_day(anchor)
    if view == "day":
        return anchor, anchor
    if view == "week":
        start = anchor - timedelta(days=anchor.weekday())  # Monday
        return start, start + timedelta(days=6)
    if view == "month":
        last = calendar.monthrange(anchor.year, anchor.month)[1]
        return anchor.replace(day=1), anchor.replace(day=last)
    if view == "year":
        return date(anchor.year, 1, 1), date(anchor.year, 12, 31)
    raise ValueError(f"Invalid view '{view}'. Must be one of: {', '.join(CALENDAR_VIEWS)}")


def build_calendar(sites, evaluator, view, anchor):
    """Per-day site counts and over-limit flags for a calendar view."""
    start, end = calendar_range(view, anchor)
    days = []
    for day, count, over_limit in evaluator.daily_counts(start, end):
        days.append({
            "date": day.isoformat(),
            "count": count,
            "over_limit": over_limit,
            "site_ids": [s.get("id") for s in evaluator.active_sites_on(day)],
        })
    return {
        "view": view,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "simultaneous_limit": evaluator.limit,
        "days": days,
    }


def _amount(value):
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0
