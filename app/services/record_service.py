"""Record service — sanitization and validation of incoming records.

All free text is stripped of HTML with bleach.clean(). Unknown fields are
dropped. Leads cannot be set to Won here: that status is only reachable
through pipeline_service.convert_lead().
"""

from datetime import datetime, timezone

import bleach

from app.models.records import RECORD_TYPES, LeadRecord, SiteRecord
from app.services.capacity_service import to_day

_NUMERIC_FIELDS = {"budget", "estimated_budget", "lat", "lng", "progress"}
_DATE_FIELDS = {"start_date", "end_date"}
_LIST_FIELDS = {"tasks", "members"}


def sanitize_text(text):
    """Strip all HTML tags from user input."""
    if text is None:
        return text
    return bleach.clean(text, tags=[], strip=True).strip()


def _number(field, value):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a number.")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be a number.")
    return int(number) if number.is_integer() else number


def clean_record(collection, data, partial=False):
    """Return a sanitized copy of `data` for `collection`.

    Args:
        collection: One of models.records.COLLECTIONS.
        data: Raw dict from the request body.
        partial: True for updates; required fields and defaults are skipped.

    Raises:
        ValueError: On unknown collection, missing required fields or
            invalid values.
    """
    record_type = RECORD_TYPES.get(collection)
    if record_type is None:
        raise ValueError(f"Unknown collection '{collection}'.")
    if not isinstance(data, dict):
        raise ValueError("Record must be a JSON object.")

    cleaned = {}
    for field in record_type.FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field in _NUMERIC_FIELDS:
            value = _number(field, value)
        elif field in _LIST_FIELDS:
            if not isinstance(value, list):
                raise ValueError(f"{field} must be a list.")
            value = [sanitize_text(str(item)) for item in value if str(item).strip()]
        elif isinstance(value, str):
            value = sanitize_text(value)
        cleaned[field] = value

    if not partial:
        missing = [f for f in record_type.REQUIRED if not cleaned.get(f)]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

    if record_type is SiteRecord:
        _validate_site(cleaned, partial)
    elif record_type is LeadRecord:
        _validate_lead(cleaned, partial)

    return cleaned


def _validate_site(site, partial):
    if not partial:
        site.setdefault("status", SiteRecord.NEW)
        site.setdefault("progress", 0)
        site.setdefault("budget", 0)

    if "status" in site and site["status"] not in SiteRecord.STATUSES:
        raise ValueError(
            f"Invalid status '{site['status']}'. Must be one of: "
            f"{', '.join(SiteRecord.STATUSES)}"
        )
    if site.get("budget") is not None and site["budget"] < 0:
        raise ValueError("budget cannot be negative.")
    progress = site.get("progress")
    if progress is not None and not 0 <= progress <= 100:
        raise ValueError("progress must be between 0 and 100.")
    for field in _DATE_FIELDS:
        if site.get(field):
            try:
                to_day(site[field])
            except ValueError:
                raise ValueError(f"{field} must be an ISO date.")


def _validate_lead(lead, partial):
    if not partial:
        lead.setdefault("status", LeadRecord.NEW)
        lead.setdefault("estimated_budget", 0)
        lead.setdefault("created_at", datetime.now(timezone.utc).isoformat())

    status = lead.get("status")
    if status is not None and status not in LeadRecord.STATUSES:
        raise ValueError(
            f"Invalid status '{status}'. Must be one of: "
            f"{', '.join(LeadRecord.STATUSES)}"
        )
    if status == LeadRecord.WON:
        raise ValueError("A lead is marked won by converting it into a site.")
    if lead.get("estimated_budget") is not None and lead["estimated_budget"] < 0:
        raise ValueError("estimated_budget cannot be negative.")
