"""Pipeline service — kanban status moves and lead -> site conversion.

Site cards move freely between site statuses. Lead cards move freely too,
except onto Won: that drop raises ConversionRequired and nothing is
written. convert_lead() then creates the site first and only marks the
lead Won once the site exists; if the site cannot be created the lead
keeps its status and the user gets a failure notification.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from app.models.records import LeadRecord, SiteRecord
from app.services.capacity_service import to_day
from app.services.collection_store import WriteResult
from app.services.record_service import sanitize_text

logger = logging.getLogger(__name__)


class ConversionRequired(Exception):
    """A lead was dropped on Won; the conversion form must be shown."""

    def __init__(self, lead_id):
        super().__init__(f"Lead {lead_id} must be converted into a site to be won.")
        self.lead_id = lead_id


@dataclass(frozen=True)
class ConversionOutcome:
    converted: bool
    site: Optional[WriteResult] = None
    lead: Optional[WriteResult] = None
    error: Optional[str] = None


def change_site_status(sites_store, site_id, status):
    """Move a site card to another column.

    Raises:
        ValueError: If status is not a site status.
    """
    if status not in SiteRecord.STATUSES:
        raise ValueError(
            f"Invalid status '{status}'. Must be one of: {', '.join(SiteRecord.STATUSES)}"
        )
    return sites_store.update(site_id, {"status": status})


def change_lead_status(leads_store, lead_id, status):
    """Move a lead card to another column.

    Raises:
        ValueError: If status is not a lead status.
        ConversionRequired: If status is Won. No write happens.
    """
    if status not in LeadRecord.STATUSES:
        raise ValueError(
            f"Invalid status '{status}'. Must be one of: {', '.join(LeadRecord.STATUSES)}"
        )
    if status == LeadRecord.WON:
        raise ConversionRequired(lead_id)
    return leads_store.update(lead_id, {"status": status})


def build_site_from_lead(lead, address, start_date=None, end_date=None,
                         today=None, default_days=30):
    """Site record derived from a lead plus the fields the lead lacks.

    Without an end date the site runs `default_days` from its start.

    Raises:
        ValueError: If a date is not ISO formatted.
    """
    start = to_day(start_date) if start_date else (today or date.today())
    end = to_day(end_date) if end_date else start + timedelta(days=default_days)
    contact = lead.get("contact_name") or ""
    project_type = lead.get("project_type") or "Chantier"

    return {
        "name": f"{project_type} - {contact}",
        "client": contact,
        "client_id": None,
        "address": address,
        "status": SiteRecord.NEW,
        "budget": lead.get("estimated_budget") or 0,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "description": f"Site created from lead {contact}.",
        "progress": 0,
        "lead_id": lead.get("id"),
    }


def convert_lead(sites_store, leads_store, lead, address, start_date=None,
                 end_date=None, notify=None, today=None, default_days=30):
    """Create a site from a lead, then mark the lead Won.

    Args:
        sites_store: CollectionStore for "sites".
        leads_store: CollectionStore for "leads".
        lead: The lead record (dict with an "id").
        address: Site address (required, sanitized).
        start_date / end_date: Optional ISO dates.
        notify: Optional callable(message, category).

    Returns:
        ConversionOutcome. converted=False means the site could not be
        created and the lead was left untouched.

    Raises:
        ValueError: On missing address, bad dates, or an already won lead.
            Raised before anything is written.
    """
    notify = notify or (lambda message, category: None)

    address = sanitize_text(address or "")
    if not address:
        raise ValueError("Address is required to convert a lead.")
    if lead.get("status") == LeadRecord.WON:
        raise ValueError("This lead has already been converted.")

    site = build_site_from_lead(
        lead, address, start_date, end_date, today=today, default_days=default_days
    )

    try:
        site_result = sites_store.add(site)
    except Exception as e:
        logger.error(f"Conversion of lead {lead.get('id')} failed: {e}")
        notify("Conversion failed", "error")
        return ConversionOutcome(converted=False, error=str(e))

    lead_result = leads_store.update(lead["id"], {"status": LeadRecord.WON})
    logger.info(
        f"Lead {lead['id']} converted into site {site_result.record_id} "
        f"({site_result.persisted_to.value})"
    )
    notify("Congratulations! Site created.", "success")
    return ConversionOutcome(converted=True, site=site_result, lead=lead_result)
