"""Record vocabularies for the document collections.

Sites, leads, clients, templates and teams are stored as JSON documents
(see Document), not as dedicated tables. This module holds the constants
that the services validate against.
"""

# -- Collections the stores and the API know about --
COLLECTIONS = ["sites", "clients", "leads", "templates", "teams"]


class SiteRecord:
    NEW = "Nouveau"
    IN_PROGRESS = "En cours"
    IN_REVIEW = "En révision"
    DONE = "Terminé"
    ARCHIVED = "Archivé"

    # -- Kanban column order --
    STATUSES = [NEW, IN_PROGRESS, IN_REVIEW, DONE, ARCHIVED]

    FIELDS = [
        "name", "client", "client_id", "address", "lat", "lng", "status",
        "budget", "start_date", "end_date", "description", "team_id",
        "progress", "lead_id",
    ]
    REQUIRED = ["name", "start_date", "end_date"]


class LeadRecord:
    NEW = "Nouveau"
    QUALIFIED = "Qualifié"
    QUOTE_SENT = "Devis envoyé"
    NEGOTIATION = "Négociation"
    WON = "Gagné"
    LOST = "Perdu"

    # -- Pipeline order; WON is only reachable through conversion --
    STATUSES = [NEW, QUALIFIED, QUOTE_SENT, NEGOTIATION, WON, LOST]

    FIELDS = [
        "contact_name", "company_name", "project_type", "email", "phone",
        "status", "estimated_budget", "source", "created_at", "notes",
    ]
    REQUIRED = ["contact_name"]


class ClientRecord:
    FIELDS = ["name", "email", "phone", "company", "address", "avatar"]
    REQUIRED = ["name"]


class TemplateRecord:
    FIELDS = ["name", "description", "tasks"]
    REQUIRED = ["name"]


class TeamRecord:
    FIELDS = ["name", "members", "color"]
    REQUIRED = ["name"]


RECORD_TYPES = {
    "sites": SiteRecord,
    "clients": ClientRecord,
    "leads": LeadRecord,
    "templates": TemplateRecord,
    "teams": TeamRecord,
}
