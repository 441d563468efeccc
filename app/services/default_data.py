"""Built-in default dataset.

Seeds the local mirror the first time a collection is opened in demo or
offline mode (or after a remote fallback) and nothing was saved locally
yet. Site dates are relative to today so the demo board always has work
in progress.
"""

from datetime import date, timedelta

from app.models.records import LeadRecord, SiteRecord


def _sites(today):
    def day(offset):
        return (today + timedelta(days=offset)).isoformat()

    return [
        {
            "id": "seed_site_1",
            "name": "Rénovation appartement Haussmann",
            "client": "Claire Martin",
            "client_id": "seed_client_1",
            "address": "12 rue de Rivoli, 75004 Paris",
            "lat": 48.8559,
            "lng": 2.3588,
            "status": SiteRecord.IN_PROGRESS,
            "budget": 45000,
            "start_date": day(-10),
            "end_date": day(20),
            "description": "Rénovation complète, cuisine et salle de bain.",
            "team_id": "seed_team_1",
            "progress": 35,
        },
        {
            "id": "seed_site_2",
            "name": "Extension maison individuelle",
            "client": "Paul Durand",
            "client_id": "seed_client_2",
            "address": "5 allée des Tilleuls, 92100 Boulogne",
            "lat": 48.8397,
            "lng": 2.2399,
            "status": SiteRecord.NEW,
            "budget": 78000,
            "start_date": day(5),
            "end_date": day(60),
            "description": "Extension de 25 m² avec baie vitrée.",
            "team_id": "seed_team_2",
            "progress": 0,
        },
        {
            "id": "seed_site_3",
            "name": "Ravalement de façade",
            "client": "SCI Les Lilas",
            "client_id": "seed_client_3",
            "address": "40 avenue Jean Jaurès, 93260 Les Lilas",
            "lat": 48.8799,
            "lng": 2.4186,
            "status": SiteRecord.IN_REVIEW,
            "budget": 32000,
            "start_date": day(-30),
            "end_date": day(2),
            "description": "Nettoyage et peinture façade sur rue.",
            "team_id": "seed_team_1",
            "progress": 90,
        },
        {
            "id": "seed_site_4",
            "name": "Isolation combles",
            "client": "Claire Martin",
            "client_id": "seed_client_1",
            "address": "8 rue des Écoles, 94300 Vincennes",
            "status": SiteRecord.DONE,
            "budget": 9000,
            "start_date": day(-60),
            "end_date": day(-45),
            "progress": 100,
        },
    ]


def _clients():
    return [
        {
            "id": "seed_client_1",
            "name": "Claire Martin",
            "email": "claire.martin@example.com",
            "phone": "06 12 34 56 78",
            "company": "",
            "address": "12 rue de Rivoli, 75004 Paris",
        },
        {
            "id": "seed_client_2",
            "name": "Paul Durand",
            "email": "paul.durand@example.com",
            "phone": "06 98 76 54 32",
            "company": "",
            "address": "5 allée des Tilleuls, 92100 Boulogne",
        },
        {
            "id": "seed_client_3",
            "name": "SCI Les Lilas",
            "email": "gestion@sci-leslilas.example.com",
            "phone": "01 43 62 00 00",
            "company": "SCI Les Lilas",
            "address": "40 avenue Jean Jaurès, 93260 Les Lilas",
        },
    ]


def _leads(today):
    return [
        {
            "id": "seed_lead_1",
            "contact_name": "Julie Bernard",
            "project_type": "Rénovation totale",
            "email": "julie.bernard@example.com",
            "phone": "06 11 22 33 44",
            "status": LeadRecord.NEW,
            "estimated_budget": 60000,
            "source": "Site Web",
            "created_at": (today - timedelta(days=2)).isoformat(),
        },
        {
            "id": "seed_lead_2",
            "contact_name": "Marc Petit",
            "project_type": "Salle de bain",
            "email": "marc.petit@example.com",
            "phone": "06 55 66 77 88",
            "status": LeadRecord.QUOTE_SENT,
            "estimated_budget": 12000,
            "source": "Bouche à oreille",
            "created_at": (today - timedelta(days=9)).isoformat(),
            "notes": "Relancer en fin de semaine.",
        },
        {
            "id": "seed_lead_3",
            "contact_name": "Sophie Leroy",
            "project_type": "Cuisine",
            "email": "sophie.leroy@example.com",
            "phone": "06 99 88 77 66",
            "status": LeadRecord.NEGOTIATION,
            "estimated_budget": 18500,
            "source": "Salon",
            "created_at": (today - timedelta(days=20)).isoformat(),
        },
    ]


def _templates():
    return [
        {
            "id": "seed_template_1",
            "name": "Salle de bain complète",
            "description": "Dépose, plomberie, carrelage, finitions.",
            "tasks": [
                "Dépose de l'existant",
                "Reprise plomberie",
                "Pose receveur et faïence",
                "Raccordements et finitions",
            ],
        },
        {
            "id": "seed_template_2",
            "name": "Peinture intérieure",
            "description": "Préparation des supports et mise en peinture.",
            "tasks": [
                "Protection des sols",
                "Rebouchage et ponçage",
                "Sous-couche",
                "Deux couches de finition",
            ],
        },
    ]


def _teams():
    return [
        {
            "id": "seed_team_1",
            "name": "Équipe Gros œuvre",
            "members": ["JD", "AL", "MK"],
            "color": "#2563eb",
        },
        {
            "id": "seed_team_2",
            "name": "Équipe Finitions",
            "members": ["SB", "TR"],
            "color": "#16a34a",
        },
    ]


def default_records(collection_name, today=None):
    """Return a fresh copy of the default dataset for a collection.

    Unknown collections have no defaults and get an empty list.
    """
    today = today or date.today()
    builders = {
        "sites": lambda: _sites(today),
        "clients": _clients,
        "leads": lambda: _leads(today),
        "templates": _templates,
        "teams": _teams,
    }
    builder = builders.get(collection_name)
    return builder() if builder else []
