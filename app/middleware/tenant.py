"""Tenant middleware — resolves the tenant mode for the request.

Runs before every request. Sets g.tenant to a TenantMode:

    LocalDemo     session carries a demo id (POST /auth/demo)
    Remote        signed-in user whose company loaded from the database
    LocalOffline  signed-in user, but the company could not be loaded
    None          anonymous request

Stores built during the request are bound to g.tenant, so a login,
logout or demo switch changes the backing store on the next request.
"""

from flask import current_app, g, request, session
from flask_login import current_user

from app.services.tenant_mode import resolve_tenant_mode

DEMO_SESSION_KEY = "demo_mode"


def resolve_tenant():
    """Before-request hook: compute g.tenant."""
    g.tenant = None

    if request.path.startswith("/static/"):
        return

    demo_flag = session.get(DEMO_SESSION_KEY)
    user = current_user._get_current_object() if current_user.is_authenticated else None

    g.tenant = resolve_tenant_mode(
        user,
        bool(demo_flag),
        current_app.config.get("DEFAULT_SIMULTANEOUS_LIMIT", 3),
        demo_session_id=demo_flag if isinstance(demo_flag, str) else None,
    )


def init_tenant_middleware(app):
    """Register the tenant resolver as a before_request hook."""
    app.before_request(resolve_tenant)
