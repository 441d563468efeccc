"""Tenant mode — which backing store a company's collections use.

Three variants, passed explicitly to every CollectionStore:

    Remote(company_id, user_id)        live remote document store
    LocalDemo(session_id)               demo session, local mirror only
    LocalOffline(company_id, user_id)  signed in, but the profile could not
                                       be loaded; local mirror only

resolve_tenant_mode() derives the variant from the request context
(session demo flag + current user), see middleware/tenant.py.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

DEMO_USER_ID = "demo-user"
DEMO_COMPANY_ID = "demo-company"


@dataclass(frozen=True)
class Remote:
    company_id: str
    user_id: str

    is_local = False


@dataclass(frozen=True)
class LocalDemo:
    company_id: str = DEMO_COMPANY_ID
    user_id: str = DEMO_USER_ID
    session_id: Optional[str] = None

    is_local = True


@dataclass(frozen=True)
class LocalOffline:
    company_id: Optional[str]
    user_id: str

    is_local = True


TenantMode = Union[Remote, LocalDemo, LocalOffline]


def mode_name(tenant):
    """Short label used in API payloads and logs."""
    if isinstance(tenant, Remote):
        return "remote"
    if isinstance(tenant, LocalDemo):
        return "demo"
    return "offline"


def tenant_scope(tenant):
    """Suffix that keeps one tenant's local keys apart from another's.

    None for the shared demo tenant (no session), which keeps the plain
    device keys such as revo_mock_sites.
    """
    if isinstance(tenant, LocalDemo):
        return f"demo_{tenant.session_id}" if tenant.session_id else None
    if tenant.company_id:
        return tenant.company_id
    return f"user_{tenant.user_id}"


def scoped_key(prefix, tenant):
    """Local storage key for `prefix`, scoped to the tenant."""
    scope = tenant_scope(tenant)
    return prefix if scope is None else f"{prefix}_{scope}"


def resolve_tenant_mode(user, demo_mode, default_limit, demo_session_id=None):
    """Pick the tenant mode for a request.

    Args:
        user: the authenticated User, or None.
        demo_mode: True when the session carries the demo flag.
        default_limit: simultaneous limit for a company created here.
        demo_session_id: per-session demo id; keeps demo mirrors apart.

    Returns:
        A TenantMode, or None when nobody is signed in.
    """
    if demo_mode:
        return LocalDemo(session_id=demo_session_id)
    if user is None:
        return None

    from app.services import company_service

    try:
        company = company_service.ensure_company(user, default_limit)
    except SQLAlchemyError as e:
        logger.warning(f"Could not load company for user {user.id}, going offline: {e}")
        return LocalOffline(company_id=user.company_id, user_id=user.id)

    return Remote(company_id=company.id, user_id=user.id)
