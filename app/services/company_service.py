"""Company service — tenant company records and capacity configuration.

Remote tenants keep their settings on the Company row. Local tenants
(demo / offline) keep them in the local mirror:

    revo_local_limit         simultaneous limit (missing -> default)
    revo_local_company_name  display name

Both keys are scoped to the tenant like the collection mirror, e.g.
revo_local_limit_comp_1; the session-less demo tenant uses them as-is.

A stored limit of 0 disables capacity checks.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.models.company import Company
from app.services.tenant_mode import scoped_key

logger = logging.getLogger(__name__)

LOCAL_LIMIT_KEY = "revo_local_limit"
LOCAL_NAME_KEY = "revo_local_company_name"

DEFAULT_COMPANY_NAME = "My company"
LOCAL_COMPANY_NAME = "My company (local mode)"


def ensure_company(user, default_limit):
    """Return the user's company, creating it on first use.

    The company id is derived from the owner id (comp_<user id>).

    Raises:
        SQLAlchemyError: If the database cannot be reached; the session is
            rolled back first.
    """
    try:
        if user.company_id:
            company = db.session.get(Company, user.company_id)
            if company is not None:
                return company

        company = Company(
            id=user.company_id or f"comp_{user.id}",
            name=DEFAULT_COMPANY_NAME,
            owner_id=user.id,
            simultaneous_limit=default_limit,
            plan="free",
        )
        db.session.add(company)
        user.company_id = company.id
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info(f"Created company {company.id} for user {user.id}")
    return company


def _parse_limit(value):
    """Validate a limit coming from user input or storage."""
    try:
        limit = int(value)
    except (TypeError, ValueError):
        raise ValueError("Simultaneous limit must be a whole number.")
    if limit < 0:
        raise ValueError("Simultaneous limit cannot be negative.")
    return limit


def _local_limit(tenant, local_storage, default_limit):
    stored = local_storage.get(scoped_key(LOCAL_LIMIT_KEY, tenant), None)
    if stored is None:
        return default_limit
    try:
        return _parse_limit(stored)
    except ValueError:
        logger.warning(f"Ignoring invalid local limit {stored!r}")
        return default_limit


def get_simultaneous_limit(tenant, local_storage, default_limit):
    """Current capacity limit for the tenant (0 = no limit)."""
    if tenant.is_local:
        return _local_limit(tenant, local_storage, default_limit)

    try:
        company = db.session.get(Company, tenant.company_id)
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning(f"Company {tenant.company_id} unreachable, using local limit: {e}")
        return _local_limit(tenant, local_storage, default_limit)

    if company is None:
        return 0
    return company.simultaneous_limit or 0


def get_company_settings(tenant, local_storage, default_limit):
    """Settings payload for the company page."""
    limit = get_simultaneous_limit(tenant, local_storage, default_limit)
    if tenant.is_local:
        name = local_storage.get(scoped_key(LOCAL_NAME_KEY, tenant), None) or LOCAL_COMPANY_NAME
        plan = "free"
    else:
        company = db.session.get(Company, tenant.company_id)
        name = company.name if company else DEFAULT_COMPANY_NAME
        plan = company.plan if company else "free"
    return {
        "company_id": tenant.company_id,
        "name": name,
        "plan": plan,
        "simultaneous_limit": limit,
    }


def update_company_settings(tenant, local_storage, name=None, simultaneous_limit=None):
    """Update name and/or limit.

    Raises:
        ValueError: If the limit is not a non-negative integer or the name
            is blank.
    """
    if simultaneous_limit is not None:
        simultaneous_limit = _parse_limit(simultaneous_limit)
    if name is not None:
        name = name.strip()
        if not name:
            raise ValueError("Company name cannot be empty.")

    if tenant.is_local:
        if simultaneous_limit is not None:
            local_storage.set(scoped_key(LOCAL_LIMIT_KEY, tenant), simultaneous_limit)
        if name is not None:
            local_storage.set(scoped_key(LOCAL_NAME_KEY, tenant), name)
        return

    company = db.session.get(Company, tenant.company_id)
    if company is None:
        raise ValueError(f"Company {tenant.company_id} not found.")
    if simultaneous_limit is not None:
        company.simultaneous_limit = simultaneous_limit
    if name is not None:
        company.name = name
    db.session.commit()
    logger.info(
        f"Company {company.id} settings updated "
        f"(limit={company.simultaneous_limit})"
    )
