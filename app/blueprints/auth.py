"""Auth blueprint — /auth/*

JSON endpoints for registration, login, demo mode and logout.

Registration creates the user and their company (the tenant). Demo mode
stores a per-session demo id: it switches every collection to that
session's own local mirror until logout.
"""

import uuid

from flask import Blueprint, current_app, g, jsonify, request, session
from flask_login import current_user, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from werkzeug.security import check_password_hash, generate_password_hash

from app.extensions import db, limiter
from app.middleware.tenant import DEMO_SESSION_KEY
from app.models.company import Company
from app.models.user import User
from app.services.company_service import DEFAULT_COMPANY_NAME
from app.services.tenant_mode import mode_name

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _form():
    """Accept JSON bodies and classic form posts alike."""
    return request.get_json(silent=True) or request.form


def _user_dict(user):
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "company_id": user.company_id,
        "role": user.role,
    }


# ──────────────────────────────────────────────
# POST /auth/register
# ──────────────────────────────────────────────

@auth_bp.route("/register", methods=["POST"])
@limiter.limit("10 per minute")
def register():
    """Create a user and their company, then log in."""
    data = _form()
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""
    full_name = (data.get("full_name") or "").strip()
    company_name = (data.get("company_name") or "").strip() or DEFAULT_COMPANY_NAME

    # --- Validation ---
    errors = []

    if not email:
        errors.append("Email is required.")
    if not password:
        errors.append("Password is required.")
    elif len(password) < 8:
        errors.append("Password must be at least 8 characters.")
    if email and User.query.filter_by(email=email).first():
        errors.append("An account with this email already exists.")

    if errors:
        return jsonify({"errors": errors}), 400

    # --- Create user ---
    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        full_name=full_name,
        role="admin",
    )
    db.session.add(user)
    db.session.flush()  # get user.id

    # --- Create company ---
    company = Company(
        id=f"comp_{user.id}",
        name=company_name,
        owner_id=user.id,
        simultaneous_limit=current_app.config.get("DEFAULT_SIMULTANEOUS_LIMIT", 3),
        plan="free",
    )
    db.session.add(company)
    user.company_id = company.id

    db.session.commit()

    session.pop(DEMO_SESSION_KEY, None)
    login_user(user)
    current_app.logger.info(f"Registered {email} with company {company.id}")

    return jsonify({"user": _user_dict(user)}), 201


# ──────────────────────────────────────────────
# POST /auth/login
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("15 per minute")
def login():
    """Standard email + password login. Leaves demo mode."""
    data = _form()
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""
    remember = bool(data.get("remember"))

    if not email or not password:
        return jsonify({"error": "Email and password are required."}), 400

    user = User.query.filter_by(email=email).first()

    if user is None or not check_password_hash(user.password_hash, password):
        return jsonify({"error": "Invalid email or password."}), 401

    if not user.is_active:
        return jsonify({"error": "Your account has been deactivated."}), 403

    session.pop(DEMO_SESSION_KEY, None)
    login_user(user, remember=remember)

    return jsonify({"user": _user_dict(user)})


# ──────────────────────────────────────────────
# POST /auth/demo
# ──────────────────────────────────────────────

@auth_bp.route("/demo", methods=["POST"])
def demo():
    """Enter demo mode: local mirror only, no account needed."""
    if current_user.is_authenticated:
        logout_user()
    if not isinstance(session.get(DEMO_SESSION_KEY), str):
        session[DEMO_SESSION_KEY] = uuid.uuid4().hex
    return jsonify({"mode": "demo"})


# ──────────────────────────────────────────────
# POST /auth/logout
# ──────────────────────────────────────────────

@auth_bp.route("/logout", methods=["POST"])
def logout():
    """Log out and leave demo mode."""
    logout_user()
    session.pop(DEMO_SESSION_KEY, None)
    return jsonify({"success": True})


# ──────────────────────────────────────────────
# GET /auth/me
# ──────────────────────────────────────────────

@auth_bp.route("/me")
def me():
    """Who is this session, and which store backs it."""
    tenant = getattr(g, "tenant", None)
    return jsonify({
        "authenticated": current_user.is_authenticated,
        "user": _user_dict(current_user) if current_user.is_authenticated else None,
        "mode": mode_name(tenant) if tenant else None,
        "company_id": tenant.company_id if tenant else None,
    })


@auth_bp.route("/csrf")
def csrf_token():
    """CSRF token for the X-CSRFToken header of API writes."""
    return jsonify({"csrf_token": generate_csrf()})
