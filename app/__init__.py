import os
import logging

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash

from app.config import config_by_name
from app.extensions import db, migrate, login_manager, csrf, limiter


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from app import models  # noqa: F401

    # --- Tenant middleware ---
    from app.middleware.tenant import init_tenant_middleware
    init_tenant_middleware(app)

    # --- Register blueprints ---
    from app.blueprints.auth import auth_bp
    from app.blueprints.api import api_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(api_bp)

    # --- Root route ---
    @app.route("/")
    def index():
        """Health check and entry point for the front end."""
        return jsonify({"service": "revo-btp", "status": "ok"})

    # --- Error handlers ---
    @app.errorhandler(HTTPException)
    def http_error(e):
        """Every HTTP error answers JSON; CSRF failures included."""
        return jsonify({"error": e.description or e.name}), e.code

    @app.errorhandler(500)
    def server_error(e):
        app.logger.exception("Unhandled error")
        return jsonify({"error": "Internal server error."}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Control referrer information
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Strict Transport Security (only in production)
        if not app.debug and not app.testing:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("create-user")
    @click.option("--email", required=True, help="Login email")
    @click.option("--password", required=True, help="Login password")
    @click.option("--full-name", default="", help="Display name")
    @click.option("--company-name", default="My company", help="Company name")
    def create_user(email, password, full_name, company_name):
        """Create a user and their company.

        Usage:
            flask create-user --email boss@example.com --password s3cret123
        """
        from app.models.company import Company
        from app.models.user import User

        email = email.lower().strip()
        if User.query.filter_by(email=email).first():
            click.echo(f"User already exists: {email}")
            return

        user = User(
            email=email,
            password_hash=generate_password_hash(password),
            full_name=full_name,
            role="admin",
        )
        db.session.add(user)
        db.session.flush()

        company = Company(
            id=f"comp_{user.id}",
            name=company_name,
            owner_id=user.id,
            simultaneous_limit=app.config["DEFAULT_SIMULTANEOUS_LIMIT"],
            plan="free",
        )
        db.session.add(company)
        user.company_id = company.id
        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo("User created successfully!")
        click.echo("=" * 60)
        click.echo(f"  User:     {email} (id: {user.id})")
        click.echo(f"  Company:  {company.name} (id: {company.id})")
        click.echo(f"  Limit:    {company.simultaneous_limit} simultaneous sites")
        click.echo("=" * 60)

    @app.cli.command("set-limit")
    @click.argument("company_id")
    @click.argument("limit", type=int)
    def set_limit(company_id, limit):
        """Set a company's simultaneous-site limit (0 disables the check).

        Usage:
            flask set-limit comp_1 5
        """
        from app.models.company import Company

        if limit < 0:
            click.echo("ERROR: limit cannot be negative.")
            return

        company = db.session.get(Company, company_id)
        if company is None:
            click.echo(f"ERROR: company {company_id} not found.")
            return

        company.simultaneous_limit = limit
        db.session.commit()
        click.echo(f"{company.name} ({company.id}): limit set to {limit}")

    @app.cli.command("reset-local-store")
    @click.option("--collection", default=None, help="Only reset this collection")
    @click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
    def reset_local_store(collection, yes):
        """Wipe the local mirror so the next read starts from seed data.

        Usage:
            flask reset-local-store
            flask reset-local-store --collection sites --yes
        """
        from app.services.local_storage import get_local_storage

        storage = get_local_storage(app)
        namespace = app.config["LOCAL_STORE_NAMESPACE"]

        if collection:
            # Every tenant's copy: revo_mock_sites, revo_mock_comp_1_sites, ...
            keys = [
                key for key in storage.keys()
                if key.startswith(f"{namespace}_") and key.endswith(f"_{collection}")
            ]
        else:
            keys = list(storage.keys())

        if not keys:
            click.echo("Local store is already empty.")
            return

        click.echo("Keys to remove:")
        for key in keys:
            click.echo(f"  {key}")

        if not yes and not click.confirm("Proceed?"):
            click.echo("Aborted.")
            return

        for key in keys:
            storage.remove(key)
        click.echo(f"Removed {len(keys)} key(s).")
