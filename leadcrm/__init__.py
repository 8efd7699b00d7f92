import os
import logging

import click
from flask import Flask, jsonify
from flask_wtf.csrf import CSRFError
from werkzeug.security import generate_password_hash

from leadcrm.config import config_by_name
from leadcrm.errors import LeadCrmError
from leadcrm.extensions import db, migrate, login_manager, csrf, limiter


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
        from leadcrm import models  # noqa: F401

    # --- Register blueprints ---
    from leadcrm.blueprints.auth import auth_bp
    from leadcrm.blueprints.leads import leads_bp
    from leadcrm.blueprints.calls import calls_bp
    from leadcrm.blueprints.stats import stats_bp
    from leadcrm.blueprints.queue import queue_bp
    from leadcrm.blueprints.notes import notes_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(leads_bp)
    app.register_blueprint(calls_bp)
    app.register_blueprint(stats_bp)
    app.register_blueprint(queue_bp)
    app.register_blueprint(notes_bp)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    # --- Error handlers ---
    register_error_handlers(app)

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # JSON only; nothing here should ever be rendered as a page
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none';"
        )
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_error_handlers(app):
    """Every error leaves the API as {"error": ..., "code": ...}."""

    @app.errorhandler(LeadCrmError)
    def lead_crm_error(e):
        if e.status_code >= 500:
            app.logger.error(f"{e.code}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(CSRFError)
    def csrf_error(e):
        return jsonify({"error": e.description, "code": "CSRF_FAILED"}), 400

    @app.errorhandler(403)
    def forbidden(e):
        return jsonify({"error": "Forbidden", "code": "FORBIDDEN"}), 403

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found", "code": "NOT_FOUND"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "code": "METHOD_NOT_ALLOWED"}), 405

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"error": "Too many requests", "code": "RATE_LIMITED"}), 429

    @app.errorhandler(500)
    def server_error(e):
        db.session.rollback()
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-admin")
    @click.option("--email", default="admin@leadcrm.local", help="Admin email")
    @click.option("--password", default="admin123", help="Admin password")
    @click.option("--name", default="Admin", help="Display name")
    @click.option(
        "--role",
        default="super_admin",
        type=click.Choice(["super_admin", "admin"]),
        help="Admin tier role",
    )
    def seed_admin(email, password, name, role):
        """Create the first admin account.

        Usage:
            flask seed-admin
            flask seed-admin --email admin@example.com --password s3cret
        """
        from leadcrm.models.user import User

        email = email.lower().strip()
        existing = User.query.filter_by(email=email).first()
        if existing:
            click.echo(f"User already exists: {email} ({existing.role})")
            return

        admin = User(
            email=email,
            password_hash=generate_password_hash(password),
            name=name,
            role=role,
        )
        db.session.add(admin)
        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo(f"  Admin:  {email} / {password}")
        click.echo(f"  Role:   {role} (id: {admin.id})")
        click.echo("=" * 60)

    @app.cli.command("apply-pending-call-effects")
    @click.option("--limit", default=500, show_default=True, help="Max call logs to process.")
    @click.option("--dry-run", is_flag=True, help="List pending call logs without applying.")
    def apply_pending_call_effects(limit, dry_run):
        """Retry stage/stats effects for calls that were logged but not applied.

        Usage:
            flask apply-pending-call-effects
            flask apply-pending-call-effects --dry-run
        """
        from leadcrm.errors import CallEffectsPending
        from leadcrm.services import call_service

        pending = call_service.pending_call_logs(limit=limit)
        click.echo(f"{len(pending)} call log(s) pending")
        if dry_run:
            for call_log in pending:
                click.echo(f"  [DRY RUN] call {call_log.id} lead={call_log.lead_id} "
                           f"caller={call_log.caller_id} date={call_log.stats_date}")
            return

        applied = failed = 0
        for call_log in pending:
            try:
                _, _, _, applied_now = call_service.apply_call_effects(call_log.id)
            except CallEffectsPending as e:
                db.session.rollback()
                failed += 1
                click.echo(f"  FAILED call {call_log.id}: {e.reason}")
                continue
            db.session.commit()
            if applied_now:
                applied += 1

        click.echo(f"Applied: {applied}, failed: {failed}")
