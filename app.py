import logging

from flask import Flask, request, g, jsonify
from werkzeug.exceptions import HTTPException

from config import Config
from routes import (
    health_bp, auth_bp, sessions_bp, availability_bp, subscriptions_bp, admin_bp, cron_bp,
)

from models import db
from flask_migrate import Migrate
from integrations import init_providers
from services.errors import SchedulingError
from services.side_effects import init_dispatcher
from utils.seed import seed_roles
from utils.auth_context import load_current_user
from security.session import require_csrf

logger = logging.getLogger(__name__)


def _configure_logging(level_name: str):
    logging.basicConfig(
        level=getattr(logging, str(level_name).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_app(config_object=Config, providers=None):
    app = Flask(__name__)
    app.config.from_object(config_object)
    _configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(sessions_bp)
    app.register_blueprint(availability_bp)
    app.register_blueprint(subscriptions_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(cron_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Seed default roles at startup (safe & idempotent)
    with app.app_context():
        seed_roles()

    # Calendar / documents / email, then the worker that drives them
    init_providers(app, providers)
    init_dispatcher(app)

    @app.before_request
    def _load_user():
        load_current_user()

    csrf_exempt_paths = set(app.config.get("CSRF_EXEMPT_PATHS", ()))

    @app.before_request
    def _csrf_protect():
        if not app.config.get("CSRF_ENABLED", True):
            return None
        # Only protect state-changing requests
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if request.path in csrf_exempt_paths:
                return None

            # Only enforce CSRF if user is already authenticated (cookie session)
            if getattr(g, "user", None) is not None:
                failure = require_csrf()
                if failure:
                    return failure

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_error_handlers(app)
    register_cli(app)

    return app


def register_error_handlers(app):
    @app.errorhandler(SchedulingError)
    def _scheduling_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def _http_error(exc):
        return jsonify(error=exc.description), exc.code

    @app.errorhandler(Exception)
    def _unhandled(exc):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        db.session.rollback()
        return jsonify(error="Internal server error"), 500


#-------------------------
import click
from models.user import User, ADMIN_ROLE, TEACHER_ROLE
from services.reminders import send_due_reminders
from utils.seed import grant_role


def register_cli(app):
    def _promote(email, role_name):
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return
        grant_role(user, role_name)
        click.echo(f"{user.email} promoted to {role_name}")

    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        _promote(email, ADMIN_ROLE)

    @app.cli.command("make-teacher")
    @click.argument("email")
    def make_teacher(email):
        """Give a user the TEACHER role by email."""
        _promote(email, TEACHER_ROLE)

    @app.cli.command("send-reminders")
    def send_reminders():
        """Email reminders for classes starting in about 24 hours."""
        result = send_due_reminders()
        click.echo(
            f"processed={result['processed']} sent={result['sent']} failed={result['failed']}"
        )
        for err in result["errors"]:
            click.echo(f"  {err}")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
