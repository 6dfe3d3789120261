import logging

import click
from flask import Flask, request, g, jsonify
from flask_migrate import Migrate
from sqlalchemy import inspect

from config import Config
from routes import health_bp, admin_bp, booking_bp, interventions_bp, inventory_bp, slots_bp

from models import db
from models.technician import Technician
from models.user import User, Role
from security.csrf import CSRF_COOKIE, issue_csrf_token, require_csrf
from security.session import create_session, revoke_all_sessions
from services import booking
from services.collaborators import EXTENSION_KEY, Collaborators
from services.errors import PersistenceError, ServiceError
from utils.seed import seed_roles
from utils.auth_context import load_current_user

logger = logging.getLogger(__name__)

migrate = Migrate()


def create_app(config_object=Config, collaborators: Collaborators = None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(slots_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(interventions_bp)
    app.register_blueprint(inventory_bp)

    # Database init
    db.init_app(app)

    # Migrations
    migrate.init_app(app, db)

    # warranty / claims / responsable routing, replaceable per deployment
    app.extensions[EXTENSION_KEY] = collaborators or Collaborators()

    with app.app_context():
        if app.config.get("AUTO_CREATE_SCHEMA"):
            db.create_all()
        # Seed default roles at startup (safe & idempotent); skipped before the first `flask db upgrade`
        if inspect(db.engine).has_table("roles"):
            seed_roles()

    register_error_handlers(app)

    @app.before_request
    def _load_user():
        load_current_user()

    CSRF_EXEMPT_PATHS = {
        "/health",
    }

    @app.before_request
    def _csrf_protect():
        # Only protect state-changing requests
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if request.path in CSRF_EXEMPT_PATHS:
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
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        # hand out the double-submit token to authenticated clients that lack one
        if getattr(g, "user", None) is not None and not request.cookies.get(CSRF_COOKIE):
            issue_csrf_token(resp)
        return resp

    register_cli(app)

    return app


def register_error_handlers(app):
    @app.errorhandler(ServiceError)
    def _service_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(PersistenceError)
    def _persistence_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(404)
    def _not_found(exc):
        return jsonify(error="Not found", code="not_found"), 404

    @app.errorhandler(405)
    def _method_not_allowed(exc):
        return jsonify(error="Method not allowed", code="method_not_allowed"), 405


#-------------------------
def register_cli(app):
    @app.cli.command("create-user")
    @click.argument("email")
    @click.option("--role", "role_name", default="CLIENT",
                  type=click.Choice(["CLIENT", "TECHNICIAN", "RESPONSABLE", "ADMIN"]))
    @click.option("--name", "full_name", default=None)
    def create_user(email, role_name, full_name):
        """Create a user (or add a role to an existing one). TECHNICIAN also gets a technician profile."""
        email = email.strip().lower()
        user = User.query.filter_by(email=email).first()
        if not user:
            user = User(email=email, full_name=full_name)
            db.session.add(user)

        role = Role.query.filter_by(name=role_name).first()
        if not role:
            role = Role(name=role_name)
            db.session.add(role)

        if role not in user.roles:
            user.roles.append(role)
        db.session.flush()

        if role_name == "TECHNICIAN" and not Technician.query.filter_by(user_id=user.id).first():
            db.session.add(Technician(user_id=user.id, full_name=full_name or email))

        db.session.commit()
        logger.info("User %s has role %s", email, role_name)
        click.echo(f"{user.email} (id={user.id}) has role {role_name}")

    @app.cli.command("issue-session")
    @click.argument("email")
    def issue_session(email):
        """Print a session token for a user (set it as the auth cookie)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user or not user.is_active:
            click.echo("User not found")
            return
        click.echo(create_session(user.id))

    @app.cli.command("revoke-sessions")
    @click.argument("email")
    def revoke_sessions(email):
        """Revoke every open session of a user."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return
        count = revoke_all_sessions(user.id)
        click.echo(f"Revoked {count} session(s) for {user.email}")

    @app.cli.command("expire-requests")
    @click.option("--hours", type=int, default=None, help="Defaults to PENDING_REQUEST_TTL_HOURS.")
    def expire_requests(hours):
        """Cancel pending booking requests older than the given age."""
        hours = hours or app.config.get("PENDING_REQUEST_TTL_HOURS")
        if not hours:
            click.echo("Pending request expiry is disabled (set PENDING_REQUEST_TTL_HOURS or pass --hours)")
            return
        expired = booking.expire_stale_requests(hours)
        click.echo(f"Expired {expired} pending request(s)")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
