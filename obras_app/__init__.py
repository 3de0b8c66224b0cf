"""
obras_app/__init__.py

Flask application factory for the Gestão de Obras API.

Requirements:
- Clear architecture: gateway -> services -> blueprints.
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev.
- UI is never trusted; server-side access control is enforced.
- Every application error answers JSON {"error", "code"} and rolls back
  the database session; nothing is retried.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .errors import ObrasError
from .extensions import csrf, db, login_manager, migrate
from .mailer import Mailer
from .models import User
from .security import ROLES, viewer_readonly_guard

# Blueprint imports kept inside create_app() where possible to reduce import side effects.


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger("obras_app").setLevel(level)
    app.logger.setLevel(level)


def create_app(config_object: str | object = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    _configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Autenticação necessária.", "code": "UNAUTHORIZED"}), 401

    app.extensions["mailer"] = Mailer.from_config_values(app.config)

    # ----------------------------------------------------------------------
    # GLOBAL SECURITY NET: read-only roles (server-side).
    # ----------------------------------------------------------------------
    @app.before_request
    def _viewer_guard_hook():
        """
        Read-only enforcement (POST/PUT/PATCH/DELETE blocked for viewers).

        This is a safety net. Each route must still enforce its own permissions.
        """
        return viewer_readonly_guard()

    # ----------------------------------------------------------------------
    # Errors
    # ----------------------------------------------------------------------
    @app.errorhandler(ObrasError)
    def _handle_app_error(exc: ObrasError):
        db.session.rollback()
        return jsonify(exc.to_dict()), exc.http_status

    @app.errorhandler(HTTPException)
    def _handle_http_error(exc: HTTPException):
        return jsonify({"error": exc.description, "code": exc.name.upper().replace(" ", "_")}), exc.code

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.functions import functions_bp
    from .blueprints.obras import obras_bp
    from .blueprints.rdo import rdo_bp
    from .blueprints.sessions import aditivos_bp, medicoes_bp
    from .blueprints.users import users_bp

    csrf.exempt(functions_bp)

    app.register_blueprint(auth_bp)
    app.register_blueprint(functions_bp)
    app.register_blueprint(obras_bp)
    app.register_blueprint(medicoes_bp)
    app.register_blueprint(aditivos_bp)
    app.register_blueprint(rdo_bp)
    app.register_blueprint(users_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("create-user")
    @click.option("--email", required=True)
    @click.option("--password", required=True)
    @click.option("--name", default=None)
    @click.option("--role", type=click.Choice(ROLES), default="admin", show_default=True)
    def create_user_command(email, password, name, role):
        """Create a login user (first admin bootstrap)."""
        from .gateway import UserTable, write_transaction

        if UserTable().by_email(email):
            raise click.ClickException(f"User {email} already exists.")

        with write_transaction("criar usuário") as session:
            user = User(email=email.strip().lower(), full_name=name, role=role, is_active=True)
            user.set_password(password)
            session.add(user)
        click.echo(f"User {email} created ({role}).")

    @app.cli.command("cleanup-reset-codes")
    def cleanup_reset_codes_command():
        """Remove used and expired password reset codes."""
        from .gateway import PasswordResetTable
        from .models import utcnow

        removed = PasswordResetTable().delete_stale(utcnow())
        click.echo(f"{removed} reset code(s) removed.")

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "app": app.config.get("APP_NAME")})

    return app
