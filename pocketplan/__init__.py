import json
import os

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .models import db
from .services.functions import FunctionsClient
from .services.gcs import GcsStore, LocalStore


def _database_url() -> str:
    url = os.getenv("DATABASE_URL", "sqlite:///pocketplan.db")
    # Heroku/Cloud SQL style URLs
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


def create_app(test_config=None):
    app = Flask(__name__)

    # --- Security / session cookie config ---
    # True on Cloud Run (K_SERVICE is set), False locally (HTTP).
    is_cloud = bool(os.getenv("K_SERVICE"))
    app.config.update(
        SECRET_KEY=os.getenv("FLASK_SECRET", "dev-secret"),
        SESSION_COOKIE_SECURE=is_cloud,
        SESSION_COOKIE_SAMESITE="Lax",
        SESSION_COOKIE_HTTPONLY=True,
    )

    # --- env config ---
    app.config.update(
        SQLALCHEMY_DATABASE_URI=_database_url(),
        GCS_BUCKET=os.getenv("GCS_BUCKET", ""),
        LOCAL_STORE_DIR=os.getenv("LOCAL_STORE_DIR", ".pocketplan-store"),
        FUNCTIONS_URL=os.getenv("FUNCTIONS_URL", ""),
        FUNCTIONS_API_KEY=os.getenv("FUNCTIONS_API_KEY", ""),
        AUTH_DISABLED=os.getenv("AUTH_DISABLED", "").lower() in ("1", "true", "yes"),
        USER_ID=os.getenv("USER_ID", "default"),
        EMAIL_MODE=os.getenv("EMAIL_MODE", "console"),
        RESEND_API_KEY=os.getenv("RESEND_API_KEY", ""),
        MAIL_FROM=os.getenv("MAIL_FROM", "pocketplan <login@pocketplan.app>"),
        APP_BASE_URL=os.getenv("APP_BASE_URL", "http://localhost:8080"),
        MAGIC_TOKEN_SECRET=os.getenv("MAGIC_TOKEN_SECRET", "dev-secret"),
        CONSOLIDATION_EXTRA_DEBTS=json.loads(os.getenv("CONSOLIDATION_EXTRA_DEBTS") or "[]"),
        GOAL_DEFAULT_TARGET=float(os.getenv("GOAL_DEFAULT_TARGET") or 50000),
    )
    if test_config:
        app.config.update(test_config)

    db.init_app(app)

    # shared snapshot store: Cloud Storage in prod, a local folder otherwise
    if app.config["GCS_BUCKET"]:
        app.store = GcsStore(app.config["GCS_BUCKET"])
    else:
        app.store = LocalStore(app.config["LOCAL_STORE_DIR"])

    app.functions = FunctionsClient(app.config["FUNCTIONS_URL"], app.config["FUNCTIONS_API_KEY"])

    # register blueprints
    from .blueprints.auth import bp as auth_bp
    from .blueprints.onboarding import bp as onboarding_bp
    from .blueprints.dashboard import bp as dashboard_bp
    from .blueprints.plan import bp as plan_bp
    from .blueprints.debts import bp as debts_bp
    from .blueprints.chat import bp as chat_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(onboarding_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(plan_bp)
    app.register_blueprint(debts_bp)
    app.register_blueprint(chat_bp)

    @app.errorhandler(ValueError)
    def bad_request(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({"error": e.description}), e.code

    @app.cli.command("init-db")
    def init_db():
        """Create all tables."""
        db.create_all()
        click.echo("Initialized the database.")

    return app
