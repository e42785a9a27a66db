"""
QA Hub
Flask Application Factory.

Usage:
    from qahub import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import SQLAlchemyError

from qahub.config import config
from qahub.middleware.jwt_auth import init_jwt_middleware
from qahub.middleware.logging_config import configure_logging
from qahub.middleware.rate_limiter import init_rate_limits
from qahub.middleware.timing import init_request_timing
from qahub.models import db
from qahub.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit — apply per-blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])
    os.makedirs(app.instance_path, exist_ok=True)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── JWT auth middleware (sets g.actor) ───────────────────────────────
    init_jwt_middleware(app)

    # ── Rate limiter (after JWT so limits can key on the actor) ─────────
    limiter.init_app(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Import all models so Alembic can detect them ─────────────────────
    from qahub.models import project as _project_models              # noqa: F401
    from qahub.models import testing as _testing_models              # noqa: F401
    from qahub.models import task as _task_models                    # noqa: F401
    from qahub.models import collaboration as _collaboration_models  # noqa: F401
    from qahub.models import notification as _notification_models    # noqa: F401

    # ── Event listeners (notification fan-out) ───────────────────────────
    from qahub.services import notification_service as _notification_listeners  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if app.config.get("AUTO_CREATE_TABLES"):
        with app.app_context():
            try:
                db.create_all()
                app.logger.info("db.create_all() completed successfully")
            except SQLAlchemyError as e:
                app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from qahub.blueprints.comments_bp import comments_bp
    from qahub.blueprints.health_bp import health_bp
    from qahub.blueprints.notes_bp import notes_bp
    from qahub.blueprints.notifications_bp import notifications_bp
    from qahub.blueprints.projects_bp import projects_bp
    from qahub.blueprints.tasks_bp import tasks_bp
    from qahub.blueprints.testing_bp import testing_bp

    app.register_blueprint(projects_bp)
    app.register_blueprint(testing_bp)
    app.register_blueprint(tasks_bp)
    app.register_blueprint(comments_bp)
    app.register_blueprint(notes_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-demo")
    @click.option("--qa", "qa_id", default="qa-1", help="Actor id of the QA member")
    @click.option("--dev", "dev_id", default="dev-1", help="Actor id of the DEV member")
    def seed_demo_cmd(qa_id, dev_id):
        """Create a demo project with one QA and one DEV member, print their tokens."""
        from qahub.core.actor import ROLE_DEV, ROLE_QA, Actor
        from qahub.services.jwt_service import generate_access_token
        from qahub.services.project_service import create_project

        qa = Actor(id=qa_id, role=ROLE_QA, name="Demo QA")
        project = create_project(qa, {
            "name": "Demo project",
            "description": "Seeded by flask seed-demo",
            "members": [
                {"member_id": qa_id, "display_name": "Demo QA", "role": ROLE_QA},
                {"member_id": dev_id, "display_name": "Demo DEV", "role": ROLE_DEV},
            ],
        })
        logger.info("Seeded demo project %s", project.id)
        click.echo(f"project_id: {project.id}")
        click.echo(f"QA token:   {generate_access_token(qa_id, ROLE_QA, 'Demo QA')}")
        click.echo(f"DEV token:  {generate_access_token(dev_id, ROLE_DEV, 'Demo DEV')}")

    # ── Health check (detailed version at /health/live) ──────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "QA Hub"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(400)
    def bad_request(e):
        return api_error(E.BAD_REQUEST, e.description or "Bad request")

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, f"Not found: {request.path}")

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.BAD_REQUEST, "Method not allowed", status=405)

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.BAD_REQUEST, "Request body too large", status=413)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.BAD_REQUEST, "Too many requests", status=429,
                         details={"retry_after": e.description})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error on %s: %s", request.path, e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
