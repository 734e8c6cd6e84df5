"""Application factory for the Data Machine backend."""
from __future__ import annotations

import time

from flask import Flask
from sqlalchemy.exc import OperationalError

from .config import Config
from .extensions import cors, db, limiter


def create_app(config_class: type[Config] = Config) -> Flask:
    """Create and configure the Flask application instance."""
    app = Flask(__name__)
    app.config.from_object(config_class)

    db.init_app(app)

    if cors is not None:
        allowed_origins = [
            origin.strip()
            for origin in (app.config.get("CORS_ALLOWED_ORIGINS") or "").split(",")
            if origin.strip()
        ]
        cors.init_app(
            app,
            resources={r"/api/*": {"origins": allowed_origins}},
            allow_headers=["Content-Type", "Authorization"],
        )

    limiter.init_app(app)

    from .api.auth import bp as auth_bp
    from .api.export import bp as export_bp
    from .api.flows import bp as flows_bp
    from .api.handlers import bp as handlers_bp
    from .api.health import bp as health_bp
    from .api.jobs import bp as jobs_bp
    from .api.logs import bp as logs_bp
    from .api.pipelines import bp as pipelines_bp

    app.register_blueprint(health_bp, url_prefix="/api")
    app.register_blueprint(logs_bp, url_prefix="/api")
    app.register_blueprint(handlers_bp, url_prefix="/api")
    app.register_blueprint(pipelines_bp, url_prefix="/api")
    app.register_blueprint(flows_bp, url_prefix="/api")
    app.register_blueprint(jobs_bp, url_prefix="/api")
    app.register_blueprint(export_bp, url_prefix="/api")
    app.register_blueprint(auth_bp, url_prefix="/api")

    with app.app_context():
        # Import models to ensure they are registered with SQLAlchemy before creating tables.
        from . import models  # noqa: F401

        _initialize_database(app)

    _initialize_engine(app)

    if app.config.get("ENABLE_SCHEDULER", True):
        from .engine.scheduler import ensure_scheduler_started

        ensure_scheduler_started(app)

    return app


def _initialize_engine(app: Flask) -> None:
    """Build the shared services, the frozen handler registry and the job runner."""

    from .auth import DatabaseCredentialStore, DatabaseStateStore, build_auth_providers
    from .engine.dedup import ProcessedItemsTracker
    from .engine.engine_data import EngineDataStore
    from .engine.http import HttpClient
    from .engine.orchestrator import JobOrchestrator
    from .engine.runner import JobRunner
    from .engine.services import EXTENSION_KEY, Services
    from .handlers import build_registry

    http = HttpClient(
        timeout=float(app.config.get("HTTP_TIMEOUT", 30)),
        site_url=app.config.get("SITE_URL", ""),
    )
    credentials = DatabaseCredentialStore()
    state_store = DatabaseStateStore(ttl=int(app.config.get("OAUTH_STATE_TTL", 900)))
    redirect_base = app.config.get("SITE_URL", "")

    services = Services(
        http=http,
        tracker=ProcessedItemsTracker(),
        engine_data=EngineDataStore(),
        credentials=credentials,
        auth=build_auth_providers(credentials, state_store, http, redirect_base),
        config=app.config,
    )

    registry = build_registry(services, app.config.get("HANDLER_MODULES") or ())
    registry.freeze()
    app.logger.info("Registered %s handlers: %s", len(registry), ", ".join(registry.slugs()))

    orchestrator = JobOrchestrator(registry, services)
    runner = JobRunner(
        app,
        orchestrator,
        workers=int(app.config.get("JOB_WORKERS", 4)),
        background=bool(app.config.get("RUN_JOBS_IN_BACKGROUND", True)),
    )
    app.extensions[EXTENSION_KEY] = {
        "services": services,
        "registry": registry,
        "orchestrator": orchestrator,
        "runner": runner,
    }


def _initialize_database(app: Flask) -> None:
    """Initialize the database with retry logic to handle delayed availability."""

    max_retries = int(app.config.get("DB_INIT_MAX_RETRIES", 30))
    retry_delay = float(app.config.get("DB_INIT_RETRY_DELAY", 2))

    for attempt in range(1, max_retries + 1):
        try:
            db.create_all()
            return
        except OperationalError as exc:
            if attempt >= max_retries:
                app.logger.exception("Database initialization failed after %s attempts.", attempt)
                raise

            app.logger.warning(
                "Database initialization attempt %s/%s failed: %s", attempt, max_retries, exc
            )
            time.sleep(retry_delay)
