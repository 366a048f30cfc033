import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, request, session

from app.scholartrack.auth import bp as auth_bp, load_current_user
from app.scholartrack.config import load_config
from app.scholartrack.db import init_db, teardown_db_session
from app.scholartrack.errors import ValidationError, register_error_handlers
from app.scholartrack.modules.applications.routes import bp as applications_bp
from app.scholartrack.modules.documents.routes import bp as documents_bp
from app.scholartrack.modules.requirements.routes import bp as requirements_bp
from app.scholartrack.modules.requirements_templates.routes import bp as templates_bp
from app.scholartrack.ratelimit import init_rate_limiter
from app.scholartrack.routes import bp as routes_bp
from app.scholartrack.security import ensure_csrf_token, validate_csrf

# Endpoints reachable without a CSRF token
CSRF_EXEMPT_ENDPOINTS = {"auth.login"}


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)
    init_rate_limiter(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage config check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [k for k in ("S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY") if not app.config.get(k)]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    register_error_handlers(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(applications_bp, url_prefix="/applications")
    app.register_blueprint(requirements_bp)
    app.register_blueprint(templates_bp, url_prefix="/requirements-templates")
    app.register_blueprint(documents_bp, url_prefix="/documents")

    def _load_user_wrapper():
        if request.path.startswith(("/health", "/healthz")):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if not app.config.get("CSRF_ENABLED"):
            return None
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if request.endpoint in CSRF_EXEMPT_ENDPOINTS:
                return None
            if not validate_csrf(request):
                app.logger.warning("CSRF rejected: %s %s request_id=%s", request.method, request.path, getattr(g, "request_id", None))
                raise ValidationError("CSRF token missing or invalid.")
        return None

    app.teardown_appcontext(teardown_db_session)

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
