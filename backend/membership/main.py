# membership/main.py
from __future__ import annotations

from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware

# Import router objects explicitly to avoid module name collisions
from membership.routers.health import router as health_router
from membership.routers.auth import router as auth_router
from membership.routers.admin import router as admin_router
from membership.routers.attachments import router as attachments_router
from membership.config import Settings, get_settings
from membership.db.session import Database
from membership.errors import register_error_handlers
from membership.observability.logging import configure_logging
from membership.observability.middleware import register_request_middleware, unhandled_exception_handler
from membership.observability.metrics import router as observability_router
from membership.security.middleware import SecurityHeadersMiddleware
from membership.services.mailer import Mailer
from membership.services.storage import GcsSigner

configure_logging()

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    storage: Optional[GcsSigner] = None,
    mailer: Optional[Mailer] = None,
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="Membership API", version="1.0.0")

    # Process-scoped collaborators; the engine and storage client are built on first use.
    app.state.settings = settings
    app.state.database = database or Database.from_settings(settings)
    app.state.storage = storage or GcsSigner(settings)
    app.state.mailer = mailer or Mailer(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["*"],
        max_age=86400
    )

    if settings.TRUSTED_HOSTS:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.TRUSTED_HOSTS)

    if settings.FORCE_HTTPS:
        app.add_middleware(HTTPSRedirectMiddleware)

    app.add_middleware(
        SecurityHeadersMiddleware,
        csp=settings.CONTENT_SECURITY_POLICY,
        hsts_max_age=settings.HSTS_MAX_AGE,
        enable_hsts=settings.FORCE_HTTPS,
    )

    register_request_middleware(app)
    register_error_handlers(app)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Ensure tables exist for local SQLite databases; Postgres goes through migrations.
    @app.on_event("startup")
    def _ensure_tables() -> None:
        db = app.state.database
        if settings.is_production or db.engine.dialect.name != "sqlite":
            return
        db.create_all()

    @app.on_event("shutdown")
    def _dispose_engine() -> None:
        app.state.database.dispose()

    app.include_router(health_router)
    app.include_router(observability_router)
    app.include_router(auth_router)
    app.include_router(admin_router)
    app.include_router(attachments_router)

    logger.info("app.created", env=settings.ENV)
    return app


app = create_app()
