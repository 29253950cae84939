"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
lifespan wiring for the account repository, dashboard service and approval
cache, the health checks and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.health_dashboard.accounts.repository import AccountRepository
from src.health_dashboard.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.health_dashboard.api.v1 import health
from src.health_dashboard.api.v1.router import router as v1_router
from src.health_dashboard.config import get_settings
from src.health_dashboard.core.approval import ApprovalCache
from src.health_dashboard.core.database import close_db, get_session
from src.health_dashboard.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.health_dashboard.health.service import HealthDashboardService


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: wire services on startup, close the engine on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    repository = AccountRepository(session_factory=get_session)
    app.state.account_repository = repository
    app.state.dashboard_service = HealthDashboardService(repository, settings)
    app.state.approval_cache = ApprovalCache(ttl_seconds=settings.APPROVAL_CACHE_TTL_SECONDS)

    log.info(
        "dashboard.started",
        environment=settings.ENVIRONMENT.value,
        demo_mode=settings.DEMO_MODE,
        demo_date=settings.DEMO_DATE.isoformat() if settings.DEMO_MODE else None,
    )

    yield

    await close_db()
    log.info("dashboard.stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Account Health Dashboard API",
        version="0.1.0",
        description="Customer-success account health scoring and portfolio views",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    # Infrastructure routes stay outside the versioned prefix
    app.include_router(health.router)
    app.include_router(v1_router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
