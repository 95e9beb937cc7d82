from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecotrack.api.middleware.auth import BearerAuthMiddleware
from ecotrack.api.middleware.compliance import ComplianceMiddleware
from ecotrack.api.responses import error_response, from_app_error
from ecotrack.api.routes import (
    analytics,
    analyze,
    audit_logs,
    auth,
    entries,
    health,
    metrics,
    reports,
    system_admin,
    tenant,
    users,
)
from ecotrack.application.auth.tokens import TokenService
from ecotrack.application.llm.factory import BillExtractorFactory
from ecotrack.application.services.analytics import AnalyticsService
from ecotrack.application.services.entries import EntryService
from ecotrack.application.services.invitations import InvitationService
from ecotrack.application.services.limits_config import LimitsConfigProvider
from ecotrack.application.services.quota_tracker import QuotaTracker
from ecotrack.application.services.rate_limiter import RateLimiter
from ecotrack.application.services.reports import ReportService
from ecotrack.application.services.tenants import TenantService
from ecotrack.application.services.usage_guard import UsageGuard
from ecotrack.application.services.users import UserService
from ecotrack.core.audit import AuditLogger
from ecotrack.core.errors import AppError
from ecotrack.core.logging import configure_logging, get_logger
from ecotrack.core.settings import Settings, get_settings
from ecotrack.domain.entries import AnalyticsWarehouse
from ecotrack.domain.extraction import BillExtractor
from ecotrack.infrastructure.db import create_engine, create_schema, create_session_factory
from ecotrack.infrastructure.redis_client import create_redis_client

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context."""

    settings: Settings = app.state.settings
    configure_logging(json=settings.environment != "dev")

    if settings.sentry_dsn:
        sentry_sdk.init(dsn=settings.sentry_dsn, traces_sample_rate=0.1)

    engine = app.state.engine
    if engine is not None and settings.environment == "dev":
        await create_schema(engine)

    yield

    # Cleanup
    await app.state.extractor_factory.shutdown()
    await app.state.redis.aclose()
    if engine is not None:
        await engine.dispose()


def _install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "%s %s failed: %s",
                request.method,
                request.url.path,
                exc.message,
                extra={"eco_extra": {"code": exc.code}},
            )
        elif exc.status_code in (401, 403, 429):
            logger.warning(
                "%s %s rejected: %s",
                request.method,
                request.url.path,
                exc.message,
                extra={"eco_extra": {"code": exc.code, "status": exc.status_code}},
            )
        return from_app_error(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
        else:
            message = "Invalid request"
        return error_response(400, message, "VALIDATION_ERROR")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled error on %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
        return error_response(500, "An unexpected error occurred", "INTERNAL_ERROR")


def create_app(
    settings: Settings | None = None,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    redis: Any = None,
    extractor: BillExtractor | None = None,
    warehouse: AnalyticsWarehouse | None = None,
) -> FastAPI:
    """Application factory.

    Collaborators that are not passed in are built from ``settings``; tests
    and scripts pass their own database session factory, counter store and
    bill extractor.
    """

    settings = settings or get_settings()

    engine = None
    if session_factory is None:
        engine = create_engine(settings.database_url)
        session_factory = create_session_factory(engine)
    if redis is None:
        redis = create_redis_client(settings)

    extractor_factory = BillExtractorFactory(settings)
    if extractor is None:
        extractor = extractor_factory.get_extractor()

    tokens = TokenService(settings)
    audit = AuditLogger(session_factory)
    limits = LimitsConfigProvider(session_factory, ttl_s=settings.limits_cache_ttl_s)
    quota = QuotaTracker(session_factory, limits)
    rate_limiter = RateLimiter(redis)

    app = FastAPI(
        title=settings.app_name,
        version=settings.api_version,
        lifespan=lifespan,
    )

    # Shared services for dependencies
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.redis = redis
    app.state.token_service = tokens
    app.state.audit_logger = audit
    app.state.limits_config = limits
    app.state.quota_tracker = quota
    app.state.rate_limiter = rate_limiter
    app.state.usage_guard = UsageGuard(quota, limits, rate_limiter)
    app.state.extractor_factory = extractor_factory
    app.state.bill_extractor = extractor
    app.state.tenant_service = TenantService(
        session_factory,
        tokens,
        audit,
        bcrypt_rounds=settings.password_bcrypt_rounds,
    )
    app.state.invitation_service = InvitationService(
        session_factory,
        audit,
        ttl_days=settings.invitation_ttl_days,
        app_base_url=settings.app_base_url,
        bcrypt_rounds=settings.password_bcrypt_rounds,
    )
    app.state.entry_service = EntryService(session_factory, audit, warehouse=warehouse)
    app.state.report_service = ReportService(session_factory, audit)
    app.state.user_service = UserService(session_factory, audit)
    app.state.analytics_service = AnalyticsService(session_factory)

    _install_exception_handlers(app)

    app.add_middleware(BearerAuthMiddleware, tokens=tokens, redis_client=redis)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ComplianceMiddleware)

    @app.get("/")
    async def root():
        return {
            "name": settings.app_name,
            "version": settings.api_version,
            "status": "online",
            "message": "EcoTrack ESG API. Access /internal/health for status.",
        }

    app.include_router(health.router, prefix="/internal")
    app.include_router(metrics.router, prefix="/internal")
    app.include_router(auth.router)
    app.include_router(tenant.router)
    app.include_router(users.router)
    app.include_router(entries.router)
    app.include_router(analyze.router)
    app.include_router(reports.router)
    app.include_router(analytics.router)
    app.include_router(audit_logs.router)
    app.include_router(system_admin.router)

    return app


app = create_app()
