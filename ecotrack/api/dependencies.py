from __future__ import annotations

from fastapi import Request

from ecotrack.application.auth.context import RequestContext
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
from ecotrack.core.errors import AuthenticationError
from ecotrack.domain.extraction import BillExtractor


def get_request_context(request: Request) -> RequestContext:
    """Return the RequestContext injected by the authentication middleware."""

    context = getattr(request.state, "request_context", None)
    if context is None:
        raise AuthenticationError("Unauthenticated")
    return context


def get_limits_config(request: Request) -> LimitsConfigProvider:
    return request.app.state.limits_config


def get_quota_tracker(request: Request) -> QuotaTracker:
    return request.app.state.quota_tracker


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_audit_logger(request: Request) -> AuditLogger:
    return request.app.state.audit_logger


def get_tenant_service(request: Request) -> TenantService:
    return request.app.state.tenant_service


def get_invitation_service(request: Request) -> InvitationService:
    return request.app.state.invitation_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_analytics_service(request: Request) -> AnalyticsService:
    return request.app.state.analytics_service


def get_entry_service(request: Request) -> EntryService:
    return request.app.state.entry_service


def get_report_service(request: Request) -> ReportService:
    return request.app.state.report_service


def get_usage_guard(request: Request) -> UsageGuard:
    return request.app.state.usage_guard


def get_bill_extractor(request: Request) -> BillExtractor:
    return request.app.state.bill_extractor
