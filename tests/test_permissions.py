from __future__ import annotations

import json

import pytest
from starlette.requests import Request

from ecotrack.api.permissions import require_permission
from ecotrack.application.auth.context import AuthenticatedPrincipal, RequestContext
from ecotrack.domain.permissions import (
    PERMISSIONS,
    Permission,
    has_all_permissions,
    has_any_permission,
    has_permission,
)
from ecotrack.domain.users import UserRole


def test_every_permission_has_an_allow_list():
    assert set(PERMISSIONS) == set(Permission)
    assert all(PERMISSIONS[p] for p in Permission)


@pytest.mark.parametrize(
    "role, permission, allowed",
    [
        (UserRole.VIEWER, Permission.VIEW_ENTRIES, True),
        (UserRole.VIEWER, Permission.CREATE_ENTRIES, False),
        (UserRole.CLERK, Permission.CREATE_ENTRIES, True),
        (UserRole.CLERK, Permission.GENERATE_REPORTS, True),
        (UserRole.CLERK, Permission.CREATE_USERS, False),
        (UserRole.CLERK, Permission.VIEW_AUDIT_LOGS, False),
        (UserRole.ADMIN, Permission.CREATE_USERS, True),
        (UserRole.ADMIN, Permission.VIEW_AUDIT_LOGS, True),
        (UserRole.ADMIN, Permission.UPDATE_SYSTEM_CONFIG, False),
        (UserRole.SUPERADMIN, Permission.UPDATE_SYSTEM_CONFIG, True),
        (UserRole.SUPERADMIN, Permission.DELETE_ENTRIES, True),
    ],
)
def test_role_permission_table(role, permission, allowed):
    assert has_permission(role, permission) is allowed


def test_any_and_all_helpers():
    perms = [Permission.VIEW_ENTRIES, Permission.DELETE_ENTRIES]

    assert has_any_permission(UserRole.VIEWER, perms)
    assert not has_all_permissions(UserRole.VIEWER, perms)
    assert has_all_permissions(UserRole.ADMIN, perms)


def _request(role: UserRole | None = None, tenant_id: str | None = "tenant-1") -> Request:
    request = Request({"type": "http", "method": "GET", "path": "/api/entries", "headers": []})
    if role is not None:
        request.state.request_context = RequestContext(
            principal=AuthenticatedPrincipal(
                user_id="user-1",
                role=role,
                tenant_id=tenant_id,
                tenant_name=None,
                email="staff@kedaihijau.my",
                name="Staff",
            ),
            client_ip="127.0.0.1",
            user_agent="pytest",
        )
    return request


@pytest.mark.parametrize("permission", list(Permission))
@pytest.mark.parametrize("role", list(UserRole))
def test_decision_follows_allow_list(role, permission):
    decision = require_permission(_request(role), permission)

    assert decision.authorized is (role in PERMISSIONS[permission])
    if decision.authorized:
        assert decision.principal.role is role
        assert decision.response is None
    else:
        assert decision.response.status_code == 403
        assert decision.principal is None


@pytest.mark.parametrize("tenant_id", [None, "tenant-1", "tenant-2"])
def test_decision_ignores_tenant(tenant_id):
    allowed = require_permission(_request(UserRole.ADMIN, tenant_id), Permission.VIEW_AUDIT_LOGS)
    denied = require_permission(_request(UserRole.CLERK, tenant_id), Permission.VIEW_AUDIT_LOGS)

    assert allowed.authorized
    assert not denied.authorized


def test_denied_decision_carries_error_envelope():
    decision = require_permission(_request(UserRole.VIEWER), Permission.CREATE_ENTRIES)

    body = json.loads(decision.response.body)
    assert body["success"] is False
    assert body["code"] == "FORBIDDEN"
    assert body["data"] == {"requiredPermission": "CREATE_ENTRIES", "role": "viewer"}


def test_missing_context_is_unauthenticated():
    decision = require_permission(_request(), Permission.VIEW_ENTRIES)

    assert not decision.authorized
    assert decision.response.status_code == 401
    assert json.loads(decision.response.body)["code"] == "UNAUTHORIZED"
