"""Static role/permission table.

Every ``Permission`` maps to the frozen set of roles allowed to perform it.
The table is checked for completeness at import time so a new permission
cannot ship without an explicit allow-list.
"""
from __future__ import annotations

from enum import Enum
from typing import Mapping

from ecotrack.domain.users import UserRole


class Permission(str, Enum):
    VIEW_USERS = "VIEW_USERS"
    CREATE_USERS = "CREATE_USERS"
    UPDATE_USERS = "UPDATE_USERS"
    DELETE_USERS = "DELETE_USERS"

    VIEW_ENTRIES = "VIEW_ENTRIES"
    CREATE_ENTRIES = "CREATE_ENTRIES"
    UPDATE_OWN_ENTRIES = "UPDATE_OWN_ENTRIES"
    UPDATE_ANY_ENTRIES = "UPDATE_ANY_ENTRIES"
    DELETE_ENTRIES = "DELETE_ENTRIES"
    VERIFY_ENTRIES = "VERIFY_ENTRIES"

    VIEW_REPORTS = "VIEW_REPORTS"
    GENERATE_REPORTS = "GENERATE_REPORTS"
    DELETE_REPORTS = "DELETE_REPORTS"

    VIEW_TENANT = "VIEW_TENANT"
    UPDATE_TENANT = "UPDATE_TENANT"
    VIEW_ANALYTICS = "VIEW_ANALYTICS"

    VIEW_AUDIT_LOGS = "VIEW_AUDIT_LOGS"

    VIEW_SYSTEM_CONFIG = "VIEW_SYSTEM_CONFIG"
    UPDATE_SYSTEM_CONFIG = "UPDATE_SYSTEM_CONFIG"


_ALL = frozenset(UserRole)
_ADMINS = frozenset({UserRole.SUPERADMIN, UserRole.ADMIN})
_WRITERS = frozenset({UserRole.SUPERADMIN, UserRole.ADMIN, UserRole.CLERK})
_SUPERADMIN = frozenset({UserRole.SUPERADMIN})

PERMISSIONS: Mapping[Permission, frozenset[UserRole]] = {
    Permission.VIEW_USERS: _ADMINS,
    Permission.CREATE_USERS: _ADMINS,
    Permission.UPDATE_USERS: _ADMINS,
    Permission.DELETE_USERS: _ADMINS,
    Permission.VIEW_ENTRIES: _ALL,
    Permission.CREATE_ENTRIES: _WRITERS,
    Permission.UPDATE_OWN_ENTRIES: _WRITERS,
    Permission.UPDATE_ANY_ENTRIES: _ADMINS,
    Permission.DELETE_ENTRIES: _ADMINS,
    Permission.VERIFY_ENTRIES: _ADMINS,
    Permission.VIEW_REPORTS: _ALL,
    Permission.GENERATE_REPORTS: _WRITERS,
    Permission.DELETE_REPORTS: _ADMINS,
    Permission.VIEW_TENANT: _ALL,
    Permission.UPDATE_TENANT: _ADMINS,
    Permission.VIEW_ANALYTICS: _ALL,
    Permission.VIEW_AUDIT_LOGS: _ADMINS,
    Permission.VIEW_SYSTEM_CONFIG: _SUPERADMIN,
    Permission.UPDATE_SYSTEM_CONFIG: _SUPERADMIN,
}

_missing = set(Permission) - set(PERMISSIONS)
if _missing:
    raise RuntimeError(f"Permissions without an allow-list: {sorted(p.value for p in _missing)}")


def has_permission(role: UserRole, permission: Permission) -> bool:
    return role in PERMISSIONS[permission]


def has_any_permission(role: UserRole, permissions: list[Permission]) -> bool:
    return any(has_permission(role, p) for p in permissions)


def has_all_permissions(role: UserRole, permissions: list[Permission]) -> bool:
    return all(has_permission(role, p) for p in permissions)
