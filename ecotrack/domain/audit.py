from __future__ import annotations

from enum import Enum


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    UPLOAD = "UPLOAD"
    DOWNLOAD = "DOWNLOAD"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    EXPORT = "EXPORT"
    VERIFY = "VERIFY"
    REJECT = "REJECT"
    GENERATE_REPORT = "GENERATE_REPORT"
    AUTO_BACKUP = "AUTO_BACKUP"
    SETTINGS_CHANGE = "SETTINGS_CHANGE"


class AuditResource(str, Enum):
    ENTRY = "Entry"
    BILL = "Bill"
    REPORT = "Report"
    USER = "User"
    TENANT = "Tenant"
    SUBSCRIPTION = "Subscription"
    DATABASE = "Database"
    SETTINGS = "Settings"


class AuditStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    WARNING = "warning"


class AuditSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


# PDPA retention period for audit records.
RETENTION_DAYS = 7 * 365
