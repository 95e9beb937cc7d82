from __future__ import annotations

import re
from typing import Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from ecotrack.core.logging import get_logger

logger = get_logger(__name__)


class ComplianceMiddleware(BaseHTTPMiddleware):
    """
    PDPA (Malaysia) response headers and request logging with personal data
    masked out of the logged path and query string.
    """

    def __init__(
        self,
        app: ASGIApp,
        pii_patterns: Optional[Dict[str, str]] = None,
        retention_policy: str = "audit_logs:7y",
    ):
        super().__init__(app)
        self.pii_patterns = pii_patterns or {
            "email": r"[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+",
            "token": r"(?<=token=)[0-9a-fA-F]{16,}",
            "ic_number": r"\b\d{6}-\d{2}-\d{4}\b",
        }
        self.retention_policy = retention_policy

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        target = request.url.path
        if request.url.query:
            target = f"{target}?{request.url.query}"
        logger.info("%s %s", request.method, self.redact_pii(target))

        response = await call_next(request)

        response.headers["X-Compliance-PDPA"] = "MY-2010"
        response.headers["X-Compliance-Retention-Policy"] = self.retention_policy
        response.headers["X-Content-Type-Options"] = "nosniff"
        return response

    def redact_pii(self, text: str) -> str:
        """Regex-based PII redaction for logs."""
        redacted = text
        for label, pattern in self.pii_patterns.items():
            redacted = re.sub(pattern, f"[{label.upper()}_REDACTED]", redacted)
        return redacted
