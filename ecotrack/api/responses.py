from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ecotrack.core.errors import AppError
from ecotrack.domain.quota import QuotaResult


def success(
    data: Any = None,
    *,
    message: str | None = None,
    status_code: int = 200,
    headers: Mapping[str, str] | None = None,
    **extra: Any,
) -> JSONResponse:
    """Build the ``{success: true, data, message?}`` envelope."""

    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message is not None:
        body["message"] = message
    body.update(extra)
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body),
        headers=dict(headers) if headers else None,
    )


def error_response(
    status_code: int,
    message: str,
    code: str,
    *,
    data: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {"success": False, "error": message, "code": code}
    if data:
        body["data"] = dict(data)
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body),
        headers=dict(headers) if headers else None,
    )


def from_app_error(exc: AppError) -> JSONResponse:
    return error_response(
        exc.status_code,
        exc.message,
        exc.code,
        data=exc.data,
        headers=exc.headers,
    )


def quota_headers(result: QuotaResult) -> dict[str, str]:
    return {
        "X-Quota-Limit": str(result.limit),
        "X-Quota-Remaining": str(result.remaining),
        "X-Quota-Reset": iso(result.reset_time),
    }


def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
