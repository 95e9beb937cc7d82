from __future__ import annotations

import asyncio
import base64
from typing import Any

import httpx

from ecotrack.core.errors import ExternalServiceError, InternalError, ValidationError
from ecotrack.core.logging import get_logger
from ecotrack.domain.extraction import BillExtraction, BillImage, parse_extraction
from ecotrack.monitoring.metrics import (
    BILL_EXTRACTION_DURATION_SECONDS,
    BILL_EXTRACTIONS_TOTAL,
)

logger = get_logger(__name__)

EXTRACTION_PROMPT = (
    "Read this Malaysian utility bill and return only a JSON object with the keys "
    "utilityType, provider, usage, unit, billingDate (YYYY-MM-DD), amount, currency, "
    "accountNumber, meterNumber, billingPeriodStart, billingPeriodEnd and confidence (0-1)."
)

MAX_ATTEMPTS = 3


class _TransientGeminiError(Exception):
    """Failure worth retrying (throttling, server errors, transport errors)."""


class GeminiBillExtractor:
    """Bill extraction through the Gemini ``generateContent`` REST endpoint."""

    name = "gemini"

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str | None,
        model: str,
        backoff_s: float = 1.0,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._model = model
        self._backoff_s = backoff_s

    async def extract(self, image: BillImage, *, request_id: str) -> BillExtraction:
        """Send ``image`` to Gemini and parse the structured bill fields.

        Raises:
            InternalError: if no API key is configured.
            ValidationError: if the image carries neither inline data nor a URL.
            ExternalServiceError: if Gemini fails after retries or its answer
                cannot be parsed into the required fields.
        """

        if not self._api_key:
            raise InternalError("Gemini API key is not configured", code="EXTRACTOR_NOT_CONFIGURED")

        inline = await self._inline_data(image)
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": EXTRACTION_PROMPT}, {"inlineData": inline}],
                },
            ],
            "generationConfig": {
                "temperature": 0.1,
                "maxOutputTokens": 1024,
            },
        }

        text = await self._generate(payload, request_id)
        try:
            extraction = parse_extraction(text)
        except ExternalServiceError:
            BILL_EXTRACTIONS_TOTAL.labels(model=self._model, status="unparseable").inc()
            logger.warning(
                "Gemini response could not be parsed",
                extra={"eco_extra": {"request_id": request_id, "model": self._model}},
            )
            raise

        BILL_EXTRACTIONS_TOTAL.labels(model=self._model, status="success").inc()
        return extraction

    async def _generate(self, payload: dict[str, Any], request_id: str) -> str:
        url = f"models/{self._model}:generateContent"
        for attempt in range(MAX_ATTEMPTS):
            try:
                with BILL_EXTRACTION_DURATION_SECONDS.labels(model=self._model).time():
                    resp = await self._client.post(
                        url,
                        json=payload,
                        params={"key": self._api_key},
                        headers={"X-Request-ID": request_id},
                    )

                if resp.status_code == 429 or resp.status_code >= 500:
                    raise _TransientGeminiError(f"Gemini returned {resp.status_code}")
                if resp.status_code >= 400:
                    BILL_EXTRACTIONS_TOTAL.labels(model=self._model, status="error").inc()
                    raise ExternalServiceError(
                        f"Gemini client error: {resp.status_code}",
                        code="EXTRACTION_FAILED",
                    )

                data = resp.json()
                parts = data["candidates"][0]["content"]["parts"]
                return "".join(part.get("text", "") for part in parts)

            except (_TransientGeminiError, httpx.TransportError) as exc:
                logger.warning(
                    "Gemini call failed (attempt %d/%d): %s",
                    attempt + 1,
                    MAX_ATTEMPTS,
                    exc,
                    extra={"eco_extra": {"request_id": request_id}},
                )
                if attempt == MAX_ATTEMPTS - 1:
                    BILL_EXTRACTIONS_TOTAL.labels(model=self._model, status="error").inc()
                    raise ExternalServiceError(
                        "Bill analysis service is unavailable, please try again later",
                        code="EXTRACTION_FAILED",
                    ) from exc
                await asyncio.sleep(self._backoff_s * 2**attempt)
            except (KeyError, IndexError, TypeError, ValueError) as exc:
                BILL_EXTRACTIONS_TOTAL.labels(model=self._model, status="error").inc()
                raise ExternalServiceError(
                    "Unexpected response from bill analysis service",
                    code="EXTRACTION_FAILED",
                ) from exc

        raise ExternalServiceError("Gemini retries exhausted", code="EXTRACTION_FAILED")

    async def _inline_data(self, image: BillImage) -> dict[str, str]:
        if image.data_base64:
            return {"data": image.data_base64, "mimeType": image.mime_type}
        if not image.url:
            raise ValidationError(
                "No image provided. Send either imageUrl or imageBase64.",
                code="MISSING_IMAGE",
            )

        try:
            resp = await self._client.get(image.url)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ExternalServiceError(
                "Failed to download bill image",
                code="IMAGE_FETCH_FAILED",
            ) from exc
        mime_type = resp.headers.get("content-type", "").split(";")[0] or image.mime_type
        return {
            "data": base64.b64encode(resp.content).decode("ascii"),
            "mimeType": mime_type,
        }
