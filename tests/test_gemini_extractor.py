from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from ecotrack.application.llm.gemini_extractor import GeminiBillExtractor
from ecotrack.core.errors import ExternalServiceError, InternalError, ValidationError
from ecotrack.domain.extraction import BillImage, parse_extraction

BASE_URL = "https://generativelanguage.test/v1beta/"

BILL_JSON = {
    "utilityType": "electricity",
    "provider": "TNB",
    "usage": 820,
    "unit": "kWh",
    "billingDate": "2026-09-30",
    "amount": 301.2,
    "confidence": 0.64,
}


def _gemini_reply(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def _extractor(handler, api_key: str | None = "test-key") -> GeminiBillExtractor:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL)
    return GeminiBillExtractor(client, api_key=api_key, model="gemini-test", backoff_s=0)


def _image() -> BillImage:
    return BillImage(mime_type="image/png", data_base64="aGVsbG8=")


def test_extracts_fields_from_fenced_json():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_gemini_reply(f"```json\n{json.dumps(BILL_JSON)}\n```"))

    extraction = asyncio.run(_extractor(handler).extract(_image(), request_id="req-1"))

    assert extraction.fields["usage"] == 820
    assert extraction.confidence == 0.64
    request = seen[0]
    assert request.url.path.endswith("models/gemini-test:generateContent")
    assert request.url.params["key"] == "test-key"
    body = json.loads(request.content)
    assert body["generationConfig"]["temperature"] == 0.1
    assert body["contents"][0]["parts"][1]["inlineData"]["mimeType"] == "image/png"


def test_retries_transient_failures():
    attempts = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["n"] += 1
        if attempts["n"] < 3:
            return httpx.Response(503)
        return httpx.Response(200, json=_gemini_reply(json.dumps(BILL_JSON)))

    extraction = asyncio.run(_extractor(handler).extract(_image(), request_id="req-2"))

    assert attempts["n"] == 3
    assert extraction.fields["provider"] == "TNB"


def test_gives_up_after_max_attempts():
    attempts = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["n"] += 1
        return httpx.Response(429)

    with pytest.raises(ExternalServiceError) as exc_info:
        asyncio.run(_extractor(handler).extract(_image(), request_id="req-3"))

    assert attempts["n"] == 3
    assert exc_info.value.code == "EXTRACTION_FAILED"


def test_client_errors_are_not_retried():
    attempts = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["n"] += 1
        return httpx.Response(400, json={"error": "bad request"})

    with pytest.raises(ExternalServiceError):
        asyncio.run(_extractor(handler).extract(_image(), request_id="req-4"))

    assert attempts["n"] == 1


def test_image_url_is_downloaded_and_inlined():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, content=b"bill-bytes", headers={"content-type": "image/jpeg"})
        part = json.loads(request.content)["contents"][0]["parts"][1]["inlineData"]
        assert part["mimeType"] == "image/jpeg"
        return httpx.Response(200, json=_gemini_reply(json.dumps(BILL_JSON)))

    image = BillImage(mime_type="image/png", url="https://files.test/bill.jpg")
    extraction = asyncio.run(_extractor(handler).extract(image, request_id="req-5"))

    assert extraction.fields["unit"] == "kWh"


def test_missing_api_key_is_an_internal_error():
    with pytest.raises(InternalError):
        asyncio.run(_extractor(lambda r: httpx.Response(200), api_key=None).extract(_image(), request_id="r"))


def test_missing_image_is_rejected():
    with pytest.raises(ValidationError):
        asyncio.run(
            _extractor(lambda r: httpx.Response(200)).extract(BillImage(mime_type="image/png"), request_id="r"),
        )


def test_parse_reports_missing_fields():
    with pytest.raises(ExternalServiceError) as exc_info:
        parse_extraction('{"utilityType": "water", "usage": 12}')

    assert exc_info.value.code == "EXTRACTION_INCOMPLETE"
    assert "billingDate" in exc_info.value.message
    assert exc_info.value.data["partialData"]["usage"] == 12


def test_parse_rejects_non_json():
    with pytest.raises(ExternalServiceError) as exc_info:
        parse_extraction("I could not read this bill.")

    assert exc_info.value.code == "EXTRACTION_PARSE_ERROR"
