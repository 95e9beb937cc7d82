from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from ecotrack.core.errors import ExternalServiceError

REQUIRED_EXTRACTION_FIELDS = ("utilityType", "usage", "unit", "billingDate", "amount")

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass(slots=True)
class BillImage:
    """A bill image handed to an extractor, either inline or by URL."""

    mime_type: str
    data_base64: str | None = None
    url: str | None = None


@dataclass(slots=True)
class BillExtraction:
    """Structured fields read from a utility bill."""

    fields: dict[str, Any]
    raw_response: str

    @property
    def confidence(self) -> float | None:
        value = self.fields.get("confidence")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        return None


def parse_extraction(text: str) -> BillExtraction:
    """Pull the first JSON object out of a model response and check it.

    Raises:
        ExternalServiceError: if no JSON object is found, it does not parse,
            or a required field is missing.
    """

    match = _JSON_OBJECT.search(text)
    if match is None:
        raise ExternalServiceError(
            "Failed to parse bill data from AI response",
            code="EXTRACTION_PARSE_ERROR",
            data={"rawResponse": text},
        )
    try:
        fields = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ExternalServiceError(
            "Failed to parse bill data from AI response",
            code="EXTRACTION_PARSE_ERROR",
            data={"rawResponse": text},
        ) from exc
    if not isinstance(fields, Mapping):
        raise ExternalServiceError(
            "Failed to parse bill data from AI response",
            code="EXTRACTION_PARSE_ERROR",
            data={"rawResponse": text},
        )

    missing = [name for name in REQUIRED_EXTRACTION_FIELDS if fields.get(name) is None]
    if missing:
        raise ExternalServiceError(
            f"Missing required fields: {', '.join(missing)}",
            code="EXTRACTION_INCOMPLETE",
            data={"partialData": dict(fields)},
        )
    return BillExtraction(fields=dict(fields), raw_response=text)


class BillExtractor(Protocol):
    """Protocol implemented by bill extraction backends."""

    name: str

    async def extract(self, image: BillImage, *, request_id: str) -> BillExtraction:
        """Read the bill fields from ``image``."""
