from __future__ import annotations

import httpx

from ecotrack.application.llm.gemini_extractor import GeminiBillExtractor
from ecotrack.core.settings import Settings
from ecotrack.domain.extraction import BillExtractor

GEMINI_DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/"


class BillExtractorFactory:
    """Creates the bill extractor and owns its pooled HTTP client."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._client: httpx.AsyncClient | None = None
        self._extractor: BillExtractor | None = None

    def get_extractor(self) -> BillExtractor:
        if self._extractor is None:
            self._extractor = GeminiBillExtractor(
                self._get_or_create_client(),
                api_key=self._settings.gemini_api_key,
                model=self._settings.gemini_model,
            )
        return self._extractor

    def _get_or_create_client(self) -> httpx.AsyncClient:
        if self._client is None:
            base_url = str(self._settings.gemini_base_url or GEMINI_DEFAULT_BASE_URL)
            self._client = httpx.AsyncClient(
                base_url=base_url,
                headers={"Content-Type": "application/json"},
                timeout=httpx.Timeout(
                    timeout=self._settings.http_read_timeout_s,
                    connect=self._settings.http_connect_timeout_s,
                ),
                follow_redirects=True,
            )
        return self._client

    async def shutdown(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
        self._client = None
        self._extractor = None
