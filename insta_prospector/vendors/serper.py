"""Client utilities for the Serper Google search API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from insta_prospector.core.config import require_setting
from insta_prospector.models import SearchResult

logger = logging.getLogger(__name__)

SERPER_URL = "https://google.serper.dev/search"
REQUEST_TIMEOUT = 15
BODY_PREVIEW_CHARS = 300


class ProviderError(RuntimeError):
    """Raised when a single search query fails at the transport or HTTP level."""

    def __init__(self, query: str, message: str, status_code: Optional[int] = None, body: str = "") -> None:
        self.query = query
        self.status_code = status_code
        self.body = body[:BODY_PREVIEW_CHARS]
        detail = f"Serper {status_code} {message}" if status_code is not None else f"Serper {message}"
        if self.body:
            detail = f"{detail} | {self.body}"
        super().__init__(detail)


class SerperClient:
    """One POST per query against Serper with fixed locale parameters."""

    def __init__(
        self,
        api_key: Optional[str],
        session: Optional[requests.Session] = None,
        gl: str = "mx",
        hl: str = "es",
        timeout: int = REQUEST_TIMEOUT,
    ) -> None:
        self._api_key = api_key
        self._session = session or requests.Session()
        self.gl = gl
        self.hl = hl
        self.timeout = timeout

    def fetch(self, query: str) -> List[SearchResult]:
        api_key = require_setting(self._api_key, "SERPER_API_KEY")
        body = {"q": query, "gl": self.gl, "hl": self.hl}
        headers = {"X-API-KEY": api_key, "Content-Type": "application/json"}

        try:
            response = self._session.post(SERPER_URL, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ProviderError(query, f"request failed: {exc}") from exc

        if not (200 <= response.status_code < 300):
            logger.error("Serper returned status=%s for query=%s", response.status_code, query)
            raise ProviderError(query, response.reason or "error", response.status_code, response.text or "")

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(query, "returned a non-JSON body", response.status_code, response.text or "") from exc

        results = parse_organic(payload)
        for index, result in enumerate(results[:5], start=1):
            logger.debug("Serper link#%d url: %s", index, result.url[:180])
        return results


def parse_organic(payload: Optional[Dict[str, Any]]) -> List[SearchResult]:
    """Extract Serper organic results into SearchResult objects."""
    if not isinstance(payload, dict):
        return []

    organic = payload.get("organic")
    if not isinstance(organic, list):
        return []

    results: List[SearchResult] = []
    for raw in organic:
        if not isinstance(raw, dict):
            continue
        url = raw.get("link")
        if not isinstance(url, str) or not url:
            continue
        results.append(
            SearchResult(
                title=str(raw.get("title") or ""),
                snippet=str(raw.get("snippet") or ""),
                url=url,
            )
        )
    return results
