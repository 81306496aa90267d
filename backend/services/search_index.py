"""
Thin HTTP client for the hosted Typesense places index.

Every failure mode (connection refused, timeout, non-2xx, bad JSON) surfaces
as SearchIndexError so callers can switch to the raw-table fallback.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from domain.models import SourceError
from settings import settings

logger = logging.getLogger(__name__)
_session = requests.Session()

INDEX_SOURCE = "search_index"


class SearchIndexError(SourceError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(INDEX_SOURCE, message)
        self.status_code = status_code


class SearchIndexClient:
    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[str] = None,
        protocol: Optional[str] = None,
        api_key: Optional[str] = None,
        collection: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.host = host or settings.TYPESENSE_HOST
        self.port = str(port or settings.TYPESENSE_PORT)
        self.protocol = protocol or settings.TYPESENSE_PROTOCOL
        self.api_key = api_key if api_key is not None else settings.TYPESENSE_API_KEY
        self.collection = collection or settings.TYPESENSE_COLLECTION
        self.timeout = timeout if timeout is not None else settings.TYPESENSE_TIMEOUT_SECONDS
        self.session = session or _session

    @property
    def base_url(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}"

    @property
    def headers(self) -> Dict[str, str]:
        return {"X-TYPESENSE-API-KEY": self.api_key}

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.get(url, params=params, headers=self.headers, timeout=self.timeout)
        except requests.Timeout as exc:
            raise SearchIndexError(f"request timed out after {self.timeout}s") from exc
        except requests.RequestException as exc:
            raise SearchIndexError(f"request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise SearchIndexError(
                f"HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise SearchIndexError("response was not valid JSON") from exc
        if not isinstance(data, dict):
            raise SearchIndexError("unexpected response shape")
        return data

    def search(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Run a documents search and return the raw Typesense payload."""
        data = self._get_json(f"/collections/{self.collection}/documents/search", params=params)
        hits = data.get("hits")
        if hits is None:
            data["hits"] = []
        elif not isinstance(hits, list):
            raise SearchIndexError("search response 'hits' is not a list")
        logger.debug(
            "SearchIndexClient.search: q=%r found=%s hits=%d search_time_ms=%s",
            params.get("q"),
            data.get("found"),
            len(data["hits"]),
            data.get("search_time_ms"),
        )
        return data

    def health(self) -> Dict[str, Any]:
        try:
            data = self._get_json("/health")
        except SearchIndexError as exc:
            return {"ok": False, "message": exc.message}
        return {"ok": data.get("ok") is True}


_default_search_index: Optional[SearchIndexClient] = None


def get_default_search_index() -> SearchIndexClient:
    global _default_search_index
    if _default_search_index is None:
        _default_search_index = SearchIndexClient()
    return _default_search_index
