"""Search client for The Movie Database (TMDB)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import Settings
from ..models import ContentType

logger = logging.getLogger(__name__)


class TMDBClient:
    """Client responsible for free-text TMDB title searches."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client

    async def search(
        self,
        query: str,
        *,
        content_type: ContentType,
        year: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return raw search results in TMDB's relevance order."""

        endpoint = "/search/movie" if content_type == "movie" else "/search/tv"
        params: dict[str, Any] = {
            "query": query,
            "include_adult": "false",
            "language": "en-US",
            "page": 1,
            "api_key": self._settings.tmdb_api_key,
        }
        if year:
            if content_type == "movie":
                params["year"] = year
            else:
                params["first_air_date_year"] = year

        response = await self._client.get(endpoint, params=params)
        if response.status_code >= 400:
            logger.warning(
                "TMDB search for %s (%s) failed: %s", query, content_type, response.text
            )
            return []
        try:
            data = response.json()
        except ValueError:
            logger.warning("Unexpected non-JSON TMDB response for %s", query)
            return []
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            return []
        return [entry for entry in results if isinstance(entry, dict)]
