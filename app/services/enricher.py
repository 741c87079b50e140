"""Resolve AI-suggested title stubs into canonical TMDB records."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, Sequence

from ..config import Settings
from ..errors import EnrichmentMiss
from ..models import ContentRef, ContentType, EnrichedContent
from ..utils import normalize_title, parse_year

logger = logging.getLogger(__name__)

EXACT_TITLE_POINTS = 2.0
PREFIX_TITLE_POINTS = 1.0
EXACT_YEAR_POINTS = 3.0
NEAR_YEAR_POINTS = 1.0
MAX_POPULARITY_POINTS = 2.0


class SearchClient(Protocol):
    async def search(
        self,
        query: str,
        *,
        content_type: ContentType,
        year: int | None = None,
    ) -> list[dict[str, Any]]: ...


def candidate_title(candidate: dict[str, Any]) -> str:
    return str(candidate.get("title") or candidate.get("name") or "")


def candidate_year(candidate: dict[str, Any]) -> int | None:
    return parse_year(candidate.get("release_date") or candidate.get("first_air_date"))


def score_candidate(
    candidate: dict[str, Any],
    *,
    title: str,
    year: int | None,
    popularity_cap: float = 100.0,
) -> float:
    """Score how well a search candidate matches the normalized target."""

    score = 0.0
    other = normalize_title(candidate_title(candidate))
    if other and title:
        if other == title:
            score += EXACT_TITLE_POINTS
        elif other.startswith(title) or title.startswith(other):
            score += PREFIX_TITLE_POINTS

    if year is not None:
        released = candidate_year(candidate)
        if released is not None:
            if released == year:
                score += EXACT_YEAR_POINTS
            elif abs(released - year) <= 1:
                score += NEAR_YEAR_POINTS

    try:
        popularity = float(candidate.get("popularity") or 0.0)
    except (TypeError, ValueError):
        popularity = 0.0
    if popularity > 0:
        score += min(popularity, popularity_cap) / popularity_cap * MAX_POPULARITY_POINTS
    return score


def select_best(
    candidates: Sequence[dict[str, Any]],
    *,
    title: str,
    year: int | None,
    popularity_cap: float = 100.0,
) -> dict[str, Any] | None:
    """Return the highest scoring candidate; ties keep the earliest one."""

    best: dict[str, Any] | None = None
    best_score = float("-inf")
    for candidate in candidates:
        score = score_candidate(
            candidate, title=title, year=year, popularity_cap=popularity_cap
        )
        if score > best_score:
            best, best_score = candidate, score
    return best


class ResultEnricher:
    """Turn loosely specified ``ContentRef`` stubs into ``EnrichedContent``.

    Lookups run one at a time unless ``enrichment_concurrency`` allows more;
    either way results keep the order of the input references and every
    lookup is bounded by ``enrichment_timeout_seconds``.
    """

    def __init__(self, settings: Settings, search_client: SearchClient):
        self._search = search_client
        self._popularity_cap = settings.popularity_cap
        self._timeout = settings.enrichment_timeout_seconds
        self._concurrency = max(1, min(settings.enrichment_concurrency, 4))

    async def enrich(self, refs: Sequence[ContentRef]) -> list[EnrichedContent]:
        """Resolve every reference, dropping the ones without a match."""

        if not refs:
            return []
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(ref: ContentRef) -> EnrichedContent | None:
            async with semaphore:
                return await self._resolve_with_timeout(ref)

        if self._concurrency == 1:
            results = [await self._resolve_with_timeout(ref) for ref in refs]
        else:
            results = await asyncio.gather(*(_bounded(ref) for ref in refs))
        resolved = [item for item in results if item is not None]
        logger.info("Enriched %s of %s suggested titles", len(resolved), len(refs))
        return resolved

    async def _resolve_with_timeout(self, ref: ContentRef) -> EnrichedContent | None:
        try:
            return await asyncio.wait_for(self.resolve(ref), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("TMDB lookup for %s timed out", ref.title)
            return None

    async def resolve(self, ref: ContentRef) -> EnrichedContent | None:
        """Return the best TMDB match for ``ref`` or ``None``."""

        try:
            candidate = await self._find_candidate(ref)
            return self._to_content(candidate, ref)
        except EnrichmentMiss as miss:
            logger.info("%s", miss)
            return None
        except Exception as exc:
            logger.warning("TMDB lookup failed for %s: %s", ref.title, exc)
            return None

    async def _find_candidate(self, ref: ContentRef) -> dict[str, Any]:
        title = normalize_title(ref.title)
        if not title:
            raise EnrichmentMiss(ref.title, ref.type)

        results = await self._search.search(
            title, content_type=ref.type, year=ref.year
        )
        pool = self._filter_language(results, ref.language)
        if not pool and ref.year is not None:
            results = await self._search.search(title, content_type=ref.type)
            pool = self._filter_language(results, ref.language)
        if not pool:
            pool = results
        if not pool:
            raise EnrichmentMiss(ref.title, ref.type)

        best = select_best(
            pool, title=title, year=ref.year, popularity_cap=self._popularity_cap
        )
        if best is None or best.get("id") is None:
            raise EnrichmentMiss(ref.title, ref.type)
        return best

    @staticmethod
    def _filter_language(
        results: list[dict[str, Any]], language: str | None
    ) -> list[dict[str, Any]]:
        if not language:
            return list(results)
        return [
            entry
            for entry in results
            if str(entry.get("original_language") or "").lower() == language
        ]

    @staticmethod
    def _to_content(candidate: dict[str, Any], ref: ContentRef) -> EnrichedContent:
        release_date = candidate.get("release_date") or candidate.get("first_air_date")
        genre_ids = [
            genre for genre in candidate.get("genre_ids") or [] if isinstance(genre, int)
        ]
        return EnrichedContent(
            id=int(candidate["id"]),
            title=candidate_title(candidate) or ref.title,
            type=ref.type,
            overview=candidate.get("overview") or None,
            poster_path=candidate.get("poster_path"),
            backdrop_path=candidate.get("backdrop_path"),
            release_date=release_date or None,
            release_year=candidate_year(candidate),
            original_language=candidate.get("original_language"),
            popularity=candidate.get("popularity"),
            vote_average=candidate.get("vote_average"),
            genre_ids=genre_ids,
            reason=ref.description,
        )
