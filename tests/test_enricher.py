"""Fuzzy TMDB enrichment tests."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import httpx
import pytest

from app.config import Settings
from app.models import ContentRef
from app.services.enricher import ResultEnricher, score_candidate, select_best
from app.services.tmdb import TMDBClient


def build_settings(**overrides: Any) -> Settings:
    base: dict[str, Any] = {"TMDB_API_KEY": "tmdb-key"}
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


class FakeSearch:
    """Search client stub answering through a callable."""

    def __init__(self, answer: Callable[[str, str, int | None], Any]):
        self._answer = answer
        self.calls: list[tuple[str, str, int | None]] = []

    async def search(self, query: str, *, content_type: str, year: int | None = None):
        self.calls.append((query, content_type, year))
        result = self._answer(query, content_type, year)
        if asyncio.iscoroutine(result):
            return await result
        return result


DUNE_2021 = {
    "id": 438631,
    "title": "Dune",
    "release_date": "2021-09-15",
    "popularity": 80,
    "original_language": "en",
    "poster_path": "/dune.jpg",
}
DUNE_1984 = {
    "id": 841,
    "title": "Dune",
    "release_date": "1984-12-14",
    "popularity": 10,
    "original_language": "en",
}


def test_scoring_adds_title_year_and_popularity_points() -> None:
    score = score_candidate(
        {"title": "Dune", "release_date": "2021-09-15", "popularity": 50},
        title="dune",
        year=2021,
    )

    assert score == pytest.approx(2 + 3 + 1)


def test_scoring_partial_matches() -> None:
    score = score_candidate(
        {"title": "Dune: Part Two", "release_date": "2022-01-01", "popularity": 250},
        title="dune",
        year=2021,
    )

    assert score == pytest.approx(1 + 1 + 2)


def test_select_best_prefers_matching_year() -> None:
    best = select_best([DUNE_1984, DUNE_2021], title="dune", year=2021)

    assert best is DUNE_2021


def test_select_best_ties_keep_first_candidate() -> None:
    first = {"id": 1, "title": "Heat"}
    second = {"id": 2, "title": "Heat"}

    assert select_best([first, second], title="heat", year=None) is first


def test_resolve_picks_2021_dune() -> None:
    search = FakeSearch(lambda query, content_type, year: [DUNE_2021, DUNE_1984])
    enricher = ResultEnricher(build_settings(), search)

    result = asyncio.run(enricher.resolve(ContentRef(title="Dune", year=2021)))

    assert result is not None
    assert result.id == 438631
    assert result.release_year == 2021
    assert result.poster_path == "/dune.jpg"
    assert search.calls == [("dune", "movie", 2021)]


def test_language_filter_narrows_pool() -> None:
    english = {"id": 1, "name": "The Host", "first_air_date": "2006-07-27", "popularity": 90, "original_language": "en"}
    korean = {"id": 2, "name": "The Host", "first_air_date": "2006-07-27", "popularity": 5, "original_language": "ko"}
    search = FakeSearch(lambda query, content_type, year: [english, korean])
    enricher = ResultEnricher(build_settings(), search)

    result = asyncio.run(
        enricher.resolve(ContentRef(title="The Host", type="tv", year=2006, language="KO"))
    )

    assert result is not None
    assert result.id == 2
    assert result.type == "tv"


def test_empty_pool_requeries_without_year() -> None:
    def answer(query: str, content_type: str, year: int | None):
        return [] if year else [DUNE_2021]

    search = FakeSearch(answer)
    enricher = ResultEnricher(build_settings(), search)

    result = asyncio.run(enricher.resolve(ContentRef(title="Dune", year=2020)))

    assert result is not None and result.id == 438631
    assert search.calls == [("dune", "movie", 2020), ("dune", "movie", None)]


def test_language_without_matches_falls_back_to_unfiltered_pool() -> None:
    search = FakeSearch(lambda query, content_type, year: [DUNE_2021])
    enricher = ResultEnricher(build_settings(), search)

    result = asyncio.run(
        enricher.resolve(ContentRef(title="Dune", year=2021, language="fr"))
    )

    assert result is not None and result.id == 438631
    assert len(search.calls) == 2


def test_misses_and_failures_are_dropped_in_order() -> None:
    def answer(query: str, content_type: str, year: int | None):
        if query == "broken":
            raise httpx.ConnectError("boom")
        if query == "dune":
            return [DUNE_2021]
        if query == "heat":
            return [{"id": 949, "title": "Heat", "release_date": "1995-12-15"}]
        return []

    search = FakeSearch(answer)
    enricher = ResultEnricher(build_settings(), search)
    refs = [
        ContentRef(title="Heat", year=1995),
        ContentRef(title="Nothing Matches"),
        ContentRef(title="Broken"),
        ContentRef(title="Dune", year=2021),
    ]

    results = asyncio.run(enricher.enrich(refs))

    assert [item.id for item in results] == [949, 438631]


def test_slow_lookup_times_out_as_miss() -> None:
    async def slow(query: str, content_type: str, year: int | None):
        await asyncio.sleep(1)
        return [DUNE_2021]

    search = FakeSearch(slow)
    enricher = ResultEnricher(build_settings(ENRICHMENT_TIMEOUT=0.01), search)

    assert asyncio.run(enricher.enrich([ContentRef(title="Dune")])) == []


def test_concurrent_enrichment_keeps_input_order() -> None:
    delays = {"first": 0.05, "second": 0.0, "third": 0.02}

    async def answer(query: str, content_type: str, year: int | None):
        await asyncio.sleep(delays[query])
        return [{"id": list(delays).index(query) + 1, "title": query.title()}]

    search = FakeSearch(answer)
    enricher = ResultEnricher(build_settings(ENRICHMENT_CONCURRENCY=3), search)
    refs = [ContentRef(title=title) for title in ("First", "Second", "Third")]

    results = asyncio.run(enricher.enrich(refs))

    assert [item.id for item in results] == [1, 2, 3]


def test_tmdb_client_sends_year_filters() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"results": [DUNE_2021, "junk"]})

    async def runner() -> list[dict[str, Any]]:
        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(
            transport=transport, base_url="https://tmdb.example.com/3"
        ) as http_client:
            client = TMDBClient(build_settings(), http_client)
            movies = await client.search("dune", content_type="movie", year=2021)
            await client.search("the host", content_type="tv", year=2006)
            return movies

    movies = asyncio.run(runner())

    assert movies == [DUNE_2021]
    assert requests[0].url.path == "/3/search/movie"
    assert requests[0].url.params["year"] == "2021"
    assert requests[0].url.params["api_key"] == "tmdb-key"
    assert requests[1].url.path == "/3/search/tv"
    assert requests[1].url.params["first_air_date_year"] == "2006"


def test_tmdb_client_treats_errors_as_empty() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"status_message": "Invalid API key"})

    async def runner() -> list[dict[str, Any]]:
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="https://tmdb.example.com/3"
        ) as http_client:
            return await TMDBClient(build_settings(), http_client).search(
                "dune", content_type="movie"
            )

    assert asyncio.run(runner()) == []
