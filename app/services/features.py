"""Feature orchestrators built on the shared caching state machine."""

from __future__ import annotations

import hashlib
import json
import logging
import zlib
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from pydantic import ValidationError

from .. import prompts
from ..errors import ParseError
from ..models import (
    ChatMessage,
    ChatReply,
    ChatRequest,
    ContentAnalysis,
    ContentRef,
    ContentRequest,
    ContentType,
    EnrichedContent,
    HistoryItem,
    RecommendationsRequest,
    TriviaFact,
    WatchlistInsights,
    WatchlistInsightsRequest,
)
from ..utils import Err, JsonResult, split_inline_array
from .gemini import Message
from .orchestrator import FeatureContext, FeatureOrchestrator, FeatureOutcome
from .session_gate import LifecycleState
from .tiered_cache import CacheNamespace

logger = logging.getLogger(__name__)

RECENT_HISTORY_LIMIT = 10
RECOMMENDATION_COUNT = 8
INSIGHTS_SUMMARY_LIMIT = 30
SIMILAR_LIMIT = 5
TRIVIA_LIMIT = 5
TRIVIA_CATEGORIES = ("Production", "Cast", "Behind the Scenes", "Fun Fact")


def parse_refs(
    payload: Any,
    *,
    default_type: ContentType | None = None,
    require_year: bool = False,
    require_type: bool = False,
    limit: int | None = None,
) -> list[ContentRef]:
    """Validate model-suggested title stubs, dropping malformed entries."""

    if not isinstance(payload, list):
        return []
    refs: list[ContentRef] = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        if not entry.get("type"):
            if require_type:
                continue
            if default_type is not None:
                entry = {**entry, "type": default_type}
        try:
            ref = ContentRef.model_validate(entry)
        except ValidationError:
            logger.debug("Dropping malformed title suggestion: %s", entry)
            continue
        if require_year and ref.year is None:
            continue
        refs.append(ref)
    return refs[:limit] if limit is not None else refs


def unwrap(result: JsonResult) -> Any:
    """Return the parsed value or raise the carried ``ParseError``."""

    if isinstance(result, Err):
        raise result.error
    return result.value


def trivia_category(fact: str) -> str:
    return TRIVIA_CATEGORIES[zlib.crc32(fact.encode("utf-8")) % len(TRIVIA_CATEGORIES)]


def _content_identity(request: ContentRequest) -> list[dict[str, Any]]:
    return [{"id": request.id, "type": request.type}]


class EnrichingFeature(FeatureOrchestrator[Any, Any]):
    """Shared enrichment step for features that suggest titles."""

    async def _enrich_refs(self, refs: Sequence[ContentRef]) -> list[EnrichedContent]:
        if not refs:
            return []
        if self._enricher is None:
            logger.warning("No TMDB key configured; %s suggestions stay unresolved", self.name)
            return []
        return await self._enricher.enrich(refs)


class RecommendationsFeature(EnrichingFeature):
    """Personalized picks driven by the most recent watch history."""

    name = "recommendations"
    namespace = CacheNamespace.AI_RECOMMENDATION
    result_type = list[EnrichedContent]

    def scope(self, request: RecommendationsRequest) -> str:
        return request.profile_id

    def recent(self, request: RecommendationsRequest) -> list[HistoryItem]:
        return request.history[:RECENT_HISTORY_LIMIT]

    def identities(self, request: RecommendationsRequest) -> Iterable[Any]:
        return self.recent(request)

    def has_input(self, request: RecommendationsRequest) -> bool:
        return bool(request.history)

    def empty_result(self) -> list[EnrichedContent]:
        return []

    async def generate(
        self, request: RecommendationsRequest, *, api_key: str | None, model: str | None
    ) -> list[ContentRef]:
        history = "\n".join(item.summary_line() for item in self.recent(request))
        messages: list[Message] = [
            ChatMessage(
                role="system",
                content=prompts.RECOMMENDATIONS_SYSTEM_PROMPT.format(
                    count=RECOMMENDATION_COUNT
                ),
            ),
            ChatMessage(
                role="user",
                content=prompts.RECOMMENDATIONS_USER_PROMPT.format(
                    count=RECOMMENDATION_COUNT, history=history
                ),
            ),
        ]
        payload = unwrap(
            await self._gemini.generate_json(
                messages, expect="array", api_key=api_key, model=model
            )
        )
        return parse_refs(
            payload, require_year=True, require_type=True, limit=RECOMMENDATION_COUNT
        )

    async def enrich(self, raw: list[ContentRef]) -> list[EnrichedContent]:
        return await self._enrich_refs(raw)


class WatchlistInsightsFeature(EnrichingFeature):
    """Pattern analysis over a whole watchlist."""

    name = "insights"
    namespace = CacheNamespace.AI_INSIGHTS
    result_type = WatchlistInsights

    def scope(self, request: WatchlistInsightsRequest) -> str:
        return request.watchlist_id

    def identities(self, request: WatchlistInsightsRequest) -> Iterable[Any]:
        return request.items

    def has_input(self, request: WatchlistInsightsRequest) -> bool:
        return bool(request.items)

    def empty_result(self) -> WatchlistInsights:
        return WatchlistInsights()

    def is_empty(self, result: WatchlistInsights) -> bool:
        return not (result.insights or result.top_genres or result.recommended_titles)

    async def generate(
        self, request: WatchlistInsightsRequest, *, api_key: str | None, model: str | None
    ) -> WatchlistInsights:
        summary = "\n".join(
            item.summary_line(with_genres=True)
            for item in request.items[:INSIGHTS_SUMMARY_LIMIT]
        )
        messages: list[Message] = [
            ChatMessage(role="system", content=prompts.INSIGHTS_SYSTEM_PROMPT),
            ChatMessage(
                role="user",
                content=prompts.INSIGHTS_USER_PROMPT.format(
                    count=len(request.items), summary=summary
                ),
            ),
        ]
        payload = unwrap(
            await self._gemini.generate_json(
                messages, expect="object", api_key=api_key, model=model
            )
        )
        try:
            return WatchlistInsights.model_validate(payload)
        except ValidationError as exc:
            raise ParseError(f"Malformed watchlist insights: {exc}") from exc

    async def enrich(self, raw: WatchlistInsights) -> WatchlistInsights:
        items = await self._enrich_refs(raw.recommended_titles)
        return raw.model_copy(update={"recommended_items": items})


class ContentAnalysisFeature(FeatureOrchestrator[ContentRequest, ContentAnalysis]):
    """Thematic and emotional tags for one title."""

    name = "analysis"
    namespace = CacheNamespace.AI_ANALYSIS
    result_type = ContentAnalysis

    def scope(self, request: ContentRequest) -> str:
        return f"{request.type}:{request.id}"

    def identities(self, request: ContentRequest) -> Iterable[Any]:
        return _content_identity(request)

    def empty_result(self) -> ContentAnalysis:
        return ContentAnalysis()

    def is_empty(self, result: ContentAnalysis) -> bool:
        return result.is_empty()

    async def generate(
        self, request: ContentRequest, *, api_key: str | None, model: str | None
    ) -> ContentAnalysis:
        messages: list[Message] = [
            ChatMessage(role="system", content=prompts.ANALYSIS_SYSTEM_PROMPT),
            ChatMessage(
                role="user",
                content=prompts.ANALYSIS_USER_PROMPT.format(
                    content_type=request.type,
                    title=request.title,
                    genres=", ".join(request.genres) or "Unknown",
                    overview=request.overview or "No overview available.",
                ),
            ),
        ]
        payload = unwrap(
            await self._gemini.generate_json(
                messages, expect="object", api_key=api_key, model=model
            )
        )
        try:
            return ContentAnalysis.model_validate(payload)
        except ValidationError as exc:
            raise ParseError(f"Malformed content analysis: {exc}") from exc


class SimilarByStoryFeature(EnrichingFeature):
    """Titles whose story resembles a given one."""

    name = "similar"
    namespace = CacheNamespace.AI_SIMILAR
    result_type = list[EnrichedContent]

    def scope(self, request: ContentRequest) -> str:
        return f"{request.type}:{request.id}"

    def identities(self, request: ContentRequest) -> Iterable[Any]:
        return _content_identity(request)

    def empty_result(self) -> list[EnrichedContent]:
        return []

    async def generate(
        self, request: ContentRequest, *, api_key: str | None, model: str | None
    ) -> list[ContentRef]:
        messages: list[Message] = [
            ChatMessage(
                role="system",
                content=prompts.SIMILAR_SYSTEM_PROMPT.format(limit=SIMILAR_LIMIT),
            ),
            ChatMessage(
                role="user",
                content=prompts.SIMILAR_USER_PROMPT.format(
                    title=request.title,
                    overview=request.overview,
                    content_type=request.type,
                    genres=", ".join(request.genres),
                ),
            ),
        ]
        payload = unwrap(
            await self._gemini.generate_json(
                messages, expect="array", api_key=api_key, model=model
            )
        )
        return parse_refs(payload, default_type=request.type, limit=SIMILAR_LIMIT)

    async def enrich(self, raw: list[ContentRef]) -> list[EnrichedContent]:
        return await self._enrich_refs(raw)


class TriviaFeature(FeatureOrchestrator[ContentRequest, list[TriviaFact]]):
    """A handful of categorized trivia facts for one title."""

    name = "trivia"
    namespace = CacheNamespace.AI_TRIVIA
    result_type = list[TriviaFact]

    def scope(self, request: ContentRequest) -> str:
        return f"{request.type}:{request.id}"

    def identities(self, request: ContentRequest) -> Iterable[Any]:
        return _content_identity(request)

    def empty_result(self) -> list[TriviaFact]:
        return []

    async def generate(
        self, request: ContentRequest, *, api_key: str | None, model: str | None
    ) -> list[TriviaFact]:
        year_suffix = f" ({request.year})" if request.year else ""
        messages: list[Message] = [
            ChatMessage(
                role="user",
                content=prompts.TRIVIA_USER_PROMPT.format(
                    limit=TRIVIA_LIMIT,
                    content_type=request.type,
                    title=request.title,
                    year_suffix=year_suffix,
                ),
            )
        ]
        payload = unwrap(
            await self._gemini.generate_json(
                messages, expect="array", api_key=api_key, model=model
            )
        )
        facts: list[TriviaFact] = []
        for entry in payload:
            if isinstance(entry, str) and entry.strip():
                fact = entry.strip()
                facts.append(TriviaFact(fact=fact, category=trivia_category(fact)))
            elif isinstance(entry, dict) and str(entry.get("fact") or "").strip():
                fact = str(entry["fact"]).strip()
                category = entry.get("category")
                if category not in TRIVIA_CATEGORIES:
                    category = trivia_category(fact)
                facts.append(TriviaFact(fact=fact, category=category))
        return facts[:TRIVIA_LIMIT]


@dataclass(slots=True)
class _ChatDraft:
    text: str
    refs: list[ContentRef]


class ChatFeature(EnrichingFeature):
    """Cinema-only assistant whose replies may name titles to resolve.

    Replies are never persisted and no session gate applies; identical
    transcripts are answered from the memory cache.
    """

    name = "chat"
    namespace = CacheNamespace.AI_CHAT
    result_type = ChatReply
    gated = False
    persistent = False

    def scope(self, request: ChatRequest) -> str:
        return self.fingerprint(request)

    def identities(self, request: ChatRequest) -> Iterable[Any]:
        return []

    def fingerprint(self, request: ChatRequest) -> str:
        transcript = json.dumps(
            [message.model_dump() for message in request.messages], sort_keys=True
        )
        return hashlib.sha256(transcript.encode("utf-8")).hexdigest()

    def has_input(self, request: ChatRequest) -> bool:
        return any(message.role == "user" for message in request.messages)

    def empty_result(self) -> ChatReply:
        return ChatReply(text="")

    def is_empty(self, result: Any) -> bool:
        return not getattr(result, "text", "")

    async def generate(
        self, request: ChatRequest, *, api_key: str | None, model: str | None
    ) -> _ChatDraft:
        messages: list[Message] = [
            ChatMessage(role="system", content=prompts.CHAT_SYSTEM_PROMPT),
            *request.messages,
        ]
        text = await self._gemini.generate_text(messages, api_key=api_key, model=model)
        prose, parsed = split_inline_array(text)
        refs = [] if isinstance(parsed, Err) else parse_refs(parsed.value, default_type="movie")
        return _ChatDraft(text=prose, refs=refs)

    async def enrich(self, raw: _ChatDraft) -> ChatReply:
        return ChatReply(text=raw.text, items=await self._enrich_refs(raw.refs))


FEATURE_TYPES: tuple[type[FeatureOrchestrator[Any, Any]], ...] = (
    RecommendationsFeature,
    WatchlistInsightsFeature,
    ContentAnalysisFeature,
    SimilarByStoryFeature,
    TriviaFeature,
    ChatFeature,
)


class PersonalizationService:
    """Owns one orchestrator per feature and the shared session gate."""

    def __init__(self, context: FeatureContext):
        self._context = context
        self.features: dict[str, FeatureOrchestrator[Any, Any]] = {
            feature_type.name: feature_type(context) for feature_type in FEATURE_TYPES
        }

    @property
    def context(self) -> FeatureContext:
        return self._context

    def get(self, name: str) -> FeatureOrchestrator[Any, Any]:
        try:
            return self.features[name]
        except KeyError:
            raise KeyError(f"Unknown feature '{name}'") from None

    async def run(
        self,
        name: str,
        request: Any,
        *,
        api_key: str | None = None,
        model: str | None = None,
    ) -> FeatureOutcome[Any]:
        return await self.get(name).run(request, api_key=api_key, model=model)

    def handle_lifecycle(self, state: LifecycleState) -> bool:
        """Feed an app lifecycle transition to the session gate."""

        return self._context.gate.handle_lifecycle(state)

    def dispose(self, name: str) -> None:
        self.get(name).dispose()
