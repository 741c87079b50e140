"""Pydantic models describing personalization inputs and results."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from .utils import parse_year

ContentType = Literal["movie", "tv"]

_TYPE_ALIASES = {
    "movie": "movie",
    "film": "movie",
    "tv": "tv",
    "series": "tv",
    "show": "tv",
    "tv show": "tv",
}


def normalize_content_type(value: object) -> object:
    if isinstance(value, str):
        return _TYPE_ALIASES.get(value.strip().lower(), value)
    return value


class HistoryItem(BaseModel):
    """A watched or watchlisted title as supplied by the caller."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    type: ContentType
    title: str | None = Field(
        default=None, validation_alias=AliasChoices("title", "name")
    )
    overview: str | None = None
    genre_ids: list[int] = Field(default_factory=list)
    vote_average: float | None = None
    release_date: str | None = None
    first_air_date: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: object) -> object:
        return normalize_content_type(value)

    def display_title(self) -> str:
        return (self.title or "").strip() or f"#{self.id}"

    def summary_line(self, *, with_genres: bool = False) -> str:
        rating = self.vote_average if self.vote_average else "N/A"
        line = f'- "{self.display_title()}" ({self.type}, rating: {rating}'
        if with_genres:
            genres = ",".join(str(genre) for genre in self.genre_ids) or "none"
            line += f", genres: {genres}"
        return line + ")"


class ContentRef(BaseModel):
    """A loosely specified title reference produced by the model."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(validation_alias=AliasChoices("title", "name"))
    type: ContentType = "movie"
    year: int | None = None
    language: str | None = Field(
        default=None,
        validation_alias=AliasChoices("language", "original_language"),
    )
    description: str | None = None

    @field_validator("title")
    @classmethod
    def _require_title(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("title must not be blank")
        return cleaned

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: object) -> object:
        return normalize_content_type(value)

    @field_validator("year", mode="before")
    @classmethod
    def _parse_year(cls, value: object) -> int | None:
        return parse_year(value)

    @field_validator("language", mode="before")
    @classmethod
    def _normalize_language(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower() or None
        return value


class EnrichedContent(BaseModel):
    """Canonical content record resolved through TMDB search."""

    id: int
    title: str
    type: ContentType
    overview: str | None = None
    poster_path: str | None = None
    backdrop_path: str | None = None
    release_date: str | None = None
    release_year: int | None = None
    original_language: str | None = None
    popularity: float | None = None
    vote_average: float | None = None
    genre_ids: list[int] = Field(default_factory=list)
    reason: str | None = None


class Tag(BaseModel):
    tag: str
    description: str = ""
    confidence: float = 0.0

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: object) -> float:
        try:
            return max(0.0, min(float(value), 1.0))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.0


class ContentAnalysis(BaseModel):
    """Thematic and emotional tags describing a single title."""

    model_config = ConfigDict(populate_by_name=True)

    thematic_tags: list[Tag] = Field(
        default_factory=list,
        validation_alias=AliasChoices("thematic_tags", "thematicTags"),
    )
    emotional_tags: list[Tag] = Field(
        default_factory=list,
        validation_alias=AliasChoices("emotional_tags", "emotionalTags"),
    )

    def is_empty(self) -> bool:
        return not (self.thematic_tags or self.emotional_tags)


class WatchlistInsights(BaseModel):
    """Pattern analysis of a watchlist plus the titles it suggests."""

    model_config = ConfigDict(populate_by_name=True)

    insights: list[str] = Field(default_factory=list)
    top_genres: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("top_genres", "topGenres"),
    )
    average_rating: float = Field(
        default=0.0,
        validation_alias=AliasChoices("average_rating", "averageRating"),
    )
    decade_distribution: dict[str, int] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("decade_distribution", "decadeDistribution"),
    )
    recommendations: str = ""
    recommended_titles: list[ContentRef] = Field(
        default_factory=list,
        validation_alias=AliasChoices("recommended_titles", "recommendedTitles"),
    )
    recommended_items: list[EnrichedContent] = Field(default_factory=list)

    @field_validator("recommended_titles", mode="before")
    @classmethod
    def _drop_invalid_titles(cls, value: object) -> list[ContentRef]:
        if not isinstance(value, list):
            return []
        refs: list[ContentRef] = []
        for entry in value:
            if isinstance(entry, ContentRef):
                refs.append(entry)
                continue
            try:
                refs.append(ContentRef.model_validate(entry))
            except ValidationError:
                continue
        return refs

    @field_validator("decade_distribution", mode="before")
    @classmethod
    def _clean_decades(cls, value: object) -> dict[str, int]:
        if not isinstance(value, dict):
            return {}
        cleaned: dict[str, int] = {}
        for decade, count in value.items():
            try:
                cleaned[str(decade)] = int(count)
            except (TypeError, ValueError):
                continue
        return cleaned

    @field_validator("average_rating", mode="before")
    @classmethod
    def _coerce_rating(cls, value: object) -> float:
        try:
            return float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.0


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatReply(BaseModel):
    """Assistant prose with the titles it mentioned, resolved."""

    text: str
    items: list[EnrichedContent] = Field(default_factory=list)


class TriviaFact(BaseModel):
    fact: str
    category: Literal["Production", "Cast", "Behind the Scenes", "Fun Fact"]


class PersonalizationRecord(BaseModel):
    """The last computed result of a feature, keyed by its input fingerprint."""

    fingerprint: str
    result: Any
    computed_at: datetime


class RecommendationsRequest(BaseModel):
    """Watch history, most recent first."""

    model_config = ConfigDict(populate_by_name=True)

    history: list[HistoryItem] = Field(default_factory=list)
    profile_id: str = Field(
        default="default", validation_alias=AliasChoices("profile_id", "profileId")
    )


class WatchlistInsightsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: list[HistoryItem] = Field(default_factory=list)
    watchlist_id: str = Field(
        default="default",
        validation_alias=AliasChoices("watchlist_id", "watchlistId"),
    )


class ContentRequest(BaseModel):
    """A single title whose details drive analysis, similar titles or trivia."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    type: ContentType
    title: str = Field(validation_alias=AliasChoices("title", "name"))
    overview: str = ""
    genres: list[str] = Field(default_factory=list)
    year: int | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: object) -> object:
        return normalize_content_type(value)

    @field_validator("genres", mode="before")
    @classmethod
    def _split_genres(cls, value: object) -> object:
        if isinstance(value, str):
            return [genre.strip() for genre in value.split(",") if genre.strip()]
        return value

    @field_validator("year", mode="before")
    @classmethod
    def _parse_year(cls, value: object) -> int | None:
        return parse_year(value)


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(default_factory=list)
