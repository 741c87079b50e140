"""Shared stand-ins for the generation and enrichment collaborators."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Sequence

from app.config import Settings
from app.models import ContentRef, EnrichedContent
from app.services.orchestrator import FeatureContext
from app.services.session_gate import SessionGate
from app.services.store import InMemoryStore
from app.services.tiered_cache import TieredCache
from app.utils import extract_json

T0 = datetime(2024, 6, 1, 20, 0)


class StubGemini:
    """Replays canned model replies and counts remote calls."""

    def __init__(self, *replies: Any) -> None:
        self.replies = list(replies)
        self.calls = 0
        self.before_reply: Callable[[], None] | None = None

    async def _next(self) -> str:
        self.calls += 1
        if self.before_reply is not None:
            self.before_reply()
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def generate_json(self, messages, *, expect=None, api_key=None, model=None):
        return extract_json(await self._next(), expect=expect)

    async def generate_text(self, messages, *, api_key=None, model=None):
        return await self._next()


class StubEnricher:
    """Resolves every reference to a synthetic record."""

    def __init__(self) -> None:
        self.seen: list[str] = []

    async def enrich(self, refs: Sequence[ContentRef]) -> list[EnrichedContent]:
        self.seen.extend(ref.title for ref in refs)
        return [
            EnrichedContent(
                id=index + 100,
                title=ref.title,
                type=ref.type,
                release_year=ref.year,
            )
            for index, ref in enumerate(refs)
        ]


def build_context(gemini: StubGemini, **overrides: Any) -> FeatureContext:
    values: dict[str, Any] = {
        "settings": Settings(_env_file=None),
        "cache": TieredCache(10),
        "store": InMemoryStore(),
        "gate": SessionGate(clock=lambda: T0),
        "gemini": gemini,
        "enricher": StubEnricher(),
        "clock": lambda: T0 + timedelta(minutes=5),
    }
    values.update(overrides)
    return FeatureContext(**values)
