"""State machine deciding between cached results and a fresh generation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, ClassVar, Generic, Iterable, TypeVar

from pydantic import TypeAdapter, ValidationError

from ..config import Settings
from ..errors import ConfigError, ParseError, PersonalizationError
from ..models import PersonalizationRecord
from .enricher import ResultEnricher
from .gemini import GeminiClient
from .hashing import ContentHasher
from .session_gate import SessionGate
from .store import PersistentStore
from .tiered_cache import TieredCache

logger = logging.getLogger(__name__)

RequestT = TypeVar("RequestT")
ResultT = TypeVar("ResultT")


class FeatureState(str, Enum):
    IDLE = "idle"
    CHECK_CACHE = "check_cache"
    HIT = "hit"
    MISS = "miss"
    CHECK_SESSION_GATE = "check_session_gate"
    BLOCKED = "blocked"
    RETURN_STALE_OR_EMPTY = "return_stale_or_empty"
    ALLOWED = "allowed"
    CALL_REMOTE = "call_remote"
    SUCCESS = "success"
    ENRICH = "enrich"
    PERSIST = "persist"
    DONE = "done"
    FAILURE = "failure"
    DONE_WITH_ERROR = "done_with_error"
    CANCELLED = "cancelled"


@dataclass
class FeatureOutcome(Generic[ResultT]):
    """What a single run produced and how it got there."""

    state: FeatureState
    data: ResultT | None
    fingerprint: str | None = None
    stale: bool = False
    error: PersonalizationError | None = None
    path: list[FeatureState] = field(default_factory=list)
    remote_called: bool = False


@dataclass
class _Run:
    generation: int
    path: list[FeatureState] = field(default_factory=lambda: [FeatureState.IDLE])

    def to(self, state: FeatureState) -> None:
        self.path.append(state)


@dataclass
class FeatureContext:
    """Collaborators shared by every feature orchestrator."""

    settings: Settings
    cache: TieredCache
    store: PersistentStore
    gate: SessionGate
    gemini: GeminiClient
    enricher: ResultEnricher | None = None
    clock: Callable[[], datetime] = datetime.utcnow


class FeatureOrchestrator(ABC, Generic[RequestT, ResultT]):
    """Base class composing hashing, caching, gating and generation.

    Subclasses describe *what* to ask the model and how to shape its answer;
    this class decides *whether* to ask. A persisted record whose fingerprint
    matches the current input is reused without a remote call when it was
    computed during the current session or is younger than the configured
    TTL. Otherwise the session gate decides between a fresh generation and
    the best stale result available.
    """

    name: ClassVar[str]
    namespace: ClassVar[str]
    result_type: ClassVar[Any]
    gated: ClassVar[bool] = True
    persistent: ClassVar[bool] = True

    def __init__(self, context: FeatureContext):
        self._context = context
        self._settings = context.settings
        self._cache = context.cache
        self._store = context.store
        self._gate = context.gate
        self._gemini = context.gemini
        self._enricher = context.enricher
        self._clock = context.clock
        self._adapter: TypeAdapter[Any] = TypeAdapter(self.result_type)
        self._generation = 0
        self._disposed = False

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------
    @abstractmethod
    def scope(self, request: RequestT) -> str:
        """Return the part of the store key identifying the request subject."""

    @abstractmethod
    def identities(self, request: RequestT) -> Iterable[Any]:
        """Return the ``(id, type)`` items determining the fingerprint."""

    @abstractmethod
    async def generate(
        self, request: RequestT, *, api_key: str | None, model: str | None
    ) -> Any:
        """Ask the model for a raw answer; raise ``ParseError`` if unusable."""

    @abstractmethod
    def empty_result(self) -> ResultT: ...

    async def enrich(self, raw: Any) -> ResultT:
        """Turn the raw answer into the result that is cached and returned."""

        return raw

    def has_input(self, request: RequestT) -> bool:
        return True

    def is_empty(self, result: Any) -> bool:
        return not result

    def fingerprint(self, request: RequestT) -> str:
        return ContentHasher.compute(self.identities(request))

    def key(self, request: RequestT) -> str:
        return f"{self.name}:{self.scope(request)}"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def disposed(self) -> bool:
        """Whether ``dispose`` was called since the last ``run`` began.

        Reported to callers only; in-flight runs detect disposal through the
        generation counter.
        """

        return self._disposed

    def dispose(self) -> None:
        """Discard the results of runs that are still in flight."""

        self._generation += 1
        self._disposed = True
        logger.debug("Disposed %s orchestrator (generation %s)", self.name, self._generation)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------
    async def run(
        self,
        request: RequestT,
        *,
        api_key: str | None = None,
        model: str | None = None,
    ) -> FeatureOutcome[ResultT]:
        """Resolve ``request`` into an outcome; never raises."""

        self._disposed = False
        run = _Run(generation=self._generation)

        if not self.has_input(request):
            run.to(FeatureState.DONE)
            return FeatureOutcome(FeatureState.DONE, self.empty_result(), path=run.path)

        key = self.key(request)
        fingerprint = self.fingerprint(request)

        run.to(FeatureState.CHECK_CACHE)
        cached = self._cache.get(self.namespace, key)
        if isinstance(cached, PersonalizationRecord) and cached.fingerprint == fingerprint:
            data = self._decode(cached.result)
            if data is not None:
                logger.debug("Memory cache hit for %s", key)
                return self._hit(run, data, fingerprint)

        record = await self._load(key) if self.persistent else None
        stale = self._decode(record.result) if record is not None else None
        if stale is None:
            # An unreadable record is neither reused nor served as stale.
            record = None
        if record is not None and record.fingerprint == fingerprint and self._reusable(record):
            logger.debug("Store hit for %s", key)
            self._cache.set(
                self.namespace, key, record, self._settings.memory_cache_seconds
            )
            return self._hit(run, stale, fingerprint)

        run.to(FeatureState.MISS)

        if self.gated:
            run.to(FeatureState.CHECK_SESSION_GATE)
            if not self._gate.allow_remote_call(key, fingerprint_changed=True):
                run.to(FeatureState.BLOCKED)
                run.to(FeatureState.RETURN_STALE_OR_EMPTY)
                logger.info("Remote call for %s already made this session", key)
                return self._stale_or_empty(
                    run, FeatureState.RETURN_STALE_OR_EMPTY, stale, fingerprint
                )
            self._gate.mark_called(key)
        run.to(FeatureState.ALLOWED)

        run.to(FeatureState.CALL_REMOTE)
        try:
            raw = await self.generate(request, api_key=api_key, model=model)
        except ParseError as exc:
            logger.warning("Unusable %s response: %s", self.name, exc)
            raw = None
        except ConfigError as exc:
            # No request went out; leave the allowance for a configured retry.
            if self.gated:
                self._gate.reset(key)
            logger.warning("%s generation not configured: %s", self.name, exc)
            outcome = self._failure(run, exc, stale, fingerprint)
            outcome.remote_called = False
            return outcome
        except PersonalizationError as exc:
            logger.warning("%s generation failed: %s", self.name, exc)
            return self._failure(run, exc, stale, fingerprint)
        except Exception as exc:
            logger.exception("Unexpected %s generation failure", self.name)
            return self._failure(run, PersonalizationError(str(exc)), stale, fingerprint)

        if raw is None or self.is_empty(raw):
            return self._no_result(run, stale, fingerprint)

        run.to(FeatureState.SUCCESS)
        run.to(FeatureState.ENRICH)
        result = await self.enrich(raw)
        if self.is_empty(result):
            return self._no_result(run, stale, fingerprint)

        if self._cancelled(run):
            return self._cancel(run, fingerprint)
        run.to(FeatureState.PERSIST)
        fresh = PersonalizationRecord(
            fingerprint=fingerprint,
            result=self._adapter.dump_python(result, mode="json"),
            computed_at=self._clock(),
        )
        if self.persistent:
            await self._save(key, fresh)
        self._cache.set(self.namespace, key, fresh, self._settings.memory_cache_seconds)

        run.to(FeatureState.DONE)
        return FeatureOutcome(
            FeatureState.DONE,
            result,
            fingerprint=fingerprint,
            path=run.path,
            remote_called=True,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _hit(self, run: _Run, data: ResultT, fingerprint: str) -> FeatureOutcome[ResultT]:
        run.to(FeatureState.HIT)
        run.to(FeatureState.DONE)
        return FeatureOutcome(FeatureState.DONE, data, fingerprint=fingerprint, path=run.path)

    def _stale_or_empty(
        self,
        run: _Run,
        state: FeatureState,
        stale: ResultT | None,
        fingerprint: str,
    ) -> FeatureOutcome[ResultT]:
        if stale is None:
            return FeatureOutcome(
                state, self.empty_result(), fingerprint=fingerprint, path=run.path
            )
        return FeatureOutcome(
            state, stale, fingerprint=fingerprint, stale=True, path=run.path
        )

    def _failure(
        self,
        run: _Run,
        error: PersonalizationError,
        stale: Any,
        fingerprint: str,
    ) -> FeatureOutcome[ResultT]:
        run.to(FeatureState.FAILURE)
        if self._cancelled(run):
            return self._cancel(run, fingerprint)
        run.to(FeatureState.DONE_WITH_ERROR)
        outcome = self._stale_or_empty(
            run, FeatureState.DONE_WITH_ERROR, stale, fingerprint
        )
        outcome.error = error
        outcome.remote_called = True
        return outcome

    def _no_result(
        self, run: _Run, stale: Any, fingerprint: str
    ) -> FeatureOutcome[ResultT]:
        if self._cancelled(run):
            return self._cancel(run, fingerprint)
        run.to(FeatureState.DONE)
        outcome = self._stale_or_empty(run, FeatureState.DONE, stale, fingerprint)
        outcome.remote_called = True
        return outcome

    def _cancel(self, run: _Run, fingerprint: str) -> FeatureOutcome[ResultT]:
        logger.info("Discarding %s result after disposal", self.name)
        run.to(FeatureState.CANCELLED)
        return FeatureOutcome(
            FeatureState.CANCELLED,
            None,
            fingerprint=fingerprint,
            path=run.path,
            remote_called=True,
        )

    def _cancelled(self, run: _Run) -> bool:
        return run.generation != self._generation

    def _reusable(self, record: PersonalizationRecord) -> bool:
        if record.computed_at >= self._gate.session_started_at:
            return True
        age = self._clock() - record.computed_at
        return age < timedelta(seconds=self._settings.personalization_ttl_seconds)

    def _decode(self, payload: Any) -> ResultT | None:
        try:
            return self._adapter.validate_python(payload)
        except ValidationError as exc:
            logger.warning("Discarding unreadable %s record: %s", self.name, exc)
            return None

    async def _load(self, key: str) -> PersonalizationRecord | None:
        try:
            return await self._store.get(key)
        except Exception as exc:
            logger.warning("Failed to read personalization record %s: %s", key, exc)
            return None

    async def _save(self, key: str, record: PersonalizationRecord) -> None:
        try:
            await self._store.put(key, record)
        except Exception:
            logger.exception("Failed to persist personalization record %s", key)
