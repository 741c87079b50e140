"""Entry point for the FastAPI-powered personalization service."""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, get_args

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from .config import settings
from .database import Database
from .errors import ConfigError
from .models import (
    ChatRequest,
    ContentRequest,
    RecommendationsRequest,
    WatchlistInsightsRequest,
)
from .services.enricher import ResultEnricher
from .services.features import PersonalizationService
from .services.gemini import GeminiClient
from .services.orchestrator import FeatureContext, FeatureOutcome
from .services.session_gate import LifecycleState, SessionGate
from .services.store import SQLAlchemyStore
from .services.tiered_cache import TieredCache
from .services.tmdb import TMDBClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(_: FastAPI):
    exit_stack = AsyncExitStack()
    gemini_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=10.0))
    )
    tmdb_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(15.0, connect=5.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    enricher: ResultEnricher | None = None
    if settings.tmdb_api_key:
        enricher = ResultEnricher(settings, TMDBClient(settings, tmdb_http))
    else:
        logger.warning("TMDB_API_KEY is not set; suggested titles will not be enriched")

    context = FeatureContext(
        settings=settings,
        cache=TieredCache(settings.cache_capacity),
        store=SQLAlchemyStore(database),
        gate=SessionGate(),
        gemini=GeminiClient(settings, gemini_http),
        enricher=enricher,
    )
    app.state.personalization = PersonalizationService(context)
    app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Cached, session-throttled AI personalization for movies and TV",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_personalization_service(app: FastAPI) -> PersonalizationService:
    service = getattr(app.state, "personalization", None)
    if service is None:
        raise RuntimeError("Personalization service not initialised")
    return service


def outcome_payload(outcome: FeatureOutcome[Any]) -> dict[str, Any]:
    """Render a feature outcome as the JSON body returned to clients."""

    payload: dict[str, Any] = {
        "state": outcome.state.value,
        "data": jsonable_encoder(outcome.data),
        "stale": outcome.stale,
        "fingerprint": outcome.fingerprint,
    }
    if outcome.error is not None:
        payload["error"] = {
            "type": outcome.error.__class__.__name__,
            "message": str(outcome.error),
        }
    return payload


def register_routes(fastapi_app: FastAPI) -> None:
    async def _read_payload(request: Request) -> dict[str, Any]:
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            payload = {}
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload")
        return payload

    def _parse(model: type[BaseModel], data: Any) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise HTTPException(
                status_code=400, detail=jsonable_encoder(exc.errors())
            ) from exc

    async def _run_feature(
        feature: str, payload: dict[str, Any], request_model: Any
    ) -> JSONResponse:
        service = get_personalization_service(fastapi_app)
        overrides = {
            "api_key": payload.get("apiKey") or payload.get("api_key"),
            "model": payload.get("model"),
        }
        outcome = await service.run(feature, request_model, **overrides)
        if isinstance(outcome.error, ConfigError) and not outcome.stale:
            raise HTTPException(status_code=400, detail=str(outcome.error))
        return JSONResponse(outcome_payload(outcome))

    def _content_payload(payload: dict[str, Any]) -> Any:
        item = payload.get("item", payload)
        return _parse(ContentRequest, item)

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.post("/api/recommendations")
    async def recommendations(request: Request) -> JSONResponse:
        payload = await _read_payload(request)
        return await _run_feature(
            "recommendations", payload, _parse(RecommendationsRequest, payload)
        )

    @fastapi_app.post("/api/watchlist/insights")
    async def watchlist_insights(request: Request) -> JSONResponse:
        payload = await _read_payload(request)
        return await _run_feature(
            "insights", payload, _parse(WatchlistInsightsRequest, payload)
        )

    @fastapi_app.post("/api/content/analysis")
    async def content_analysis(request: Request) -> JSONResponse:
        payload = await _read_payload(request)
        return await _run_feature("analysis", payload, _content_payload(payload))

    @fastapi_app.post("/api/content/similar")
    async def similar_by_story(request: Request) -> JSONResponse:
        payload = await _read_payload(request)
        return await _run_feature("similar", payload, _content_payload(payload))

    @fastapi_app.post("/api/content/trivia")
    async def trivia(request: Request) -> JSONResponse:
        payload = await _read_payload(request)
        return await _run_feature("trivia", payload, _content_payload(payload))

    @fastapi_app.post("/api/chat")
    async def chat(request: Request) -> JSONResponse:
        payload = await _read_payload(request)
        return await _run_feature("chat", payload, _parse(ChatRequest, payload))

    @fastapi_app.post("/api/lifecycle")
    async def lifecycle(request: Request) -> dict[str, Any]:
        payload = await _read_payload(request)
        state = payload.get("state")
        if state not in get_args(LifecycleState):
            raise HTTPException(
                status_code=400,
                detail="state must be one of: active, inactive, background",
            )
        service = get_personalization_service(fastapi_app)
        started = service.handle_lifecycle(state)
        gate = service.context.gate
        return {
            "state": gate.lifecycle_state,
            "newSession": started,
            "session": gate.session_number,
        }

    @fastapi_app.post("/api/features/{feature}/dispose")
    async def dispose_feature(feature: str) -> dict[str, Any]:
        service = get_personalization_service(fastapi_app)
        try:
            service.dispose(feature)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=exc.args[0]) from exc
        return {"feature": feature, "disposed": True}


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
