"""HTTP surface tests."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.errors import ConfigError
from app.main import register_routes
from app.services.features import PersonalizationService

from tests.support import StubGemini, build_context


def build_app(*replies: object) -> tuple[FastAPI, StubGemini]:
    gemini = StubGemini(*replies)
    app = FastAPI()
    register_routes(app)
    app.state.personalization = PersonalizationService(build_context(gemini))
    return app, gemini


HISTORY = {
    "history": [
        {"id": 603, "type": "movie", "title": "The Matrix", "vote_average": 8.2},
        {"id": 1399, "type": "tv", "name": "Game of Thrones"},
    ]
}


def test_healthcheck() -> None:
    app, _ = build_app()
    with TestClient(app) as client:
        response = client.get("/healthz")

    assert response.json() == {"status": "ok"}


def test_recommendations_round_trip_and_cache() -> None:
    app, gemini = build_app('[{"title": "Dark City", "year": "1998", "type": "movie"}]')
    with TestClient(app) as client:
        first = client.post("/api/recommendations", json=HISTORY)
        second = client.post("/api/recommendations", json=HISTORY)

    assert first.status_code == 200
    body = first.json()
    assert body["state"] == "done"
    assert body["stale"] is False
    assert body["fingerprint"] == "1399-tv,603-movie"
    assert [item["title"] for item in body["data"]] == ["Dark City"]
    assert second.json()["data"] == body["data"]
    assert gemini.calls == 1


def test_config_error_without_stale_data_is_a_bad_request() -> None:
    app, _ = build_app(ConfigError("NO_API_KEY: a Gemini API key is required"))
    with TestClient(app) as client:
        response = client.post("/api/recommendations", json=HISTORY)

    assert response.status_code == 400
    assert "NO_API_KEY" in response.json()["detail"]


def test_parse_failure_returns_empty_list() -> None:
    app, _ = build_app("Sure! Here's info... no JSON here")
    with TestClient(app) as client:
        response = client.post("/api/content/similar", json={"item": {"id": 1, "type": "movie", "title": "Heat"}})

    assert response.status_code == 200
    assert response.json()["data"] == []
    assert "error" not in response.json()


def test_invalid_payload_is_rejected() -> None:
    app, gemini = build_app()
    with TestClient(app) as client:
        response = client.post("/api/content/analysis", json={"item": {"type": "movie"}})
        not_object = client.post("/api/chat", json=["hello"])

    assert response.status_code == 400
    assert not_object.status_code == 400
    assert gemini.calls == 0


def test_chat_endpoint_returns_text_and_items() -> None:
    app, _ = build_app('Watch Heat.\n[{"title": "Heat", "year": "1995", "type": "movie"}]')
    with TestClient(app) as client:
        response = client.post(
            "/api/chat", json={"messages": [{"role": "user", "content": "Heist films?"}]}
        )

    data = response.json()["data"]
    assert data["text"] == "Watch Heat."
    assert data["items"][0]["title"] == "Heat"


def test_lifecycle_transitions_start_sessions() -> None:
    app, _ = build_app()
    with TestClient(app) as client:
        background = client.post("/api/lifecycle", json={"state": "background"})
        active = client.post("/api/lifecycle", json={"state": "active"})
        invalid = client.post("/api/lifecycle", json={"state": "asleep"})

    assert background.json()["newSession"] is False
    assert active.json() == {"state": "active", "newSession": True, "session": 2}
    assert invalid.status_code == 400


def test_dispose_endpoint() -> None:
    app, _ = build_app()
    with TestClient(app) as client:
        ok = client.post("/api/features/chat/dispose")
        missing = client.post("/api/features/unknown/dispose")

    assert ok.json() == {"feature": "chat", "disposed": True}
    assert missing.status_code == 404
    assert app.state.personalization.get("chat").disposed is True
