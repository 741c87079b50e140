"""Configuration settings behaviour tests."""

from __future__ import annotations

import asyncio

import pytest

from app.config import DEFAULT_MODEL, EnvironmentSettingsProvider, Settings


def test_defaults_match_documented_values() -> None:
    """Unset variables should fall back to the documented defaults."""

    settings = Settings(_env_file=None)

    assert settings.gemini_model == DEFAULT_MODEL
    assert settings.generation_max_retries == 4
    assert settings.generation_backoff_seconds == pytest.approx(0.6)
    assert settings.generation_jitter_seconds == pytest.approx(0.25)
    assert settings.cache_capacity == 100
    assert settings.personalization_ttl_seconds == 180 * 86_400
    assert settings.enrichment_concurrency == 1


def test_blank_api_keys_are_treated_as_missing() -> None:
    """Whitespace-only keys should not count as configured credentials."""

    settings = Settings(_env_file=None, GEMINI_API_KEY="   ", TMDB_API_KEY="")

    assert settings.gemini_api_key is None
    assert settings.tmdb_api_key is None


def test_enrichment_concurrency_is_bounded() -> None:
    """Concurrency above the supported cap should be rejected."""

    with pytest.raises(ValueError):
        Settings(_env_file=None, ENRICHMENT_CONCURRENCY=8)


def test_environment_provider_exposes_model_and_key() -> None:
    """The provider should hand out a read-only view of the AI settings."""

    settings = Settings(_env_file=None, GEMINI_API_KEY="secret", GEMINI_MODEL="gemini-x")
    provider = EnvironmentSettingsProvider(settings)

    resolved = asyncio.run(provider.get_settings())

    assert resolved.model == "gemini-x"
    assert resolved.api_key == "secret"
    with pytest.raises(ValueError):
        resolved.api_key = "other"  # type: ignore[misc]
