"""Failure taxonomy shared by the personalization layer."""

from __future__ import annotations


class PersonalizationError(Exception):
    """Base class for every failure raised by the personalization layer."""


class ConfigError(PersonalizationError):
    """The generation endpoint cannot be called with the current settings."""


class TransientNetworkError(PersonalizationError):
    """A server-side or network failure that is worth retrying."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ClientError(PersonalizationError):
    """The endpoint rejected the request; retrying would not help."""

    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class ParseError(PersonalizationError):
    """The model answered but no usable JSON could be extracted."""


class EnrichmentMiss(PersonalizationError):
    """No search candidate matched an AI-suggested title."""

    def __init__(self, title: str, content_type: str) -> None:
        super().__init__(f"No {content_type} match for {title!r}")
        self.title = title
        self.content_type = content_type
