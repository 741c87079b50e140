"""Utility helpers for the Theater AI personalization service."""

from __future__ import annotations

import json
import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Generic, Literal, TypeVar, Union

from .errors import ParseError

T = TypeVar("T")

JSON_BLOCK_RE = re.compile(r"```(?:json)?\s*([\[{].*?[\]}])\s*```", re.DOTALL)
NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
INLINE_ARRAY_RE = re.compile(r"\[.*?\]", re.DOTALL)

_BRACKETS = {"object": ("{", "}"), "array": ("[", "]")}


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True, slots=True)
class Err:
    error: ParseError


JsonResult = Union[Ok[Any], Err]


def normalize_title(value: str | None) -> str:
    """Fold a title for comparison: lowercase, no diacritics, single spaces."""

    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return NON_ALNUM_RE.sub(" ", stripped.lower()).strip()


def _outer_span(content: str, opening: str, closing: str) -> str | None:
    start = content.find(opening)
    end = content.rfind(closing)
    if start == -1 or end <= start:
        return None
    return content[start : end + 1]


def extract_json(
    content: str | None,
    *,
    expect: Literal["object", "array"] | None = None,
) -> JsonResult:
    """Pull a JSON payload out of free-form model output.

    Fenced ``json`` blocks win, then the outermost ``{...}`` or ``[...]`` span
    (whichever opens first unless ``expect`` pins one kind), and finally the
    whole body. Never raises: failures come back as ``Err(ParseError)``.
    """

    if not content or not content.strip():
        return Err(ParseError("Model returned no text"))

    candidates: list[str] = []
    fenced = JSON_BLOCK_RE.search(content)
    if fenced:
        candidates.append(fenced.group(1))

    kinds = [expect] if expect else sorted(
        _BRACKETS, key=lambda kind: _first_index(content, _BRACKETS[kind][0])
    )
    for kind in kinds:
        span = _outer_span(content, *_BRACKETS[kind])
        if span is not None:
            candidates.append(span)
    candidates.append(content.strip())

    for payload in candidates:
        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError:
            continue
        if expect == "object" and not isinstance(parsed, dict):
            continue
        if expect == "array" and not isinstance(parsed, list):
            continue
        return Ok(parsed)
    return Err(ParseError("No JSON payload found in model response"))


def split_inline_array(content: str) -> tuple[str, JsonResult]:
    """Separate chat prose from the first ``[...]`` block it carries.

    Returns the prose with that block removed and the parsed block, or an
    ``Err`` when the reply has no parseable array.
    """

    match = INLINE_ARRAY_RE.search(content)
    if match is None:
        return content.strip(), Err(ParseError("Reply carries no title array"))
    prose = (content[: match.start()] + content[match.end() :]).strip()
    return prose, extract_json(match.group(0), expect="array")


def parse_year(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 1800 <= value <= 2200 else None
    if not value:
        return None
    match = re.search(r"(18|19|20|21)\d{2}", str(value))
    if not match:
        return None
    return int(match.group(0))


def _first_index(content: str, token: str) -> int:
    index = content.find(token)
    return index if index != -1 else len(content)
