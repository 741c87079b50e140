"""Order-independent fingerprints over sets of content identities."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

FINGERPRINT_SEPARATOR = ","


class ContentHasher:
    """Turn an unordered set of ``(id, type)`` pairs into a stable string.

    Each item becomes ``"{id}-{type}"``; the parts are sorted and joined, so
    any permutation of the same items yields the same fingerprint. Items may
    be mappings or objects exposing ``id`` and ``type`` attributes.
    """

    separator = FINGERPRINT_SEPARATOR

    @classmethod
    def compute(cls, items: Iterable[Any]) -> str:
        parts = sorted(cls._identity(item) for item in items)
        return cls.separator.join(parts)

    @staticmethod
    def _identity(item: Any) -> str:
        if isinstance(item, Mapping):
            content_id = item.get("id")
            content_type = item.get("type")
        else:
            content_id = getattr(item, "id", None)
            content_type = getattr(item, "type", None)
        if content_id is None or content_type is None:
            raise ValueError("Fingerprint items require both an id and a type")
        return f"{content_id}-{content_type}"
