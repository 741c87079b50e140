"""Per-feature throttle bounding remote generation calls to one per session."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Literal

logger = logging.getLogger(__name__)

LifecycleState = Literal["active", "inactive", "background"]

_DORMANT_STATES = frozenset({"inactive", "background"})


class SessionGate:
    """Session-scoped flags deciding whether a feature may call the model.

    A session is one continuous foreground lifetime of the client. Flags
    start cleared; ``mark_called`` sets one after a remote call has been
    allowed, and a background to foreground transition clears them all.
    The check-then-set pair is not atomic; callers are single-flight per
    feature.
    """

    def __init__(self, *, clock: Callable[[], datetime] = datetime.utcnow) -> None:
        self._clock = clock
        self._called: dict[str, bool] = {}
        self._lifecycle: LifecycleState = "active"
        self._session_started_at = clock()
        self._session_number = 1

    @property
    def session_started_at(self) -> datetime:
        return self._session_started_at

    @property
    def session_number(self) -> int:
        return self._session_number

    @property
    def lifecycle_state(self) -> LifecycleState:
        return self._lifecycle

    def allow_remote_call(self, feature: str, fingerprint_changed: bool) -> bool:
        """Return ``True`` when the input changed and the feature is unused."""

        if not fingerprint_changed:
            return False
        return not self._called.get(feature, False)

    def mark_called(self, feature: str) -> None:
        self._called[feature] = True

    def is_called(self, feature: str) -> bool:
        return self._called.get(feature, False)

    def reset(self, feature: str | None = None) -> None:
        """Clear one feature's flag, or every flag and start a new session."""

        if feature is not None:
            self._called.pop(feature, None)
            return
        self._called.clear()
        self._session_started_at = self._clock()
        self._session_number += 1
        logger.info("Started personalization session %s", self._session_number)

    def handle_lifecycle(self, state: LifecycleState) -> bool:
        """Consume an app lifecycle transition.

        Returns ``True`` when the transition began a new session.
        """

        previous = self._lifecycle
        self._lifecycle = state
        if state == "active" and previous in _DORMANT_STATES:
            self.reset()
            return True
        return False
