"""Session throttle tests."""

from __future__ import annotations

from datetime import datetime, timedelta

from app.services.session_gate import SessionGate


def test_allows_exactly_once_per_session() -> None:
    gate = SessionGate()

    assert gate.allow_remote_call("recommendations:default", True) is True
    gate.mark_called("recommendations:default")

    assert gate.allow_remote_call("recommendations:default", True) is False


def test_unchanged_fingerprint_never_allows() -> None:
    gate = SessionGate()

    assert gate.allow_remote_call("insights:default", False) is False


def test_flags_are_per_feature() -> None:
    gate = SessionGate()
    gate.mark_called("analysis:movie:1")

    assert gate.allow_remote_call("analysis:movie:2", True) is True


def test_reset_single_feature_keeps_session() -> None:
    gate = SessionGate()
    gate.mark_called("a")
    gate.mark_called("b")

    gate.reset("a")

    assert gate.is_called("a") is False
    assert gate.is_called("b") is True
    assert gate.session_number == 1


def test_foreground_after_background_starts_new_session() -> None:
    moments = iter(
        [datetime(2024, 1, 1, 12), datetime(2024, 1, 1, 12) + timedelta(hours=2)]
    )
    gate = SessionGate(clock=lambda: next(moments))
    gate.mark_called("recommendations:default")

    assert gate.handle_lifecycle("background") is False
    assert gate.is_called("recommendations:default") is True

    assert gate.handle_lifecycle("active") is True
    assert gate.is_called("recommendations:default") is False
    assert gate.session_number == 2
    assert gate.session_started_at == datetime(2024, 1, 1, 14)


def test_active_to_active_is_not_a_new_session() -> None:
    gate = SessionGate()
    gate.mark_called("chat")

    assert gate.handle_lifecycle("active") is False
    assert gate.is_called("chat") is True
