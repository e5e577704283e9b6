"""Tests for typerace.core.session – solo practice sessions."""

from __future__ import annotations

from typing import List

import pytest

from typerace.core.difficulty import Difficulty
from typerace.core.session import SessionStatus, SinglePlayerSession
from typerace.core.stats import SessionRecord


@pytest.fixture()
def saved() -> List[SessionRecord]:
    return []


def _session(clock, saved, text="abcdefghij", difficulty=Difficulty.BEGINNER, **kwargs) -> SinglePlayerSession:
    return SinglePlayerSession(
        text=text,
        difficulty=difficulty,
        topic="nature",
        on_complete=saved.append,
        clock=clock,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Starting
# ---------------------------------------------------------------------------

class TestStart:
    def test_empty_text_rejected(self, clock, saved):
        with pytest.raises(ValueError, match="empty"):
            _session(clock, saved, text="")

    def test_idle_until_first_keystroke(self, clock, saved):
        s = _session(clock, saved)
        assert s.status is SessionStatus.IDLE
        assert s.started_at is None

    def test_empty_input_does_not_start_timer(self, clock, saved):
        s = _session(clock, saved)
        s.type("")
        assert s.started_at is None

    def test_first_keystroke_latches_start(self, clock, saved):
        s = _session(clock, saved)
        clock.advance(30)
        s.type("a")
        assert s.started_at == clock.now
        assert s.status is SessionStatus.TYPING

    def test_start_is_not_moved_by_later_keystrokes(self, clock, saved):
        s = _session(clock, saved)
        s.type("a")
        start = s.started_at
        clock.advance(5)
        s.type("ab")
        assert s.started_at == start


# ---------------------------------------------------------------------------
# Typing
# ---------------------------------------------------------------------------

class TestTyping:
    def test_metrics_use_time_since_first_keystroke(self, clock, saved):
        s = _session(clock, saved, text="x" * 100)
        s.type("x")
        clock.advance(60)
        m = s.type("x" * 50)
        assert m.wpm == 10
        assert m.progress == 50

    def test_over_typing_is_clipped(self, clock, saved):
        s = _session(clock, saved, text="abc")
        s.type("abcdef")
        assert s.user_input == "abc"

    def test_backspace_is_allowed(self, clock, saved):
        s = _session(clock, saved)
        s.type("abx")
        m = s.type("ab")
        assert s.user_input == "ab"
        assert m.accuracy == 100


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------

class TestCompletion:
    def test_success_is_persisted(self, clock, saved):
        s = _session(clock, saved, text="abcde")
        s.type("a")
        clock.advance(6)
        s.type("abcde")
        assert s.status is SessionStatus.COMPLETED
        assert len(saved) == 1
        record = saved[0]
        assert record.accuracy == 100
        assert record.wpm == 10
        assert record.total_chars == 5
        assert record.duration_seconds == 6
        assert record.topic == "nature"
        assert record.difficulty == "beginner"
        assert s.record == record

    def test_input_frozen_after_completion(self, clock, saved):
        s = _session(clock, saved, text="abc")
        s.type("abc")
        s.type("ab")
        assert s.user_input == "abc"
        assert len(saved) == 1

    def test_low_accuracy_fails_above_threshold(self, clock, saved):
        # advanced needs 85 %; 8 of 10 correct is 80 %
        s = _session(clock, saved, difficulty=Difficulty.ADVANCED)
        s.type("abcdefghXX")
        assert s.status is SessionStatus.FAILED
        assert s.metrics.accuracy == 80
        assert saved == []
        assert s.record is None

    def test_exact_threshold_passes(self, clock, saved):
        s = _session(clock, saved, text="a" * 20, difficulty=Difficulty.ADVANCED)
        s.type("a" * 17 + "bbb")
        assert s.metrics.accuracy == 85
        assert s.status is SessionStatus.COMPLETED

    def test_beginner_never_fails(self, clock, saved):
        s = _session(clock, saved, text="abc")
        s.type("xyz")
        assert s.status is SessionStatus.COMPLETED
        assert saved[0].accuracy == 0

    def test_score_uses_multiplier(self, clock, saved):
        s = _session(clock, saved, text="abcde", difficulty=Difficulty.EXPERT)
        s.type("a")
        clock.advance(6)
        s.type("abcde")
        assert saved[0].score == 20

    def test_no_callback(self, clock):
        s = SinglePlayerSession("ab", clock=clock)
        s.type("ab")
        assert s.status is SessionStatus.COMPLETED
        assert s.record is not None


# ---------------------------------------------------------------------------
# Time limit
# ---------------------------------------------------------------------------

class TestTimeLimit:
    def test_default_limit_comes_from_profile(self, clock, saved):
        assert _session(clock, saved, difficulty=Difficulty.EXPERT).time_limit == 30
        assert _session(clock, saved).time_limit is None

    def test_zero_means_unlimited(self, clock, saved):
        assert _session(clock, saved, difficulty=Difficulty.EXPERT, time_limit=0).time_limit is None

    def test_remaining_before_start(self, clock, saved):
        s = _session(clock, saved, time_limit=20)
        clock.advance(100)
        assert s.remaining_seconds() == 20

    def test_tick_forces_completion(self, clock, saved):
        s = _session(clock, saved, text="x" * 100, time_limit=60)
        s.type("x" * 10)
        clock.advance(59)
        s.tick()
        assert s.status is SessionStatus.TYPING
        clock.advance(5)
        s.tick()
        assert s.status is SessionStatus.COMPLETED
        assert s.remaining_seconds() == 0
        # 10 chars over exactly the 60 s limit
        assert s.metrics.wpm == 2
        assert saved[0].duration_seconds == 60

    def test_timeout_can_fail(self, clock, saved):
        s = _session(clock, saved, text="x" * 100, difficulty=Difficulty.INTERMEDIATE, time_limit=10)
        s.type("xyyy")
        clock.advance(11)
        s.tick()
        assert s.status is SessionStatus.FAILED
        assert saved == []

    def test_typing_after_expiry_is_ignored(self, clock, saved):
        s = _session(clock, saved, text="x" * 100, time_limit=10)
        s.type("xx")
        clock.advance(15)
        s.type("xxxx")
        assert s.user_input == "xx"
        assert s.status is SessionStatus.COMPLETED

    def test_tick_without_limit_does_nothing(self, clock, saved):
        s = _session(clock, saved)
        s.type("a")
        clock.advance(10_000)
        s.tick()
        assert s.status is SessionStatus.TYPING


# ---------------------------------------------------------------------------
# Reset
# ---------------------------------------------------------------------------

class TestReset:
    def test_reset(self, clock, saved):
        s = _session(clock, saved, text="abc")
        s.type("abc")
        s.reset()
        assert s.status is SessionStatus.IDLE
        assert s.user_input == ""
        assert s.started_at is None
        assert s.record is None
