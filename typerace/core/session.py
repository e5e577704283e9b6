from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from typerace.core import metrics
from typerace.core.difficulty import Difficulty
from typerace.core.metrics import TypingMetrics
from typerace.core.stats import SessionRecord
from typerace.race.errors import ValidationError

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    IDLE = "idle"
    TYPING = "typing"
    COMPLETED = "completed"
    FAILED = "failed"


class SinglePlayerSession:
    """Solo practice against one passage.

    The timer starts on the first keystroke rather than when the session is
    created. Once the whole passage is typed, or the time limit runs out,
    input is frozen and the run is judged against the difficulty's accuracy
    threshold. Only successful runs are handed to ``on_complete``.

    ``time_limit`` overrides the difficulty's default limit in seconds;
    ``0`` means unlimited and ``None`` keeps the difficulty's default.
    """

    def __init__(
        self,
        text: str,
        difficulty: Difficulty = Difficulty.BEGINNER,
        topic: str = "",
        time_limit: Optional[float] = None,
        on_complete: Optional[Callable[[SessionRecord], None]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not text:
            raise ValidationError("Practice text must not be empty")
        self._text = text
        self._difficulty = difficulty
        self._profile = difficulty.profile
        self._topic = topic
        limit = self._profile.time_limit if time_limit is None else time_limit
        self._time_limit: Optional[float] = limit or None
        self._on_complete = on_complete
        self._clock = clock
        self.reset()

    @property
    def text(self) -> str:
        return self._text

    @property
    def user_input(self) -> str:
        return self._user_input

    @property
    def started_at(self) -> Optional[float]:
        """Clock time of the first keystroke, or None before typing starts."""
        return self._started_at

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def metrics(self) -> TypingMetrics:
        return self._metrics

    @property
    def record(self) -> Optional[SessionRecord]:
        """The persisted record of a successful run."""
        return self._record

    @property
    def time_limit(self) -> Optional[float]:
        return self._time_limit

    def is_finished(self) -> bool:
        return self._status in (SessionStatus.COMPLETED, SessionStatus.FAILED)

    def reset(self) -> None:
        self._user_input = ""
        self._started_at: Optional[float] = None
        self._finished_at: Optional[float] = None
        self._status = SessionStatus.IDLE
        self._metrics = TypingMetrics()
        self._record: Optional[SessionRecord] = None

    def type(self, user_input: str) -> TypingMetrics:
        """Replace the typed text with ``user_input`` and return fresh metrics."""
        if self.is_finished():
            return self._metrics
        # over-typing is clipped rather than rejected outright
        user_input = user_input[: len(self._text)]
        now = self._clock()
        if self._started_at is not None and self._time_limit is not None:
            if now - self._started_at >= self._time_limit:
                self.tick()
                return self._metrics
        if self._started_at is None:
            if not user_input:
                return self._metrics
            self._started_at = now
            self._status = SessionStatus.TYPING

        self._user_input = user_input
        self._metrics = metrics.compute(user_input, self._text, self._elapsed_ms(now))
        if len(user_input) == len(self._text):
            self._finish(now)
        return self._metrics

    def remaining_seconds(self) -> Optional[float]:
        """Seconds left on the time limit, or None when there is no limit."""
        if self._time_limit is None:
            return None
        if self._started_at is None:
            return float(self._time_limit)
        end = self._finished_at if self._finished_at is not None else self._clock()
        return max(0.0, self._time_limit - (end - self._started_at))

    def tick(self) -> None:
        """Force completion once the time limit has run out."""
        if self.is_finished() or self._started_at is None or self._time_limit is None:
            return
        now = self._clock()
        if now - self._started_at < self._time_limit:
            return
        end = self._started_at + self._time_limit
        logger.debug("Time limit of %ss reached", self._time_limit)
        self._metrics = metrics.compute(self._user_input, self._text, self._elapsed_ms(end))
        self._finish(end)

    def _elapsed_ms(self, now: float) -> float:
        if self._started_at is None:
            return 0.0
        return (now - self._started_at) * 1000.0

    def _finish(self, now: float) -> None:
        self._finished_at = now
        threshold = self._profile.accuracy_threshold
        if threshold > 0 and self._metrics.accuracy < threshold:
            self._status = SessionStatus.FAILED
            logger.info(
                "Practice failed: accuracy %s%% below the %s%% required for %s",
                self._metrics.accuracy,
                threshold,
                self._difficulty.value,
            )
            return

        self._status = SessionStatus.COMPLETED
        m = self._metrics
        self._record = SessionRecord(
            wpm=m.wpm,
            accuracy=m.accuracy,
            correct_chars=m.correct,
            incorrect_chars=m.incorrect,
            total_chars=m.total,
            duration_seconds=metrics.round_half_up(now - (self._started_at or now)),
            topic=self._topic,
            difficulty=self._difficulty.value,
            score=metrics.score(m.wpm, self._profile),
            completed_at=datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
        )
        logger.info("Practice completed: %s wpm, %s%% accuracy", m.wpm, m.accuracy)
        if self._on_complete is not None:
            self._on_complete(self._record)
