"""Typing metrics shared by solo practice and races.

All values are integers so that every client computes exactly the same
numbers for the same keystrokes:

  * **progress** – share of the target typed so far, correct or not.
  * **accuracy** – share of typed characters matching the target at the
    same position; 100 before anything is typed.
  * **WPM** – (typed characters / 5) / elapsed minutes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from typerace.race.errors import ValidationError

if TYPE_CHECKING:
    from typerace.core.difficulty import DifficultyProfile

CHARS_PER_WORD = 5


@dataclass(frozen=True)
class TypingMetrics:
    """Snapshot of the metrics for one typed prefix."""

    progress: int = 0
    correct: int = 0
    incorrect: int = 0
    accuracy: int = 100
    wpm: int = 0

    @property
    def total(self) -> int:
        return self.correct + self.incorrect


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values, like ``Math.round``."""
    return int(math.floor(value + 0.5))


def count_correct(typed: str, target: str) -> int:
    return sum(1 for a, b in zip(typed, target) if a == b)


def compute(typed: str, target: str, elapsed_ms: float) -> TypingMetrics:
    """Compute metrics for ``typed`` against ``target`` after ``elapsed_ms``.

    Raises ValidationError when ``typed`` is longer than ``target``; callers
    clip input before getting here.
    """
    if len(typed) > len(target):
        raise ValidationError(
            f"typed text is longer than the target ({len(typed)} > {len(target)})"
        )
    typed_len = len(typed)
    correct = count_correct(typed, target)

    if target:
        progress = max(0, min(100, round_half_up(typed_len / len(target) * 100)))
    else:
        progress = 0

    accuracy = round_half_up(correct / typed_len * 100) if typed_len else 100

    if elapsed_ms <= 0:
        wpm = 0
    else:
        wpm = round_half_up((typed_len / CHARS_PER_WORD) / (elapsed_ms / 60000.0))

    return TypingMetrics(
        progress=progress,
        correct=correct,
        incorrect=typed_len - correct,
        accuracy=accuracy,
        wpm=wpm,
    )


def score(wpm: int, profile: DifficultyProfile) -> int:
    """Difficulty-weighted score used to rank practice records."""
    return round_half_up(wpm * profile.score_multiplier)
