from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"

    @property
    def profile(self) -> DifficultyProfile:
        return PROFILES[self]

    @classmethod
    def parse(cls, value: str) -> Difficulty:
        """Look up a difficulty by its key, ignoring case and whitespace."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown difficulty: {value!r}") from None


@dataclass(frozen=True)
class DifficultyProfile:
    """Gating rules attached to a difficulty.

    ``time_limit`` is in seconds, ``None`` meaning unlimited.
    ``accuracy_threshold`` is the minimum final accuracy for a practice run
    to count as a success; 0 disables the check.
    """

    label: str
    description: str
    text_complexity: str
    time_limit: Optional[int]
    accuracy_threshold: int
    score_multiplier: float


PROFILES: Dict[Difficulty, DifficultyProfile] = {
    Difficulty.BEGINNER: DifficultyProfile(
        label="Beginner",
        description="Simple words, no time pressure, forgiving errors",
        text_complexity="simple",
        time_limit=None,
        accuracy_threshold=0,
        score_multiplier=1.0,
    ),
    Difficulty.INTERMEDIATE: DifficultyProfile(
        label="Intermediate",
        description="Mixed vocabulary, gentle time limits, moderate accuracy",
        text_complexity="moderate",
        time_limit=120,
        accuracy_threshold=70,
        score_multiplier=1.25,
    ),
    Difficulty.ADVANCED: DifficultyProfile(
        label="Advanced",
        description="Complex sentences, time pressure, high accuracy needed",
        text_complexity="complex",
        time_limit=60,
        accuracy_threshold=85,
        score_multiplier=1.5,
    ),
    Difficulty.EXPERT: DifficultyProfile(
        label="Expert",
        description="Challenging texts, tight deadlines, near-perfect accuracy",
        text_complexity="challenging",
        time_limit=30,
        accuracy_threshold=95,
        score_multiplier=2.0,
    ),
}

_missing = set(Difficulty) - set(PROFILES)
if _missing:
    raise RuntimeError(f"No profile defined for: {sorted(d.value for d in _missing)}")
