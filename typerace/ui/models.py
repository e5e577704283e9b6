"""Read-only projections handed to the display layer."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from typerace.core.metrics import TypingMetrics
from typerace.race.coordinator import RaceCoordinator
from typerace.race.models import RaceStatus


@dataclass(frozen=True)
class ParticipantView:
    """One row of the live standings."""

    user_id: str
    display_name: str
    progress: int
    wpm: int
    accuracy: int
    position: Optional[int]
    is_host: bool = False
    is_me: bool = False


@dataclass(frozen=True)
class MyMetricsView:
    """The local typist's own numbers plus what the text area needs."""

    metrics: TypingMetrics
    typed: str
    finished: bool
    position: Optional[int]


@dataclass(frozen=True)
class RaceView:
    race_id: str
    join_code: str
    status: RaceStatus
    text: str
    max_players: int
    countdown_remaining: int
    participants: Tuple[ParticipantView, ...]
    me: MyMetricsView
    is_host: bool

    @property
    def can_start(self) -> bool:
        return self.is_host and self.status is RaceStatus.WAITING and len(self.participants) >= 2


def character_states(text: str, typed: str) -> List[str]:
    """Per-character ``correct`` / ``incorrect`` / ``pending`` marks for ``text``."""
    states = []
    for index, expected in enumerate(text):
        if index >= len(typed):
            states.append("pending")
        elif typed[index] == expected:
            states.append("correct")
        else:
            states.append("incorrect")
    return states


def project(coordinator: RaceCoordinator) -> Optional[RaceView]:
    """Snapshot the coordinator's race for rendering, or None outside a race."""
    race = coordinator.race
    if race is None:
        return None
    participants = tuple(
        ParticipantView(
            user_id=p.user_id,
            display_name=p.display_name,
            progress=p.progress,
            wpm=p.wpm,
            accuracy=p.accuracy,
            position=p.position,
            is_host=p.user_id == race.host_id,
            is_me=p.user_id == coordinator.user_id,
        )
        for p in coordinator.standings()
    )
    me = coordinator.me
    return RaceView(
        race_id=race.id,
        join_code=race.join_code,
        status=race.status,
        text=race.text,
        max_players=race.max_players,
        countdown_remaining=math.ceil(coordinator.countdown_remaining()),
        participants=participants,
        me=MyMetricsView(
            metrics=coordinator.my_metrics(),
            typed=coordinator.user_input,
            finished=me is not None and me.is_finished,
            position=me.position if me is not None else None,
        ),
        is_host=coordinator.is_host,
    )
