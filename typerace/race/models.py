"""Race and participant records, plus their row form on the wire.

Timestamps are epoch seconds in memory and ISO-8601 UTC strings in rows.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

RACES = "typing_races"
PARTICIPANTS = "race_participants"

Row = Dict[str, Any]


class RaceStatus(str, Enum):
    WAITING = "waiting"
    COUNTDOWN = "countdown"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    def is_before(self, other: RaceStatus) -> bool:
        return self.rank < other.rank


_STATUS_ORDER = [
    RaceStatus.WAITING,
    RaceStatus.COUNTDOWN,
    RaceStatus.IN_PROGRESS,
    RaceStatus.COMPLETED,
]


def to_timestamp(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


def from_timestamp(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


@dataclass(frozen=True)
class Race:
    id: str
    host_id: str
    join_code: str
    text: str
    status: RaceStatus = RaceStatus.WAITING
    topic: str = ""
    difficulty: str = "intermediate"
    max_players: int = 4
    created_at: Optional[float] = None
    countdown_at: Optional[float] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    abandoned: bool = False

    def with_fields(self, **changes: Any) -> Race:
        return replace(self, **changes)

    def to_row(self) -> Row:
        return {
            "id": self.id,
            "host_user_id": self.host_id,
            "join_code": self.join_code,
            "status": self.status.value,
            "race_text": self.text,
            "text_topic": self.topic,
            "difficulty": self.difficulty,
            "max_players": self.max_players,
            "created_at": to_timestamp(self.created_at),
            "countdown_at": to_timestamp(self.countdown_at),
            "started_at": to_timestamp(self.started_at),
            "finished_at": to_timestamp(self.finished_at),
            "abandoned": self.abandoned,
        }

    @classmethod
    def from_row(cls, row: Row) -> Race:
        return cls(
            id=row["id"],
            host_id=row["host_user_id"],
            join_code=row["join_code"],
            text=row["race_text"],
            status=RaceStatus(row.get("status", RaceStatus.WAITING.value)),
            topic=row.get("text_topic", ""),
            difficulty=row.get("difficulty", "intermediate"),
            max_players=int(row.get("max_players", 4)),
            created_at=from_timestamp(row.get("created_at")),
            countdown_at=from_timestamp(row.get("countdown_at")),
            started_at=from_timestamp(row.get("started_at")),
            finished_at=from_timestamp(row.get("finished_at")),
            abandoned=bool(row.get("abandoned", False)),
        )


@dataclass(frozen=True)
class Participant:
    id: str
    race_id: str
    user_id: str
    display_name: str
    progress: int = 0
    wpm: int = 0
    accuracy: int = 100
    finished_at: Optional[float] = None
    position: Optional[int] = None
    joined_at: Optional[float] = None

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None

    def with_fields(self, **changes: Any) -> Participant:
        return replace(self, **changes)

    def to_row(self) -> Row:
        return {
            "id": self.id,
            "race_id": self.race_id,
            "user_id": self.user_id,
            "display_name": self.display_name,
            "progress": self.progress,
            "wpm": self.wpm,
            "accuracy": self.accuracy,
            "finished_at": to_timestamp(self.finished_at),
            "position": self.position,
            "joined_at": to_timestamp(self.joined_at),
        }

    @classmethod
    def from_row(cls, row: Row) -> Participant:
        position = row.get("position")
        return cls(
            id=row["id"],
            race_id=row["race_id"],
            user_id=row["user_id"],
            display_name=row.get("display_name", ""),
            progress=int(row.get("progress", 0)),
            wpm=int(row.get("wpm", 0)),
            accuracy=int(row.get("accuracy", 100)),
            finished_at=from_timestamp(row.get("finished_at")),
            position=int(position) if position is not None else None,
            joined_at=from_timestamp(row.get("joined_at")),
        )
