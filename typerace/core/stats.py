from __future__ import annotations

import json
import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, asdict, fields
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

from typerace.core.metrics import round_half_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionRecord:
    """One successful practice run, as persisted."""

    wpm: int
    accuracy: int
    correct_chars: int
    incorrect_chars: int
    total_chars: int
    duration_seconds: int
    topic: str
    difficulty: str
    score: int
    completed_at: str

    def completed_datetime(self) -> datetime:
        return _parse_timestamp(self.completed_at)


@dataclass(frozen=True)
class StatsSummary:
    total_sessions: int = 0
    avg_wpm: int = 0
    best_wpm: int = 0
    avg_accuracy: int = 0
    total_seconds: int = 0
    total_chars: int = 0
    improvement: int = 0


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class StatsStore:
    """Practice history. Persists to disk across app restarts.
    File: ~/.typerace/stats.json unless another path is given."""

    def __init__(self, file_path: Optional[Path] = None) -> None:
        self._file_path = Path(file_path) if file_path is not None else Path.home() / ".typerace" / "stats.json"
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        self._records = self._load()

    def add(self, record: SessionRecord) -> None:
        self._records.append(record)
        self._save()

    def records(
        self,
        days: Optional[int] = None,
        topic: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[SessionRecord]:
        """Records oldest first, optionally limited to the last ``days`` and one topic."""
        result = sorted(self._records, key=lambda r: r.completed_datetime())
        if days is not None:
            cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
            result = [r for r in result if r.completed_datetime() >= cutoff]
        if topic is not None:
            result = [r for r in result if r.topic == topic]
        return result

    def summary(self, days: Optional[int] = None, now: Optional[datetime] = None) -> StatsSummary:
        data = self.records(days=days, now=now)
        if not data:
            return StatsSummary()

        wpms = [r.wpm for r in data]
        improvement = 0
        midpoint = len(data) // 2
        if midpoint > 0:
            first = _mean(wpms[:midpoint])
            second = _mean(wpms[midpoint:])
            if first > 0:
                improvement = round_half_up((second - first) / first * 100)

        return StatsSummary(
            total_sessions=len(data),
            avg_wpm=round_half_up(_mean(wpms)),
            best_wpm=max(wpms),
            avg_accuracy=round_half_up(_mean([r.accuracy for r in data])),
            total_seconds=sum(r.duration_seconds for r in data),
            total_chars=sum(r.total_chars for r in data),
            improvement=improvement,
        )

    def daily_averages(self, days: Optional[int] = None, now: Optional[datetime] = None) -> Dict[str, Dict[str, int]]:
        """Average wpm and accuracy per calendar day (UTC), keyed by ISO date."""
        buckets: Dict[str, List[SessionRecord]] = defaultdict(list)
        for record in self.records(days=days, now=now):
            buckets[record.completed_datetime().date().isoformat()].append(record)
        return {
            day: {
                "wpm": round_half_up(_mean([r.wpm for r in items])),
                "accuracy": round_half_up(_mean([r.accuracy for r in items])),
            }
            for day, items in buckets.items()
        }

    def topic_distribution(self) -> Dict[str, int]:
        return dict(Counter(r.topic for r in self._records))

    def leaderboard(
        self,
        limit: int = 50,
        period: Optional[int] = None,
        topic: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[SessionRecord]:
        """Fastest runs first; ``period`` is a look-back window in days."""
        data = self.records(days=period, topic=topic, now=now)
        return sorted(data, key=lambda r: (-r.wpm, -r.accuracy))[:limit]

    def reset(self) -> None:
        self._records = []
        self._save()

    def _load(self) -> List[SessionRecord]:
        if not self._file_path.exists():
            return []
        try:
            payload = json.loads(self._file_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not load stats from %s: %s", self._file_path, e)
            return []

        names = {f.name for f in fields(SessionRecord)}
        records: List[SessionRecord] = []
        for item in payload.get("sessions", []) if isinstance(payload, dict) else []:
            if not isinstance(item, dict) or not names.issubset(item):
                logger.warning("Skipping malformed stats entry: %r", item)
                continue
            try:
                record = SessionRecord(**{name: item[name] for name in names})
                record.completed_datetime()
            except (TypeError, ValueError) as e:
                logger.warning("Skipping malformed stats entry: %s", e)
                continue
            records.append(record)
        return records

    def _save(self) -> None:
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"sessions": [asdict(r) for r in self._records]}
        try:
            self._file_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not save stats to %s: %s", self._file_path, e)
