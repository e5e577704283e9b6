from __future__ import annotations

from typing import Iterable

from typerace.core.settings import RaceSettings
from typerace.race.errors import IllegalTransition, NotEnoughPlayers, NotHost
from typerace.race.models import Participant, Race, RaceStatus, Row, to_timestamp

MIN_PLAYERS = 2


class RaceStateMachine:
    """Legal moves between race phases.

    ``waiting -> countdown -> in_progress -> completed``, never backwards.
    The only skip is abandonment of a race nobody started, which goes from
    waiting straight to completed. Each transition validates the race and
    returns the partial row to write to the service; it does not mutate
    anything.
    """

    def __init__(self, settings: RaceSettings) -> None:
        self._settings = settings

    def begin_countdown(self, race: Race, actor_id: str, participant_count: int, now: float) -> Row:
        self._require(race, RaceStatus.WAITING, RaceStatus.COUNTDOWN)
        if actor_id != race.host_id:
            raise NotHost(f"Only the host can start race {race.id}")
        if participant_count < MIN_PLAYERS:
            raise NotEnoughPlayers(
                f"Race {race.id} needs at least {MIN_PLAYERS} players, has {participant_count}"
            )
        return {"status": RaceStatus.COUNTDOWN.value, "countdown_at": to_timestamp(now)}

    def countdown_remaining(self, race: Race, now: float) -> float:
        """Seconds left before the race may start; 0 once the countdown is over."""
        if race.status is not RaceStatus.COUNTDOWN or race.countdown_at is None:
            return 0.0
        return max(0.0, self._settings.countdown_seconds - (now - race.countdown_at))

    def can_begin_race(self, race: Race, now: float, by_host: bool = True) -> bool:
        """The host may start once the countdown is over; anyone else after a further grace."""
        if race.status is not RaceStatus.COUNTDOWN or race.countdown_at is None:
            return False
        wait = self._settings.countdown_seconds
        if not by_host:
            wait += self._settings.start_grace_seconds
        return now - race.countdown_at >= wait

    def begin_race(self, race: Race, now: float, by_host: bool = True) -> Row:
        self._require(race, RaceStatus.COUNTDOWN, RaceStatus.IN_PROGRESS)
        if not self.can_begin_race(race, now, by_host):
            raise IllegalTransition(f"Countdown for race {race.id} has not finished")
        return {"status": RaceStatus.IN_PROGRESS.value, "started_at": to_timestamp(now)}

    def should_complete(self, race: Race, participants: Iterable[Participant]) -> bool:
        participants = list(participants)
        return (
            race.status is RaceStatus.IN_PROGRESS
            and bool(participants)
            and all(p.is_finished for p in participants)
        )

    def is_abandoned(self, race: Race, now: float) -> bool:
        """A race running too long since its start, or waiting too long since its creation."""
        limit = self._settings.abandon_after_seconds
        if race.status is RaceStatus.IN_PROGRESS:
            return race.started_at is not None and now - race.started_at >= limit
        if race.status is RaceStatus.WAITING:
            return race.created_at is not None and now - race.created_at >= limit
        return False

    def complete(self, race: Race, participants: Iterable[Participant], now: float, abandoned: bool = False) -> Row:
        if abandoned:
            if race.status not in (RaceStatus.WAITING, RaceStatus.IN_PROGRESS):
                raise IllegalTransition(
                    f"Race {race.id} cannot be abandoned while {race.status.value}"
                )
            if not self.is_abandoned(race, now):
                raise IllegalTransition(f"Race {race.id} has not run long enough to be abandoned")
            return {
                "status": RaceStatus.COMPLETED.value,
                "finished_at": to_timestamp(now),
                "abandoned": True,
            }
        self._require(race, RaceStatus.IN_PROGRESS, RaceStatus.COMPLETED)
        if not self.should_complete(race, participants):
            raise IllegalTransition(f"Race {race.id} still has unfinished participants")
        return {"status": RaceStatus.COMPLETED.value, "finished_at": to_timestamp(now)}

    @staticmethod
    def _require(race: Race, current: RaceStatus, target: RaceStatus) -> None:
        if race.status is not current:
            raise IllegalTransition(
                f"Race {race.id} cannot move from {race.status.value} to {target.value}"
            )
