"""Client-side orchestration of a multiplayer race.

One :class:`RaceCoordinator` runs per client. It turns the local user's
intents and keystrokes into writes against the shared service, and folds the
service's change feed back into a local :class:`RaceState`. Clients never
talk to each other directly.

Finishing positions come from one of two policies (``RaceSettings.position_policy``):

``arbiter``
    The service numbers finishers in the order it records their finish
    writes. Two typists finishing at nearly the same moment are ranked by
    which write the service recorded first, not by their local clocks, and
    every peer sees the same positions whatever order the notifications
    arrive in.

``local``
    Each client takes ``finished participants it has seen + 1``. Cheap, but
    concurrent finishers can end up sharing a position; the local state
    reports that through :meth:`RaceState.check_invariants`.
"""

from __future__ import annotations

import logging
import random
import re
import string
import time
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional

from typerace.core import metrics
from typerace.core.metrics import TypingMetrics
from typerace.core.settings import RaceSettings
from typerace.race.backend import ChangeEvent, RaceBackend, Subscription
from typerace.race.errors import (
    AlreadyJoined,
    DuplicateKey,
    IllegalTransition,
    RaceFull,
    RaceNotJoinable,
    StateConflict,
    TransportFailure,
    ValidationError,
)
from typerace.race.models import (
    PARTICIPANTS,
    RACES,
    Participant,
    Race,
    RaceStatus,
    to_timestamp,
)
from typerace.race.state import RaceState
from typerace.race.state_machine import MIN_PLAYERS, RaceStateMachine

logger = logging.getLogger(__name__)

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_join_code(length: int = 6, rng: Optional[random.Random] = None) -> str:
    rng = rng or random.Random()
    return "".join(rng.choice(JOIN_CODE_ALPHABET) for _ in range(length))


def normalize_join_code(code: str, length: int = 6) -> str:
    """Upper-case and validate a join code typed by a user."""
    normalized = (code or "").strip().upper()
    if not re.fullmatch(rf"[A-Z0-9]{{{length}}}", normalized):
        raise ValidationError(f"Join code must be {length} letters or digits, got {code!r}")
    return normalized


@dataclass(frozen=True)
class InputResult:
    """Outcome of one keystroke event."""

    accepted: bool
    metrics: TypingMetrics
    synced: bool = True
    finished: bool = False
    position: Optional[int] = None


class RaceCoordinator:
    def __init__(
        self,
        backend: RaceBackend,
        user_id: str,
        settings: Optional[RaceSettings] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._backend = backend
        self._user_id = user_id
        self._settings = settings or RaceSettings()
        self._clock = clock
        self._rng = rng or random.Random()
        self._machine = RaceStateMachine(self._settings)
        self._state: Optional[RaceState] = None
        self._subscription: Optional[Subscription] = None
        self._reset_typing()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def state(self) -> Optional[RaceState]:
        return self._state

    @property
    def race(self) -> Optional[Race]:
        return self._state.race if self._state is not None else None

    @property
    def me(self) -> Optional[Participant]:
        return self._state.participant_for(self._user_id) if self._state is not None else None

    @property
    def is_host(self) -> bool:
        race = self.race
        return race is not None and race.host_id == self._user_id

    @property
    def user_input(self) -> str:
        return self._input

    def standings(self) -> List[Participant]:
        return self._state.standings() if self._state is not None else []

    def my_metrics(self) -> TypingMetrics:
        return self._metrics

    def countdown_remaining(self) -> float:
        race = self.race
        if race is None:
            return 0.0
        return self._machine.countdown_remaining(race, self._clock())

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def create(
        self,
        text: str,
        max_players: Optional[int] = None,
        topic: str = "",
        difficulty: str = "intermediate",
        display_name: str = "Player",
    ) -> Race:
        """Open a new race hosted by the local user, who joins it straight away."""
        if not text:
            raise ValidationError("Race text must not be empty")
        max_players = max_players if max_players is not None else self._settings.default_max_players
        if max_players < MIN_PLAYERS:
            raise ValidationError(f"A race needs room for at least {MIN_PLAYERS} players")
        self.leave()

        now = self._clock()
        race_row = None
        for attempt in range(1, self._settings.join_code_attempts + 1):
            race = Race(
                id=uuid.uuid4().hex,
                host_id=self._user_id,
                join_code=generate_join_code(self._settings.join_code_length, self._rng),
                text=text,
                topic=topic,
                difficulty=difficulty,
                max_players=max_players,
                created_at=now,
            )
            try:
                race_row = self._backend.insert(RACES, race.to_row())
                break
            except DuplicateKey as e:
                if e.key != "join_code":
                    raise
                logger.info("Join code %s already in use (attempt %s)", race.join_code, attempt)
        if race_row is None:
            raise TransportFailure(
                f"Could not find a free join code after {self._settings.join_code_attempts} attempts"
            )

        race = Race.from_row(race_row)
        self._enter(race)
        participant = Participant(
            id=uuid.uuid4().hex,
            race_id=race.id,
            user_id=self._user_id,
            display_name=display_name,
            joined_at=now,
        )
        try:
            row = self._backend.insert(PARTICIPANTS, participant.to_row())
        except TransportFailure:
            self.leave()
            raise
        self._state.set_participant(Participant.from_row(row))
        logger.info("Race %s created by %s with code %s", race.id, self._user_id, race.join_code)
        return race

    def join(self, join_code: str, display_name: str = "Player") -> Participant:
        """Join the waiting race that owns ``join_code``."""
        code = normalize_join_code(join_code, self._settings.join_code_length)
        candidates = [
            Race.from_row(row)
            for row in self._backend.select(RACES, join_code=code)
            if row.get("status") != RaceStatus.COMPLETED.value
        ]
        if not candidates:
            raise RaceNotJoinable(f"No open race with code {code}")
        return self.join_race(candidates[0], display_name)

    def join_race(self, race: Race, display_name: str = "Player") -> Participant:
        if race.status is not RaceStatus.WAITING:
            raise RaceNotJoinable(f"Race {race.id} is {race.status.value}, not waiting for players")
        self.leave()
        self._enter(race)
        try:
            rows = self._backend.select(PARTICIPANTS, race_id=race.id)
            if any(row["user_id"] == self._user_id for row in rows):
                raise AlreadyJoined(f"{self._user_id} is already in race {race.id}")
            if len(rows) >= race.max_players:
                raise RaceFull(f"Race {race.id} already has {race.max_players} players")
            participant = Participant(
                id=uuid.uuid4().hex,
                race_id=race.id,
                user_id=self._user_id,
                display_name=display_name,
                joined_at=self._clock(),
            )
            try:
                row = self._backend.insert(PARTICIPANTS, participant.to_row())
            except DuplicateKey:
                raise AlreadyJoined(f"{self._user_id} is already in race {race.id}") from None
        except (StateConflict, TransportFailure):
            self.leave()
            raise

        for other in rows:
            self._state.set_participant(Participant.from_row(other))
        joined = Participant.from_row(row)
        self._state.set_participant(joined)
        logger.info("%s joined race %s", self._user_id, race.id)
        return joined

    def start(self) -> Race:
        """Host only: move the race into its countdown."""
        state = self._require_state()
        self.pump()
        now = self._clock()
        fields = self._machine.begin_countdown(state.race, self._user_id, state.participant_count, now)
        if not self._transition(state.race, fields):
            raise IllegalTransition(f"Race {state.race.id} is no longer waiting for players")
        logger.info("Race %s countdown started with %s players", state.race.id, state.participant_count)
        return state.race

    def leave(self) -> None:
        """Drop local state and stop listening. Remote rows are left as they are."""
        if self._subscription is not None:
            self._backend.unsubscribe(self._subscription)
            logger.info("%s left race %s", self._user_id, self._subscription.race_id)
        self._subscription = None
        self._state = None
        self._reset_typing()

    # ------------------------------------------------------------------
    # Typing
    # ------------------------------------------------------------------

    def on_input(self, new_input: str) -> InputResult:
        state = self._state
        if state is None or state.race.status is not RaceStatus.IN_PROGRESS:
            return InputResult(accepted=False, metrics=self._metrics)
        if self._finished:
            return InputResult(accepted=False, metrics=self._metrics, finished=True,
                               position=self._position())
        if self._pending_finish is not None:
            return self._retry_finish()

        text = state.race.text
        new_input = new_input[: len(text)]
        now = self._clock()
        if self._started_at is None:
            if not new_input:
                return InputResult(accepted=False, metrics=self._metrics)
            self._started_at = now

        self._input = new_input
        self._metrics = metrics.compute(new_input, text, (now - self._started_at) * 1000.0)
        self._progress = max(self._progress, self._metrics.progress)

        fields = {"progress": self._progress, "wpm": self._metrics.wpm, "accuracy": self._metrics.accuracy}
        me = self.me
        if me is not None:
            state.set_participant(me.with_fields(**fields))
        synced = self._write_progress(fields)

        if len(new_input) == len(text):
            self._pending_finish = now
            return self._retry_finish(synced)
        return InputResult(accepted=True, metrics=self._metrics, synced=synced)

    def _write_progress(self, fields: dict) -> bool:
        me = self.me
        if me is None:
            return False
        try:
            self._backend.update(PARTICIPANTS, me.id, fields)
        except TransportFailure as e:
            logger.warning("Progress update for %s failed: %s", self._user_id, e)
            return False
        return True

    def _retry_finish(self, synced: bool = True) -> InputResult:
        state = self._state
        me = self.me
        finished_at = self._pending_finish
        fields = {
            "progress": 100,
            "wpm": self._metrics.wpm,
            "accuracy": self._metrics.accuracy,
            "finished_at": to_timestamp(finished_at),
        }
        try:
            if me is None:
                raise TransportFailure(f"{self._user_id} has no participant row in race {state.race.id}")
            if self._settings.position_policy == "arbiter":
                row = self._backend.record_finish(me.id, fields)
            else:
                fields["position"] = state.finished_count() + 1
                row = self._backend.update(PARTICIPANTS, me.id, fields)
        except TransportFailure as e:
            logger.warning("Finish of %s not recorded, will retry on next input: %s", self._user_id, e)
            return InputResult(accepted=True, metrics=self._metrics, synced=False)

        self._pending_finish = None
        self._finished = True
        finished = Participant.from_row(row)
        state.set_participant(finished)
        logger.info("%s finished race %s in position %s", self._user_id, state.race.id, finished.position)
        completed = self._maybe_complete()
        return InputResult(
            accepted=True,
            metrics=self._metrics,
            synced=synced and completed,
            finished=True,
            position=self._position(),
        )

    def _position(self) -> Optional[int]:
        me = self.me
        return me.position if me is not None else None

    # ------------------------------------------------------------------
    # Remote changes and timers
    # ------------------------------------------------------------------

    def on_remote_update(self, event: ChangeEvent) -> bool:
        """Fold a change notification in. Returns True if local state changed."""
        changed = self._fold(event)
        if changed and self.is_host:
            self._maybe_complete()
        return changed

    def pump(self) -> int:
        """Fold every queued notification; returns how many were processed.

        The host checks for completion once, after the whole batch.
        """
        if self._subscription is None:
            return 0
        events = self._subscription.drain()
        changed = False
        for event in events:
            changed = self._fold(event) or changed
        if changed and self.is_host:
            self._maybe_complete()
        return len(events)

    def _fold(self, event: ChangeEvent) -> bool:
        state = self._state
        if state is None:
            return False
        previous = state.race.status
        if not state.apply(event):
            return False
        logger.debug("Folded %s on %s/%s", event.operation.value, event.table, event.row_id)
        if state.race.status is not previous:
            logger.info("Race %s is now %s", state.race.id, state.race.status.value)
        return True

    def tick(self) -> None:
        """Advance timers: end the countdown and close abandoned races.

        The host ends the countdown on time; if it has gone quiet, any other
        participant does so once the grace period has also passed.
        """
        if self._state is None:
            return
        self.pump()
        state = self._state
        race = state.race
        now = self._clock()
        try:
            if self._machine.can_begin_race(race, now, by_host=self.is_host):
                if self._transition(race, self._machine.begin_race(race, now, by_host=self.is_host)):
                    logger.info("Race %s started by %s", race.id, self._user_id)
            elif self._machine.is_abandoned(race, now):
                fields = self._machine.complete(race, state.participants.values(), now, abandoned=True)
                if self._transition(race, fields):
                    logger.info(
                        "Race %s abandoned with %s of %s finished",
                        race.id, state.finished_count(), state.participant_count,
                    )
        except TransportFailure as e:
            logger.warning("Timer update for race %s failed: %s", race.id, e)

    def _maybe_complete(self) -> bool:
        """Write race completion once every known participant has finished."""
        state = self._state
        race = state.race
        if not self._machine.should_complete(race, state.participants.values()):
            return True
        now = self._clock()
        try:
            if self._transition(race, self._machine.complete(race, state.participants.values(), now)):
                logger.info("Race %s completed", race.id)
        except TransportFailure as e:
            logger.warning("Completion of race %s not recorded: %s", race.id, e)
            return False
        return True

    def _transition(self, race: Race, fields: dict) -> bool:
        """Move the race on from its current status unless another client already has."""
        row = self._backend.transition(race.id, race.status, fields)
        if row is None:
            logger.info("Race %s already moved on from %s", race.id, race.status.value)
            return False
        self._state.set_race(Race.from_row(row))
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _enter(self, race: Race) -> None:
        self._subscription = self._backend.subscribe(race.id)
        self._state = RaceState(race)
        self._reset_typing()

    def _require_state(self) -> RaceState:
        if self._state is None:
            raise StateConflict(f"{self._user_id} is not in a race")
        return self._state

    def _reset_typing(self) -> None:
        self._input = ""
        self._started_at: Optional[float] = None
        self._metrics = TypingMetrics()
        self._progress = 0
        self._pending_finish: Optional[float] = None
        self._finished = False
