from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from typerace.race.backend import ChangeEvent, Operation
from typerace.race.models import PARTICIPANTS, RACES, Participant, Race, RaceStatus

logger = logging.getLogger(__name__)


def merge_race(current: Race, incoming: Race) -> Race:
    """Combine two versions of a race row without moving it backwards."""
    status = incoming.status if current.status.is_before(incoming.status) else current.status
    return incoming.with_fields(
        status=status,
        countdown_at=current.countdown_at if current.countdown_at is not None else incoming.countdown_at,
        started_at=current.started_at if current.started_at is not None else incoming.started_at,
        finished_at=current.finished_at if current.finished_at is not None else incoming.finished_at,
        abandoned=current.abandoned or incoming.abandoned,
    )


def merge_participant(current: Participant, incoming: Participant) -> Participant:
    """Combine two versions of a participant row; ``incoming`` is the newer one.

    Progress never decreases, and finish time and position are set once.
    """
    return incoming.with_fields(
        progress=max(current.progress, incoming.progress),
        finished_at=current.finished_at if current.finished_at is not None else incoming.finished_at,
        position=current.position if current.position is not None else incoming.position,
    )


class RaceState:
    """Local replica of one race and its participants.

    Remote changes are folded in with :meth:`apply`. Folding is idempotent
    and, for different rows, independent of arrival order; for the same row
    the highest commit sequence wins.
    """

    def __init__(self, race: Optional[Race] = None) -> None:
        self.race = race
        self.participants: Dict[str, Participant] = {}
        self._versions: Dict[Tuple[str, str], int] = {}
        self._deleted: Dict[str, int] = {}

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    def participant_for(self, user_id: str) -> Optional[Participant]:
        for participant in self.participants.values():
            if participant.user_id == user_id:
                return participant
        return None

    def finished_count(self) -> int:
        return sum(1 for p in self.participants.values() if p.is_finished)

    def all_finished(self) -> bool:
        return bool(self.participants) and all(p.is_finished for p in self.participants.values())

    def standings(self) -> List[Participant]:
        """Finishers by position, then everyone else by progress."""
        return sorted(
            self.participants.values(),
            key=lambda p: (
                p.position is None,
                p.position or 0,
                -p.progress,
                p.joined_at or 0.0,
                p.user_id,
            ),
        )

    def snapshot(self) -> Tuple[Optional[Race], Tuple[Participant, ...]]:
        return self.race, tuple(sorted(self.participants.values(), key=lambda p: p.id))

    # ------------------------------------------------------------------
    # Local writes
    # ------------------------------------------------------------------

    def set_race(self, race: Race) -> None:
        self.race = race if self.race is None else merge_race(self.race, race)

    def set_participant(self, participant: Participant) -> None:
        if participant.id in self._deleted:
            return
        current = self.participants.get(participant.id)
        self.participants[participant.id] = (
            participant if current is None else merge_participant(current, participant)
        )

    # ------------------------------------------------------------------
    # Remote changes
    # ------------------------------------------------------------------

    def apply(self, event: ChangeEvent) -> bool:
        """Fold one change notification in. Returns True if the state changed."""
        before = self.snapshot()
        if event.table == RACES:
            self._apply_race(event)
        elif event.table == PARTICIPANTS:
            self._apply_participant(event)
        else:
            logger.warning("Ignoring change for unknown table %s", event.table)
            return False
        return self.snapshot() != before

    def _is_stale(self, event: ChangeEvent) -> bool:
        key = (event.table, event.row_id)
        seen = self._versions.get(key)
        if seen is not None and event.commit_seq <= seen:
            logger.debug("Skipping stale %s event for %s (seq %s <= %s)",
                         event.operation.value, event.row_id, event.commit_seq, seen)
            return True
        self._versions[key] = event.commit_seq
        return False

    def _apply_race(self, event: ChangeEvent) -> None:
        if self.race is not None and event.row_id != self.race.id:
            return
        if event.operation is Operation.DELETE:
            logger.warning("Race %s was deleted remotely; keeping the local copy", event.row_id)
            return
        if self._is_stale(event):
            return
        self.set_race(Race.from_row(event.row))

    def _apply_participant(self, event: ChangeEvent) -> None:
        if self.race is not None and event.row.get("race_id") != self.race.id:
            return
        deleted_seq = self._deleted.get(event.row_id)
        if deleted_seq is not None and event.commit_seq <= deleted_seq:
            return
        if event.operation is Operation.DELETE:
            self._deleted[event.row_id] = max(event.commit_seq, deleted_seq or 0)
            self.participants.pop(event.row_id, None)
            return
        if self._is_stale(event):
            return
        self._deleted.pop(event.row_id, None)
        self.set_participant(Participant.from_row(event.row))

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    def check_invariants(self) -> List[str]:
        """Describe every invariant the current snapshot breaks."""
        problems: List[str] = []
        for p in self.participants.values():
            if (p.position is None) != (p.finished_at is None):
                problems.append(f"{p.user_id}: position and finish time must be set together")
            if not 0 <= p.progress <= 100:
                problems.append(f"{p.user_id}: progress {p.progress} out of range")
            if p.is_finished and p.progress != 100:
                problems.append(f"{p.user_id}: finished with progress {p.progress}")

        positions = sorted(p.position for p in self.participants.values() if p.position is not None)
        if positions != list(range(1, len(positions) + 1)):
            problems.append(f"positions {positions} are not 1..{len(positions)}")

        race = self.race
        if race is not None:
            started = not race.status.is_before(RaceStatus.IN_PROGRESS)
            # a race abandoned while waiting completes without ever starting
            if race.started_at is not None and not started:
                problems.append(f"race {race.id}: start time does not match status {race.status.value}")
            if race.started_at is None and started and not race.abandoned:
                problems.append(f"race {race.id}: start time does not match status {race.status.value}")
            completed = race.status is RaceStatus.COMPLETED
            if completed != (race.finished_at is not None):
                problems.append(f"race {race.id}: finish time does not match status {race.status.value}")
            if completed and not race.abandoned and not self.all_finished():
                problems.append(f"race {race.id}: completed with unfinished participants")
        return problems
