"""Contract with the persistence/broadcast service, and an in-process service.

The service stores race and participant rows and fans every committed change
out to the subscribers of that race. Delivery is at-least-once with no
ordering guarantee; each event carries the service's commit sequence so that
clients can keep the newest version of a row.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Dict, List, Optional, Protocol

from typerace.race.errors import DuplicateKey, TransportFailure
from typerace.race.models import PARTICIPANTS, RACES, RaceStatus, Row

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    operation: Operation
    table: str
    row: Row
    commit_seq: int

    @property
    def row_id(self) -> str:
        return self.row["id"]


class Subscription:
    """FIFO channel of change events for one race."""

    def __init__(self, race_id: str) -> None:
        self.race_id = race_id
        self._queue: Deque[ChangeEvent] = deque()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, event: ChangeEvent) -> None:
        if not self._closed:
            self._queue.append(event)

    def get(self) -> Optional[ChangeEvent]:
        return self._queue.popleft() if self._queue else None

    def drain(self) -> List[ChangeEvent]:
        events = list(self._queue)
        self._queue.clear()
        return events

    def __len__(self) -> int:
        return len(self._queue)

    def close(self) -> None:
        self._closed = True
        self._queue.clear()


class RaceBackend(Protocol):
    def insert(self, table: str, row: Row) -> Row: ...

    def update(self, table: str, row_id: str, fields: Row) -> Row: ...

    def delete(self, table: str, row_id: str) -> None: ...

    def select(self, table: str, **filters: object) -> List[Row]: ...

    def record_finish(self, participant_id: str, fields: Row) -> Row: ...

    def transition(self, race_id: str, from_status: RaceStatus, fields: Row) -> Optional[Row]: ...

    def subscribe(self, race_id: str) -> Subscription: ...

    def unsubscribe(self, subscription: Subscription) -> None: ...


class InMemoryBackend:
    """Process-local service shared by every client of a local race.

    ``record_finish`` is the single arbiter for finishing positions: it
    numbers finishers in the order their finish writes are recorded.
    ``transition`` is the only way race status moves, so of two clients
    racing to make the same move exactly one succeeds.
    """

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[str, Row]] = {RACES: {}, PARTICIPANTS: {}}
        self._subscribers: Dict[str, List[Subscription]] = {}
        self._seq = 0
        self._lock = threading.Lock()

    def insert(self, table: str, row: Row) -> Row:
        with self._lock:
            rows = self._table(table)
            stored = copy.deepcopy(row)
            stored.setdefault("id", uuid.uuid4().hex)
            if stored["id"] in rows:
                raise DuplicateKey(table, "id")
            self._check_unique(table, stored)
            rows[stored["id"]] = stored
            self._publish(Operation.INSERT, table, stored)
            return copy.deepcopy(stored)

    def update(self, table: str, row_id: str, fields: Row) -> Row:
        with self._lock:
            stored = self._get(table, row_id)
            stored.update(copy.deepcopy(fields))
            self._publish(Operation.UPDATE, table, stored)
            return copy.deepcopy(stored)

    def delete(self, table: str, row_id: str) -> None:
        with self._lock:
            stored = self._get(table, row_id)
            del self._table(table)[row_id]
            self._publish(Operation.DELETE, table, stored)

    def select(self, table: str, **filters: object) -> List[Row]:
        with self._lock:
            return [
                copy.deepcopy(row)
                for row in self._table(table).values()
                if all(row.get(key) == value for key, value in filters.items())
            ]

    def record_finish(self, participant_id: str, fields: Row) -> Row:
        with self._lock:
            stored = self._get(PARTICIPANTS, participant_id)
            if stored.get("finished_at") is not None:
                return copy.deepcopy(stored)
            finished = sum(
                1
                for row in self._table(PARTICIPANTS).values()
                if row["race_id"] == stored["race_id"] and row.get("finished_at") is not None
            )
            stored.update(copy.deepcopy(fields))
            stored["position"] = finished + 1
            logger.debug("Recorded finish of %s at position %s", participant_id, finished + 1)
            self._publish(Operation.UPDATE, PARTICIPANTS, stored)
            return copy.deepcopy(stored)

    def transition(self, race_id: str, from_status: RaceStatus, fields: Row) -> Optional[Row]:
        """Apply ``fields`` to a race only while it is still in ``from_status``.

        Returns the updated row, or None when another writer already moved
        the race on; nothing is written or published in that case.
        """
        with self._lock:
            stored = self._get(RACES, race_id)
            if stored.get("status") != from_status.value:
                logger.debug("Race %s is %s, not %s; transition skipped",
                             race_id, stored.get("status"), from_status.value)
                return None
            stored.update(copy.deepcopy(fields))
            self._publish(Operation.UPDATE, RACES, stored)
            return copy.deepcopy(stored)

    def subscribe(self, race_id: str) -> Subscription:
        subscription = Subscription(race_id)
        with self._lock:
            self._subscribers.setdefault(race_id, []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.race_id, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
        subscription.close()

    def _table(self, table: str) -> Dict[str, Row]:
        try:
            return self._tables[table]
        except KeyError:
            raise TransportFailure(f"Unknown table: {table}") from None

    def _get(self, table: str, row_id: str) -> Row:
        rows = self._table(table)
        if row_id not in rows:
            raise TransportFailure(f"{table}: no row with id {row_id}")
        return rows[row_id]

    def _check_unique(self, table: str, row: Row) -> None:
        if table == RACES:
            code = str(row.get("join_code", "")).upper()
            for other in self._tables[RACES].values():
                active = other.get("status") != RaceStatus.COMPLETED.value
                if active and str(other.get("join_code", "")).upper() == code:
                    raise DuplicateKey(table, "join_code")
        elif table == PARTICIPANTS:
            for other in self._tables[PARTICIPANTS].values():
                if other["race_id"] == row["race_id"] and other["user_id"] == row["user_id"]:
                    raise DuplicateKey(table, "race_id, user_id")

    def _publish(self, operation: Operation, table: str, row: Row) -> None:
        self._seq += 1
        race_id = row["id"] if table == RACES else row["race_id"]
        for subscription in self._subscribers.get(race_id, []):
            subscription.put(ChangeEvent(operation, table, copy.deepcopy(row), self._seq))
