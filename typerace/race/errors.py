"""Error taxonomy for races and practice sessions."""

from __future__ import annotations


class RaceError(Exception):
    """Base class for every error raised by the race engine."""


class ValidationError(RaceError, ValueError):
    """Input that can never be accepted (too long, malformed join code)."""


class StateConflict(RaceError):
    """The action is valid in general but not in the race's current state."""


class AlreadyJoined(StateConflict):
    pass


class RaceFull(StateConflict):
    pass


class RaceNotJoinable(StateConflict):
    pass


class NotHost(StateConflict):
    pass


class NotEnoughPlayers(StateConflict):
    pass


class IllegalTransition(StateConflict):
    pass


class TransportFailure(RaceError):
    """A read or write against the persistence service failed."""


class DuplicateKey(TransportFailure):
    """The service rejected a row because a unique key already exists."""

    def __init__(self, table: str, key: str) -> None:
        super().__init__(f"{table}: duplicate value for {key}")
        self.table = table
        self.key = key
