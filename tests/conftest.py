"""Shared fixtures: a hand-driven clock, an in-memory service and Qt."""

from __future__ import annotations

import pytest

from typerace.core.settings import RaceSettings
from typerace.race.backend import InMemoryBackend
from typerace.race.coordinator import RaceCoordinator


class FakeClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture()
def settings() -> RaceSettings:
    return RaceSettings()


@pytest.fixture()
def make_coordinator(backend: InMemoryBackend, clock: FakeClock, settings: RaceSettings):
    """Factory for coordinators sharing one service and one clock."""

    def _make(user_id: str, **overrides) -> RaceCoordinator:
        return RaceCoordinator(
            overrides.get("backend", backend),
            user_id,
            overrides.get("settings", settings),
            clock=overrides.get("clock", clock),
        )

    return _make


@pytest.fixture(scope="session")
def qapp():
    from PySide6.QtCore import QCoreApplication

    app = QCoreApplication.instance() or QCoreApplication([])
    yield app
