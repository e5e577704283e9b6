"""Tests for typerace.ui.race_driver – the Qt race loop."""

from __future__ import annotations

from typing import List

import pytest

from typerace.race.models import RaceStatus
from typerace.ui.race_driver import RaceDriver

TEXT = "abcdefghij" * 2


class Recorder:
    """Collects everything a driver emits."""

    def __init__(self, driver: RaceDriver) -> None:
        self.views: List[object] = []
        self.countdowns: List[int] = []
        self.failures: List[str] = []
        driver.state_changed.connect(self.views.append)
        driver.countdown_changed.connect(self.countdowns.append)
        driver.action_failed.connect(self.failures.append)


@pytest.fixture()
def host_driver(qapp, make_coordinator) -> RaceDriver:
    return RaceDriver(make_coordinator("host"))


# ---------------------------------------------------------------------------
# Intents
# ---------------------------------------------------------------------------

class TestIntents:
    def test_create_publishes_view(self, host_driver: RaceDriver):
        rec = Recorder(host_driver)
        host_driver.create_race(TEXT, 4, "nature", "beginner", "Hal")
        assert len(rec.views) == 1
        assert rec.views[0].status is RaceStatus.WAITING
        assert host_driver.view() is rec.views[0]
        assert rec.failures == []

    def test_rejected_start_is_reported(self, host_driver: RaceDriver):
        rec = Recorder(host_driver)
        host_driver.create_race(TEXT, 4, "", "beginner", "Hal")
        host_driver.start_race()
        assert len(rec.failures) == 1
        assert "at least 2 players" in rec.failures[0]
        assert host_driver.view().status is RaceStatus.WAITING

    def test_bad_join_code_is_reported(self, qapp, make_coordinator):
        driver = RaceDriver(make_coordinator("guest"))
        rec = Recorder(driver)
        driver.join_race("??", "Gil")
        assert len(rec.failures) == 1
        assert rec.views == []
        assert driver.view() is None

    def test_join_and_leave(self, qapp, make_coordinator):
        race = make_coordinator("host").create(TEXT)
        driver = RaceDriver(make_coordinator("guest"))
        rec = Recorder(driver)
        driver.join_race(race.join_code, "Gil")
        assert rec.views[-1].race_id == race.id
        driver.leave_race()
        assert rec.views[-1] is None


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------

class TestLoop:
    def test_countdown_and_typing(self, host_driver: RaceDriver, make_coordinator, clock):
        rec = Recorder(host_driver)
        host_driver.create_race(TEXT, 4, "", "beginner", "Hal")
        make_coordinator("guest").join(host_driver.view().join_code)
        host_driver.start_race()
        assert rec.countdowns == [3]
        clock.advance(1.5)
        host_driver._on_tick()
        clock.advance(1.5)
        host_driver._on_tick()
        assert rec.countdowns == [3, 2, 0]
        assert host_driver.view().status is RaceStatus.IN_PROGRESS

        host_driver.submit_input(TEXT[:4])
        assert host_driver.view().me.typed == TEXT[:4]

    def test_no_signal_without_change(self, host_driver: RaceDriver):
        host_driver.create_race(TEXT, 4, "", "beginner", "Hal")
        rec = Recorder(host_driver)
        host_driver._on_tick()
        host_driver._on_tick()
        assert rec.views == []

    def test_remote_changes_are_published_on_tick(self, host_driver: RaceDriver, make_coordinator):
        rec = Recorder(host_driver)
        host_driver.create_race(TEXT, 4, "", "beginner", "Hal")
        make_coordinator("guest").join(host_driver.view().join_code)
        host_driver._on_tick()
        assert len(rec.views) == 2
        assert len(rec.views[-1].participants) == 2

    def test_timer(self, host_driver: RaceDriver):
        host_driver.start_loop()
        assert host_driver._timer.isActive()
        host_driver.stop_loop()
        assert not host_driver._timer.isActive()
