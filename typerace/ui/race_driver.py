"""Qt bridge between a race coordinator and whatever renders it."""

from __future__ import annotations

import logging
from typing import Optional

from PySide6.QtCore import QObject, QTimer, Signal, Slot

from typerace.race.coordinator import RaceCoordinator
from typerace.race.errors import RaceError
from typerace.ui.models import RaceView, project

logger = logging.getLogger(__name__)


class RaceDriver(QObject):
    """Runs a client's race loop on the Qt event loop.

    A timer drains the change feed and advances countdown/abandon timers;
    widgets listen to ``state_changed`` and call the intent slots. Rejected
    intents are reported through ``action_failed`` instead of raising into
    the event loop.
    """

    state_changed = Signal(object)
    countdown_changed = Signal(int)
    action_failed = Signal(str)

    def __init__(
        self,
        coordinator: RaceCoordinator,
        interval_ms: int = 100,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._coordinator = coordinator
        self._last_view: Optional[RaceView] = None
        self._last_countdown = 0
        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self._on_tick)

    @property
    def coordinator(self) -> RaceCoordinator:
        return self._coordinator

    def view(self) -> Optional[RaceView]:
        return self._last_view

    def start_loop(self) -> None:
        self._timer.start()

    def stop_loop(self) -> None:
        self._timer.stop()

    @Slot(str, int, str, str, str)
    def create_race(self, text: str, max_players: int, topic: str, difficulty: str, display_name: str) -> None:
        self._run(lambda: self._coordinator.create(text, max_players, topic, difficulty, display_name))

    @Slot(str, str)
    def join_race(self, join_code: str, display_name: str) -> None:
        self._run(lambda: self._coordinator.join(join_code, display_name))

    @Slot()
    def start_race(self) -> None:
        self._run(self._coordinator.start)

    @Slot()
    def leave_race(self) -> None:
        self._coordinator.leave()
        self._publish()

    @Slot(str)
    def submit_input(self, text: str) -> None:
        self._coordinator.on_input(text)
        self._publish()

    @Slot()
    def _on_tick(self) -> None:
        self._coordinator.tick()
        self._publish()

    def _run(self, action) -> None:
        try:
            action()
        except RaceError as e:
            logger.info("Action rejected: %s", e)
            self.action_failed.emit(str(e))
        self._publish()

    def _publish(self) -> None:
        view = project(self._coordinator)
        if view != self._last_view:
            self._last_view = view
            self.state_changed.emit(view)
        countdown = view.countdown_remaining if view is not None else 0
        if countdown != self._last_countdown:
            self._last_countdown = countdown
            self.countdown_changed.emit(countdown)
