"""Application wiring for the typerace engine."""

import logging
import random
from pathlib import Path
from typing import Optional

from typerace.core.difficulty import Difficulty
from typerace.core.passages import PassageRepository
from typerace.core.session import SinglePlayerSession
from typerace.core.settings import load_settings
from typerace.core.stats import StatsStore
from typerace.race.backend import InMemoryBackend, RaceBackend
from typerace.race.coordinator import RaceCoordinator
from typerace.ui.race_driver import RaceDriver


def configure_logging() -> None:
    """Configure application-wide logging with a standard format."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def create_practice_session(
    difficulty: Difficulty,
    stats_store: StatsStore,
    topic: Optional[str] = None,
    passages: Optional[PassageRepository] = None,
    rng: Optional[random.Random] = None,
) -> SinglePlayerSession:
    """Solo session on a passage for ``difficulty``; successful runs go to ``stats_store``."""
    passages = passages or PassageRepository()
    passage = passages.random_passage(difficulty, topic, rng)
    logging.info("Practice on %s/%s", difficulty.value, passage.topic)
    return SinglePlayerSession(
        text=passage.text,
        difficulty=difficulty,
        topic=passage.topic,
        on_complete=stats_store.add,
    )


def create_race_driver(
    user_id: str,
    backend: Optional[RaceBackend] = None,
    settings_path: Optional[Path] = None,
) -> RaceDriver:
    """Race loop for one local user against ``backend`` (an in-process one by default)."""
    settings = load_settings(settings_path)
    coordinator = RaceCoordinator(backend or InMemoryBackend(), user_id, settings)
    return RaceDriver(coordinator)
