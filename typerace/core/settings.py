from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path(__file__).resolve().parent.parent / "data" / "settings.yaml"

POSITION_POLICIES = ("arbiter", "local")


@dataclass(frozen=True)
class RaceSettings:
    """Tunables for races. Durations are in seconds."""

    countdown_seconds: float = 3.0
    start_grace_seconds: float = 2.0
    default_max_players: int = 4
    join_code_length: int = 6
    join_code_attempts: int = 5
    abandon_after_seconds: float = 300.0
    position_policy: str = "arbiter"


def load_settings(path: Optional[Path] = None) -> RaceSettings:
    """Read race settings from YAML, falling back to defaults for absent keys."""
    settings_path = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    if not settings_path.exists():
        logger.info("No settings file at %s, using defaults", settings_path)
        return RaceSettings()

    raw = yaml.safe_load(settings_path.read_text(encoding="utf-8"))
    if raw is None:
        return RaceSettings()
    if not isinstance(raw, dict):
        raise ValueError(f"{settings_path.name}: expected a mapping of setting names")
    race = raw.get("race", {})
    if not isinstance(race, dict):
        raise ValueError(f"{settings_path.name}: 'race' must be a mapping")

    known = {f.name: f for f in fields(RaceSettings)}
    unknown = sorted(set(race) - set(known))
    if unknown:
        raise ValueError(f"{settings_path.name}: unknown settings {unknown}")

    values = {}
    defaults = RaceSettings()
    for name, value in race.items():
        expected = type(getattr(defaults, name))
        # ints are accepted where seconds are expected; bools never are
        accepted = (int, float) if expected is float else expected
        if isinstance(value, bool) or not isinstance(value, accepted):
            raise ValueError(
                f"{settings_path.name}: '{name}' must be {expected.__name__}, got {value!r}"
            )
        values[name] = expected(value)

    settings = RaceSettings(**values)
    _validate(settings, settings_path.name)
    return settings


def _validate(settings: RaceSettings, source: str) -> None:
    if settings.position_policy not in POSITION_POLICIES:
        raise ValueError(
            f"{source}: position_policy must be one of {POSITION_POLICIES}, "
            f"got {settings.position_policy!r}"
        )
    if settings.countdown_seconds < 0:
        raise ValueError(f"{source}: countdown_seconds must not be negative")
    if settings.start_grace_seconds < 0:
        raise ValueError(f"{source}: start_grace_seconds must not be negative")
    if settings.default_max_players < 2:
        raise ValueError(f"{source}: default_max_players must be at least 2")
    if settings.join_code_length < 4:
        raise ValueError(f"{source}: join_code_length must be at least 4")
    if settings.join_code_attempts < 1:
        raise ValueError(f"{source}: join_code_attempts must be at least 1")
    if settings.abandon_after_seconds <= 0:
        raise ValueError(f"{source}: abandon_after_seconds must be positive")
