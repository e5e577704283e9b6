from __future__ import annotations

import random
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from typerace.core.difficulty import Difficulty

DEFAULT_PASSAGES_PATH = Path(__file__).resolve().parent.parent / "data" / "passages.yaml"


@dataclass(frozen=True)
class Passage:
    difficulty: Difficulty
    topic: str
    text: str


class PassageRepository:
    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = Path(path) if path is not None else DEFAULT_PASSAGES_PATH
        self._passages = self._load_passages()

    def topics(self, difficulty: Difficulty) -> List[str]:
        return sorted(self._passages[difficulty])

    def get(self, difficulty: Difficulty, topic: str) -> Passage:
        return self._passages[difficulty][topic]

    def random_passage(
        self,
        difficulty: Difficulty,
        topic: Optional[str] = None,
        rng: Optional[random.Random] = None,
    ) -> Passage:
        """Pick a passage, at random among the difficulty's topics unless one is given."""
        if topic is not None:
            return self.get(difficulty, topic)
        rng = rng or random.Random()
        return self._passages[difficulty][rng.choice(self.topics(difficulty))]

    def _load_passages(self) -> Dict[Difficulty, Dict[str, Passage]]:
        if not self._path.exists():
            raise FileNotFoundError(f"Passages file not found: {self._path}")

        raw = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        if not raw or not isinstance(raw, dict):
            raise ValueError(f"{self._path.name}: expected a mapping of difficulty to topics")

        passages: Dict[Difficulty, Dict[str, Passage]] = {}
        for key, topics in raw.items():
            difficulty = Difficulty.parse(key)
            if not isinstance(topics, dict) or not topics:
                raise ValueError(f"{self._path.name}: '{key}' has no topics")
            by_topic: Dict[str, Passage] = {}
            for topic, text in topics.items():
                # folded scalars may still carry stray whitespace
                cleaned = " ".join(str(text or "").split())
                if not cleaned:
                    raise ValueError(f"{self._path.name}: '{key}/{topic}' is empty")
                by_topic[str(topic)] = Passage(difficulty=difficulty, topic=str(topic), text=cleaned)
            passages[difficulty] = by_topic

        missing = [d.value for d in Difficulty if d not in passages]
        if missing:
            raise ValueError(f"{self._path.name}: no passages for {missing}")
        return passages
