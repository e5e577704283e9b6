"""Tests for typerace.core.passages – YAML passage loading."""

from __future__ import annotations

import random
from pathlib import Path

import pytest
import yaml

from typerace.core.difficulty import Difficulty
from typerace.core.passages import Passage, PassageRepository


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def _full_payload() -> dict:
    return {d.value: {"nature": f"{d.value} text", "code": f"{d.value}  code\n"} for d in Difficulty}


def _write_yaml(path: Path, data: object) -> Path:
    path.write_text(yaml.dump(data, allow_unicode=True, default_flow_style=False), encoding="utf-8")
    return path


@pytest.fixture()
def repo(tmp_path: Path) -> PassageRepository:
    return PassageRepository(_write_yaml(tmp_path / "passages.yaml", _full_payload()))


# ---------------------------------------------------------------------------
# Bundled data
# ---------------------------------------------------------------------------

class TestBundledPassages:
    def test_loads(self):
        repo = PassageRepository()
        for difficulty in Difficulty:
            assert "nature" in repo.topics(difficulty)

    def test_texts_are_single_line(self):
        repo = PassageRepository()
        passage = repo.get(Difficulty.EXPERT, "code")
        assert "\n" not in passage.text
        assert passage.text.startswith("class AsyncIterableQueue")


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

class TestLookup:
    def test_get(self, repo: PassageRepository):
        assert repo.get(Difficulty.BEGINNER, "nature") == Passage(
            difficulty=Difficulty.BEGINNER, topic="nature", text="beginner text"
        )

    def test_whitespace_collapsed(self, repo: PassageRepository):
        assert repo.get(Difficulty.ADVANCED, "code").text == "advanced code"

    def test_topics_sorted(self, repo: PassageRepository):
        assert repo.topics(Difficulty.EXPERT) == ["code", "nature"]

    def test_unknown_topic(self, repo: PassageRepository):
        with pytest.raises(KeyError):
            repo.get(Difficulty.EXPERT, "space")

    def test_random_with_topic(self, repo: PassageRepository):
        assert repo.random_passage(Difficulty.EXPERT, "code").topic == "code"

    def test_random_is_seedable(self, repo: PassageRepository):
        a = repo.random_passage(Difficulty.INTERMEDIATE, rng=random.Random(7))
        b = repo.random_passage(Difficulty.INTERMEDIATE, rng=random.Random(7))
        assert a == b


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class TestValidation:
    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            PassageRepository(tmp_path / "missing.yaml")

    def test_not_a_mapping(self, tmp_path: Path):
        with pytest.raises(ValueError, match="expected a mapping"):
            PassageRepository(_write_yaml(tmp_path / "p.yaml", ["a"]))

    def test_unknown_difficulty(self, tmp_path: Path):
        payload = _full_payload()
        payload["legendary"] = {"nature": "x"}
        with pytest.raises(ValueError, match="Unknown difficulty"):
            PassageRepository(_write_yaml(tmp_path / "p.yaml", payload))

    def test_missing_difficulty(self, tmp_path: Path):
        payload = _full_payload()
        del payload["expert"]
        with pytest.raises(ValueError, match="no passages"):
            PassageRepository(_write_yaml(tmp_path / "p.yaml", payload))

    def test_empty_text(self, tmp_path: Path):
        payload = _full_payload()
        payload["beginner"]["nature"] = "   "
        with pytest.raises(ValueError, match="is empty"):
            PassageRepository(_write_yaml(tmp_path / "p.yaml", payload))
