"""Test configuration for the storygraph project."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from typing import Any, Callable

import pytest

from storygraph.engine import SceneEngine
from storygraph.game import Game, Option, Scene
from storygraph.random_source import RandomSource
from storygraph.settings import EngineSettings
from storygraph.testing_toolkit import RecordingDisplay


def build_simple_game(**game_kwargs: Any) -> Game:
    """Return a three-scene game: root links to foo, foo to bar, bar ends."""

    return Game.from_scenes(
        [
            Scene(
                id="root",
                content="Root content",
                options=(Option.parse("@foo", title="Foo Link"),),
            ),
            Scene(id="foo", content="Foo content", options=(Option.parse("@bar"),)),
            Scene(id="bar", title="Bar Title", content="Bar content", game_over=True),
        ],
        **game_kwargs,
    )


@pytest.fixture()
def recording_display() -> RecordingDisplay:
    """Return a display surface that records every engine call."""

    return RecordingDisplay()


@pytest.fixture()
def simple_game() -> Game:
    return build_simple_game()


@pytest.fixture()
def make_engine(recording_display: RecordingDisplay) -> Callable[..., SceneEngine]:
    """Factory fixture building seeded engines wired to ``recording_display``."""

    def _factory(
        game: Game,
        *,
        seed: int = 1,
        settings: EngineSettings | None = None,
        display: Any = None,
    ) -> SceneEngine:
        return SceneEngine(
            game,
            recording_display if display is None else display,
            random_source=RandomSource.from_seed(seed),
            settings=settings,
        )

    return _factory


__all__ = ["build_simple_game", "make_engine", "recording_display", "simple_game"]
