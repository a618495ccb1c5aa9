"""Configuration for the scene engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

_TRUE_WORDS = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS = frozenset({"0", "false", "no", "off"})


def _normalise_string(value: str | None, *, default: str) -> str:
    if value is None:
        return default

    trimmed = value.strip()
    return trimmed or default


def _parse_positive_int(value: str | None, *, name: str, default: int) -> int:
    if value is None or not value.strip():
        return default

    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a positive integer.") from exc
    if parsed < 1:
        raise ValueError(f"{name} must be greater than zero.")
    return parsed


def _parse_bool(value: str | None, *, name: str, default: bool) -> bool:
    if value is None or not value.strip():
        return default

    lowered = value.strip().lower()
    if lowered in _TRUE_WORDS:
        return True
    if lowered in _FALSE_WORDS:
        return False
    raise ValueError(f"{name} must be one of: true/false, yes/no, on/off, 1/0.")


@dataclass(frozen=True)
class EngineSettings:
    """Tunable behaviour of :class:`~storygraph.engine.SceneEngine`.

    ``default_root_scene`` is used when a game names neither a first nor a
    root scene. ``max_go_to_hops`` bounds automatic go-to chains so that a
    cycle in the scene graph fails loudly instead of looping. When
    ``raise_on_fault`` is set, exceptions raised by authored actions,
    predicates and inserts propagate instead of being recorded and skipped.
    """

    default_root_scene: str = "root"
    max_go_to_hops: int = 100
    scene_complete_title: str = "Scene Complete"
    game_over_text: str = "Game Over"
    raise_on_fault: bool = False

    def __post_init__(self) -> None:
        if self.max_go_to_hops < 1:
            raise ValueError("max_go_to_hops must be greater than zero.")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EngineSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.
        """

        source = environ if environ is not None else os.environ

        return cls(
            default_root_scene=_normalise_string(
                source.get("STORYGRAPH_ROOT_SCENE"), default="root"
            ),
            max_go_to_hops=_parse_positive_int(
                source.get("STORYGRAPH_MAX_GO_TO_HOPS"),
                name="STORYGRAPH_MAX_GO_TO_HOPS",
                default=100,
            ),
            scene_complete_title=_normalise_string(
                source.get("STORYGRAPH_SCENE_COMPLETE_TITLE"), default="Scene Complete"
            ),
            game_over_text=_normalise_string(
                source.get("STORYGRAPH_GAME_OVER_TEXT"), default="Game Over"
            ),
            raise_on_fault=_parse_bool(
                source.get("STORYGRAPH_RAISE_ON_FAULT"),
                name="STORYGRAPH_RAISE_ON_FAULT",
                default=False,
            ),
        )


__all__ = ["EngineSettings"]
