"""Serializable progress of a single play-through."""

from __future__ import annotations

import copy
import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence


@dataclass
class Choice:
    """A compiled choice currently offered to the player.

    ``title`` holds compiled title content: a list of strings and block
    mappings, ready to be shown or serialized as-is.
    """

    id: str
    title: List[Any] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {"id": self.id, "title": copy.deepcopy(self.title)}

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Choice":
        if not isinstance(payload, Mapping):
            raise ValueError("Invalid state payload: choices must be objects")

        choice_id = payload.get("id")
        if not isinstance(choice_id, str) or not choice_id:
            raise ValueError("Invalid state payload: choice id must be a non-empty string")

        title = payload.get("title", [])
        if isinstance(title, str):
            title = [title]
        if not isinstance(title, list):
            raise ValueError("Invalid state payload: choice title must be a list")

        return cls(id=choice_id, title=copy.deepcopy(title))


@dataclass
class GameState:
    """Everything the engine needs to resume a game.

    The state is plain data: scene ids, counters, quality values and the
    choices currently on offer. It never holds callables, so it round-trips
    losslessly through :meth:`to_json` and :meth:`from_json`.

    * ``visits`` counts how many times each scene has been entered.
    * ``qualities`` holds the current value of every set quality.
    * ``choices`` is the list shown to the player, or ``None`` when no
      choice is pending.
    """

    scene_id: str | None = None
    root_scene_id: str | None = None
    turn: int = 0
    game_over: bool = False
    visits: Dict[str, int] = field(default_factory=dict)
    qualities: Dict[str, float] = field(default_factory=dict)
    choices: List[Choice] | None = None

    def record_visit(self, scene_id: str) -> int:
        """Increment and return the visit count for ``scene_id``."""

        count = self.visits.get(scene_id, 0) + 1
        self.visits[scene_id] = count
        return count

    def visit_count(self, scene_id: str) -> int:
        return self.visits.get(scene_id, 0)

    def to_payload(self) -> Dict[str, Any]:
        """Return a JSON-serialisable representation of the state."""

        return {
            "scene_id": self.scene_id,
            "root_scene_id": self.root_scene_id,
            "turn": self.turn,
            "game_over": self.game_over,
            "visits": dict(self.visits),
            "qualities": dict(self.qualities),
            "choices": (
                None
                if self.choices is None
                else [choice.to_payload() for choice in self.choices]
            ),
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GameState":
        """Build a state from its payload representation.

        Raises:
            ValueError: If the payload is structurally invalid.
        """

        if not isinstance(payload, Mapping):
            raise ValueError("Invalid state payload: expected an object")

        scene_id = payload.get("scene_id")
        if scene_id is not None and not isinstance(scene_id, str):
            raise ValueError("Invalid state payload: scene_id must be a string")

        root_scene_id = payload.get("root_scene_id")
        if root_scene_id is not None and not isinstance(root_scene_id, str):
            raise ValueError("Invalid state payload: root_scene_id must be a string")

        turn = payload.get("turn", 0)
        if not _is_int(turn) or turn < 0:
            raise ValueError("Invalid state payload: turn must be a non-negative integer")

        game_over = payload.get("game_over", False)
        if not isinstance(game_over, bool):
            raise ValueError("Invalid state payload: game_over must be a boolean")

        visits = _visits_from_payload(payload.get("visits", {}))
        qualities = _qualities_from_payload(payload.get("qualities", {}))
        choices = _choices_from_payload(payload.get("choices"))

        return cls(
            scene_id=scene_id,
            root_scene_id=root_scene_id,
            turn=turn,
            game_over=game_over,
            visits=visits,
            qualities=qualities,
            choices=choices,
        )

    def to_json(self, **kwargs: Any) -> str:
        kwargs.setdefault("allow_nan", False)
        return json.dumps(self.to_payload(), **kwargs)

    @classmethod
    def from_json(cls, text: str) -> "GameState":
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid state payload: {exc}") from exc
        return cls.from_payload(payload)

    def copy(self) -> "GameState":
        """Return an independent deep copy of this state."""

        return GameState.from_payload(self.to_payload())


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not isinstance(value, float) or math.isfinite(value)


def _visits_from_payload(payload: Any) -> Dict[str, int]:
    if not isinstance(payload, Mapping):
        raise ValueError("Invalid state payload: visits must be an object")

    visits: Dict[str, int] = {}
    for scene_id, count in payload.items():
        if not _is_int(count) or count < 0:
            raise ValueError(
                f"Invalid state payload: visit count for '{scene_id}' must be a non-negative integer"
            )
        visits[str(scene_id)] = count
    return visits


def _qualities_from_payload(payload: Any) -> Dict[str, float]:
    if not isinstance(payload, Mapping):
        raise ValueError("Invalid state payload: qualities must be an object")

    qualities: Dict[str, float] = {}
    for quality_id, value in payload.items():
        if not _is_number(value):
            raise ValueError(
                f"Invalid state payload: quality '{quality_id}' must be a finite number"
            )
        qualities[str(quality_id)] = value
    return qualities


def _choices_from_payload(payload: Any) -> List[Choice] | None:
    if payload is None:
        return None
    if isinstance(payload, (str, bytes)) or not isinstance(payload, Sequence):
        raise ValueError("Invalid state payload: choices must be a list")
    return [Choice.from_payload(entry) for entry in payload]


__all__ = ["Choice", "GameState"]
