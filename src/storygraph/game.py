"""Immutable game definitions consumed by the scene engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Iterable,
    Literal,
    Mapping,
    MutableMapping,
    Tuple,
    Union,
)

from .errors import UnknownSceneError

if TYPE_CHECKING:  # pragma: no cover - imported only for type checking
    from .game_state import GameState


class _UnsetType:
    """Sentinel indicating that an optional field was not provided."""

    __slots__ = ()

    def __repr__(self) -> str:  # pragma: no cover - trivial representation
        return "UNSET"


UNSET: Any = _UnsetType()
"""Marks an override that was not given, as opposed to an explicit ``None``."""

QualityView = Mapping[str, float]
Predicate = Callable[["GameState", QualityView], Any]
Action = Callable[["GameState", MutableMapping[str, float]], Any]
Expression = Callable[["GameState", QualityView], Any]


@dataclass(frozen=True)
class StateDependency:
    """A function evaluated against live state while compiling content."""

    kind: Literal["predicate", "insert"]
    fn: Expression

    def __post_init__(self) -> None:
        if self.kind not in ("predicate", "insert"):
            raise ValueError(f"Unknown state dependency kind: {self.kind!r}")
        if not callable(self.fn):
            raise TypeError("State dependency fn must be callable")


@dataclass(frozen=True)
class Block:
    """A paragraph, heading or other block wrapping nested content."""

    kind: str
    content: Tuple["ContentNode", ...] = ()


@dataclass(frozen=True)
class Conditional:
    """Content included only when ``state_dependencies[predicate]`` is true."""

    predicate: int
    content: Tuple["ContentNode", ...] = ()


@dataclass(frozen=True)
class Insert:
    """Placeholder replaced by the stringified ``state_dependencies[insert]``."""

    insert: int


ContentNode = Union[str, Block, Conditional, Insert]


@dataclass(frozen=True)
class Content:
    """A precompiled content tree and the dependencies its nodes refer to."""

    nodes: Tuple[ContentNode, ...] = ()
    state_dependencies: Tuple[StateDependency, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "state_dependencies", tuple(self.state_dependencies))


Text = Union[str, Content]


@dataclass(frozen=True)
class Option:
    """An authored link from a scene to a scene id or to every scene in a tag."""

    scene_id: str | None = None
    tag: str | None = None
    title: Text | None = None
    priority: float | None = None
    order: float | None = None
    frequency: Any = UNSET
    view_if: Predicate | None = None

    def __post_init__(self) -> None:
        if (self.scene_id is None) == (self.tag is None):
            raise ValueError("An option must reference exactly one of scene_id or tag")

    @classmethod
    def parse(cls, reference: str, **overrides: Any) -> "Option":
        """Build an option from ``"@scene-id"`` or ``"#tag"`` notation."""

        if not isinstance(reference, str) or len(reference) < 2:
            raise ValueError(f"Invalid option reference: {reference!r}")
        prefix, name = reference[0], reference[1:]
        if prefix == "@":
            return cls(scene_id=name, **overrides)
        if prefix == "#":
            return cls(tag=name, **overrides)
        raise ValueError(
            f"Option reference {reference!r} must start with '@' (scene) or '#' (tag)"
        )

    @property
    def reference(self) -> str:
        return f"@{self.scene_id}" if self.scene_id is not None else f"#{self.tag}"


@dataclass(frozen=True)
class GoToClause:
    """Automatic transition to ``target`` when ``predicate`` holds (or is absent)."""

    target: str
    predicate: Predicate | None = None


@dataclass(frozen=True)
class Scene:
    """A node of the narrative graph."""

    id: str
    title: Text | None = None
    content: Text | None = None
    options: Tuple[Option, ...] = ()
    go_to: Tuple[GoToClause, ...] = ()
    game_over: bool = False
    new_page: bool = False
    signal: str | None = None
    max_visits: int | None = None
    count_visits_max: int | None = None
    min_choices: int | None = None
    max_choices: int | None = None
    priority: float | None = None
    order: float | None = None
    frequency: Any = UNSET
    view_if: Predicate | None = None
    on_arrival: Tuple[Action, ...] = ()
    on_display: Tuple[Action, ...] = ()
    on_departure: Tuple[Action, ...] = ()
    set_root: bool = False
    tags: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            raise ValueError("Scene id must be a non-empty string")
        for name in ("options", "go_to", "on_arrival", "on_display", "on_departure", "tags"):
            object.__setattr__(self, name, tuple(getattr(self, name)))


@dataclass(frozen=True)
class QualityDefinition:
    """Bounds, validity and signalling rules for one quality."""

    initial: float | None = None
    minimum: float | None = None
    maximum: float | None = None
    is_valid: Predicate | None = None
    signal: str | None = None

    def __post_init__(self) -> None:
        if (
            self.minimum is not None
            and self.maximum is not None
            and self.minimum > self.maximum
        ):
            raise ValueError("Quality minimum cannot exceed its maximum")


def build_tag_lookup(scenes: Iterable[Scene]) -> dict[str, Tuple[str, ...]]:
    """Index scene ids by the tags they declare, preserving scene order."""

    lookup: dict[str, list[str]] = {}
    for scene in scenes:
        for tag in scene.tags:
            members = lookup.setdefault(tag, [])
            if scene.id not in members:
                members.append(scene.id)
    return {tag: tuple(ids) for tag, ids in lookup.items()}


@dataclass(frozen=True)
class Game:
    """The complete, read-only definition of a game.

    ``tag_lookup`` maps each tag to the scene ids carrying it. When it is not
    given it is built from the scenes' own ``tags``.
    """

    scenes: Mapping[str, Scene]
    qualities: Mapping[str, QualityDefinition] = field(default_factory=dict)
    tag_lookup: Mapping[str, Tuple[str, ...]] | None = None
    first_scene: str | None = None
    root_scene: str | None = None
    scene_signal: str | None = None
    quality_signal: str | None = None
    title: str | None = None
    author: str | None = None

    def __post_init__(self) -> None:
        scenes = dict(self.scenes)
        for scene_id, scene in scenes.items():
            if scene.id != scene_id:
                raise ValueError(
                    f"Scene registered as '{scene_id}' declares id '{scene.id}'"
                )

        if self.tag_lookup is None:
            tag_lookup = build_tag_lookup(scenes.values())
        else:
            tag_lookup = {tag: tuple(ids) for tag, ids in self.tag_lookup.items()}

        object.__setattr__(self, "scenes", MappingProxyType(scenes))
        object.__setattr__(self, "qualities", MappingProxyType(dict(self.qualities)))
        object.__setattr__(self, "tag_lookup", MappingProxyType(tag_lookup))

    @classmethod
    def from_scenes(cls, scenes: Iterable[Scene], **kwargs: Any) -> "Game":
        """Build a game from an iterable of scenes keyed by their ids."""

        return cls(scenes={scene.id: scene for scene in scenes}, **kwargs)

    def get_scene(self, scene_id: str) -> Scene:
        """Return the scene registered under ``scene_id``.

        Raises:
            UnknownSceneError: If no such scene exists.
        """

        try:
            return self.scenes[scene_id]
        except KeyError:
            raise UnknownSceneError(scene_id) from None

    def tagged(self, tag: str) -> Tuple[str, ...]:
        """Return the scene ids carrying ``tag`` (empty for unknown tags)."""

        return self.tag_lookup.get(tag, ())


__all__ = [
    "UNSET",
    "Action",
    "Block",
    "Conditional",
    "Content",
    "ContentNode",
    "Expression",
    "Game",
    "GoToClause",
    "Insert",
    "Option",
    "Predicate",
    "QualityDefinition",
    "Scene",
    "StateDependency",
    "Text",
    "build_tag_lookup",
]
