"""Load game definitions from JSON documents.

A definition is a JSON object using the authoring key names
(``firstScene``, ``goTo``, ``onArrival``, ``viewIf``, ...). Executable
fields are written as ``{"$code": "..."}``: either a Python expression or a
function body, both evaluated with ``state`` and ``Q`` in scope::

    {"viewIf": {"$code": "Q.get('gold', 0) >= 5"}}
    {"onArrival": [{"$code": "Q['gold'] = Q.get('gold', 0) - 5"}]}

Any syntax or structural problem raises
:class:`~storygraph.errors.MalformedDefinitionError`; a partially valid
document never produces a game. Code in a definition runs with full Python
privileges, so only load definitions you trust.
"""

from __future__ import annotations

import builtins
import json
import logging
import math
import textwrap
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Mapping, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .errors import MalformedDefinitionError
from .game import (
    UNSET,
    Block,
    Conditional,
    Content,
    ContentNode,
    Game,
    GoToClause,
    Insert,
    Option,
    QualityDefinition,
    Scene,
    StateDependency,
    Text,
)

logger = logging.getLogger(__name__)

_CODE_GLOBALS: Dict[str, Any] = {"__builtins__": builtins, "math": math}


class _DefinitionModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )


class CodeModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: str = Field(alias="$code")


class DependencyModel(_DefinitionModel):
    type: Literal["predicate", "insert"]
    fn: CodeModel


class ContentModel(_DefinitionModel):
    content: List[Any] = Field(default_factory=list)
    state_dependencies: List[DependencyModel] = Field(default_factory=list)


TextModel = Union[str, ContentModel]


class OptionModel(_DefinitionModel):
    id: str
    title: TextModel | None = None
    priority: float | None = None
    order: float | None = None
    frequency: float | None = Field(default=None, ge=0)
    view_if: CodeModel | None = None


class GoToModel(_DefinitionModel):
    id: str
    predicate: CodeModel | None = None


class SceneModel(_DefinitionModel):
    id: str | None = None
    title: TextModel | None = None
    content: TextModel | None = None
    options: List[OptionModel] = Field(default_factory=list)
    go_to: str | List[GoToModel] | None = None
    game_over: bool = False
    new_page: bool = False
    signal: str | None = None
    max_visits: int | None = Field(default=None, ge=0)
    count_visits_max: int | None = Field(default=None, ge=0)
    min_choices: int | None = Field(default=None, ge=0)
    max_choices: int | None = Field(default=None, ge=0)
    priority: float | None = None
    order: float | None = None
    frequency: float | None = Field(default=None, ge=0)
    view_if: CodeModel | None = None
    on_arrival: List[CodeModel] = Field(default_factory=list)
    on_display: List[CodeModel] = Field(default_factory=list)
    on_departure: List[CodeModel] = Field(default_factory=list)
    set_root: bool = False
    tags: List[str] = Field(default_factory=list)


class QualityModel(_DefinitionModel):
    name: str | None = None
    initial: float | None = None
    minimum: float | None = Field(default=None, alias="min")
    maximum: float | None = Field(default=None, alias="max")
    is_valid: CodeModel | None = None
    signal: str | None = None


class GameModel(_DefinitionModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    title: str | None = None
    author: str | None = None
    first_scene: str | None = None
    root_scene: str | None = None
    scene_signal: str | None = None
    quality_signal: str | None = None
    scenes: Dict[str, SceneModel]
    qualities: Dict[str, QualityModel] = Field(default_factory=dict)
    tag_lookup: Dict[str, Union[List[str], Dict[str, bool]]] | None = None


def compile_code(source: str, *, where: str = "<definition>") -> Callable[[Any, Any], Any]:
    """Turn authored code into a ``(state, Q)`` callable.

    ``source`` is tried first as an expression, whose value is returned, and
    otherwise as the body of a function.

    Raises:
        MalformedDefinitionError: If ``source`` is neither.
    """

    if not source.strip():
        raise MalformedDefinitionError(f"Empty code in {where}.")

    try:
        expression = compile(source.strip(), where, "eval")
    except SyntaxError:
        expression = None

    if expression is not None:

        def _evaluate(state: Any, Q: Any) -> Any:
            return eval(expression, {**_CODE_GLOBALS, "state": state, "Q": Q})

        _evaluate.__qualname__ = _evaluate.__name__ = f"<{where}>"
        return _evaluate

    wrapped = "def _authored(state, Q):\n" + textwrap.indent(
        textwrap.dedent(source), "    "
    )
    try:
        code = compile(wrapped, where, "exec")
    except SyntaxError as exc:
        line = exc.lineno - 1 if exc.lineno else None
        raise MalformedDefinitionError(
            f"Invalid code in {where}: {exc.msg}",
            line=line,
            column=exc.offset,
        ) from exc

    namespace = dict(_CODE_GLOBALS)
    exec(code, namespace)
    function = namespace["_authored"]
    function.__qualname__ = function.__name__ = f"<{where}>"
    return function


def _compile_optional(model: CodeModel | None, where: str) -> Callable[[Any, Any], Any] | None:
    return None if model is None else compile_code(model.code, where=where)


def _compile_actions(models: List[CodeModel], where: str) -> Tuple[Callable[[Any, Any], Any], ...]:
    return tuple(
        compile_code(model.code, where=f"{where}[{index}]")
        for index, model in enumerate(models)
    )


def _convert_nodes(
    raw_nodes: Any,
    dependencies: Tuple[StateDependency, ...],
    where: str,
) -> Tuple[ContentNode, ...]:
    if not isinstance(raw_nodes, list):
        raise MalformedDefinitionError(f"{where} must be a list of content nodes.")

    nodes: List[ContentNode] = []
    for index, node in enumerate(raw_nodes):
        path = f"{where}[{index}]"
        if isinstance(node, str):
            nodes.append(node)
            continue
        if not isinstance(node, Mapping):
            raise MalformedDefinitionError(f"{path} must be a string or an object.")

        kind = node.get("type")
        if kind == "conditional":
            predicate = _dependency_index(node.get("predicate"), "predicate", dependencies, path)
            children = _convert_nodes(node.get("content", []), dependencies, f"{path}.content")
            nodes.append(Conditional(predicate=predicate, content=children))
        elif kind == "insert":
            insert = _dependency_index(node.get("insert"), "insert", dependencies, path)
            nodes.append(Insert(insert=insert))
        elif isinstance(kind, str) and kind:
            children = _convert_nodes(node.get("content", []), dependencies, f"{path}.content")
            nodes.append(Block(kind=kind, content=children))
        else:
            raise MalformedDefinitionError(f"{path} must declare a content 'type'.")
    return tuple(nodes)


def _dependency_index(
    value: Any,
    kind: str,
    dependencies: Tuple[StateDependency, ...],
    path: str,
) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedDefinitionError(f"{path} must reference a {kind} by index.")
    if not 0 <= value < len(dependencies):
        raise MalformedDefinitionError(
            f"{path} refers to missing state dependency {value}."
        )
    if dependencies[value].kind != kind:
        raise MalformedDefinitionError(
            f"{path} refers to dependency {value}, which is not a {kind}."
        )
    return value


def _convert_text(model: TextModel | None, where: str) -> Text | None:
    if model is None or isinstance(model, str):
        return model

    dependencies = tuple(
        StateDependency(
            kind=dependency.type,
            fn=compile_code(dependency.fn.code, where=f"{where}.stateDependencies[{index}]"),
        )
        for index, dependency in enumerate(model.state_dependencies)
    )
    nodes = _convert_nodes(model.content, dependencies, f"{where}.content")
    return Content(nodes=nodes, state_dependencies=dependencies)


def _frequency(model: SceneModel | OptionModel) -> Any:
    return model.frequency if "frequency" in model.model_fields_set else UNSET


def _convert_option(model: OptionModel, where: str) -> Option:
    try:
        return Option.parse(
            model.id,
            title=_convert_text(model.title, f"{where}.title"),
            priority=model.priority,
            order=model.order,
            frequency=_frequency(model),
            view_if=_compile_optional(model.view_if, f"{where}.viewIf"),
        )
    except ValueError as exc:
        if isinstance(exc, MalformedDefinitionError):
            raise
        raise MalformedDefinitionError(f"{where}: {exc}") from exc


def _convert_go_to(value: str | List[GoToModel] | None, where: str) -> Tuple[GoToClause, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (GoToClause(target=value),)
    return tuple(
        GoToClause(
            target=clause.id,
            predicate=_compile_optional(clause.predicate, f"{where}[{index}].predicate"),
        )
        for index, clause in enumerate(value)
    )


def _convert_scene(scene_id: str, model: SceneModel) -> Scene:
    where = f"scenes.{scene_id}"
    if model.id is not None and model.id != scene_id:
        raise MalformedDefinitionError(
            f"Scene '{scene_id}' declares a different id '{model.id}'."
        )

    return Scene(
        id=scene_id,
        title=_convert_text(model.title, f"{where}.title"),
        content=_convert_text(model.content, f"{where}.content"),
        options=tuple(
            _convert_option(option, f"{where}.options[{index}]")
            for index, option in enumerate(model.options)
        ),
        go_to=_convert_go_to(model.go_to, f"{where}.goTo"),
        game_over=model.game_over,
        new_page=model.new_page,
        signal=model.signal,
        max_visits=model.max_visits,
        count_visits_max=model.count_visits_max,
        min_choices=model.min_choices,
        max_choices=model.max_choices,
        priority=model.priority,
        order=model.order,
        frequency=_frequency(model),
        view_if=_compile_optional(model.view_if, f"{where}.viewIf"),
        on_arrival=_compile_actions(model.on_arrival, f"{where}.onArrival"),
        on_display=_compile_actions(model.on_display, f"{where}.onDisplay"),
        on_departure=_compile_actions(model.on_departure, f"{where}.onDeparture"),
        set_root=model.set_root,
        tags=tuple(model.tags),
    )


def _convert_quality(quality_id: str, model: QualityModel) -> QualityDefinition:
    return QualityDefinition(
        initial=model.initial,
        minimum=model.minimum,
        maximum=model.maximum,
        is_valid=_compile_optional(model.is_valid, f"qualities.{quality_id}.isValid"),
        signal=model.signal,
    )


def _convert_tag_lookup(
    raw: Dict[str, Union[List[str], Dict[str, bool]]] | None,
) -> Dict[str, Tuple[str, ...]] | None:
    if raw is None:
        return None

    lookup: Dict[str, Tuple[str, ...]] = {}
    for tag, members in raw.items():
        if isinstance(members, dict):
            lookup[tag] = tuple(scene_id for scene_id, flag in members.items() if flag)
        else:
            lookup[tag] = tuple(members)
    return lookup


def _check_references(game: Game) -> None:
    problems: List[str] = []

    for label, scene_id in (("firstScene", game.first_scene), ("rootScene", game.root_scene)):
        if scene_id is not None and scene_id not in game.scenes:
            problems.append(f"{label} refers to unknown scene '{scene_id}'")

    for tag, members in game.tag_lookup.items():
        for scene_id in members:
            if scene_id not in game.scenes:
                problems.append(f"tag '{tag}' lists unknown scene '{scene_id}'")

    for scene in game.scenes.values():
        for option in scene.options:
            if option.scene_id is not None and option.scene_id not in game.scenes:
                problems.append(
                    f"scene '{scene.id}' links to unknown scene '{option.scene_id}'"
                )
            elif option.tag is not None and option.tag not in game.tag_lookup:
                logger.warning(
                    "Scene '%s' links to tag '%s', which no scene carries",
                    scene.id,
                    option.tag,
                )
        for clause in scene.go_to:
            if clause.target not in game.scenes:
                problems.append(
                    f"scene '{scene.id}' goes to unknown scene '{clause.target}'"
                )

    if problems:
        raise MalformedDefinitionError(
            "Game definition has unresolved references: " + "; ".join(problems),
            errors=[{"msg": problem} for problem in problems],
        )


def load_game_from_mapping(definition: Mapping[str, Any]) -> Game:
    """Validate a parsed definition and build the corresponding :class:`Game`."""

    if not isinstance(definition, Mapping):
        raise MalformedDefinitionError("Game definitions must be objects at the top level.")

    try:
        model = GameModel.model_validate(dict(definition))
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False)
        first = errors[0]
        location = ".".join(str(part) for part in first["loc"])
        raise MalformedDefinitionError(
            f"Invalid game definition ({len(errors)} problem(s)); "
            f"first at '{location}': {first['msg']}",
            errors=errors,
        ) from exc

    try:
        scenes = {
            scene_id: _convert_scene(scene_id, scene_model)
            for scene_id, scene_model in model.scenes.items()
        }
        qualities = {
            quality_id: _convert_quality(quality_id, quality_model)
            for quality_id, quality_model in model.qualities.items()
        }
        game = Game(
            scenes=scenes,
            qualities=qualities,
            tag_lookup=_convert_tag_lookup(model.tag_lookup),
            first_scene=model.first_scene,
            root_scene=model.root_scene,
            scene_signal=model.scene_signal,
            quality_signal=model.quality_signal,
            title=model.title,
            author=model.author,
        )
    except MalformedDefinitionError:
        raise
    except (TypeError, ValueError) as exc:
        raise MalformedDefinitionError(f"Invalid game definition: {exc}") from exc

    _check_references(game)
    logger.debug("Loaded game %r with %d scenes", game.title, len(game.scenes))
    return game


def load_game_from_json(text: str) -> Game:
    """Parse a JSON document and build the corresponding :class:`Game`."""

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedDefinitionError(
            f"Malformed game definition: {exc.msg} (line {exc.lineno} column {exc.colno})",
            line=exc.lineno,
            column=exc.colno,
        ) from exc
    return load_game_from_mapping(raw)


def load_game_from_file(path: str | Path) -> Game:
    """Load a game definition from a JSON file on disk."""

    data_path = Path(path)
    return load_game_from_json(data_path.read_text(encoding="utf-8"))


__all__ = [
    "compile_code",
    "load_game_from_file",
    "load_game_from_json",
    "load_game_from_mapping",
]
