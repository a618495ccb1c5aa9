from __future__ import annotations

import pytest

from storygraph.callables import FaultLog
from storygraph.content import ContentCompiler, paragraph, stringify
from storygraph.errors import InternalConsistencyFault
from storygraph.game import Block, Conditional, Content, Insert, StateDependency
from storygraph.game_state import GameState


def _compile(content: Content, qualities: dict | None = None, **kwargs: object) -> list:
    state = GameState(qualities=dict(qualities or {}))
    return ContentCompiler(**kwargs).compile(content, state, state.qualities)  # type: ignore[arg-type]


def test_plain_text_becomes_a_paragraph() -> None:
    compiler = ContentCompiler()
    state = GameState()

    assert compiler.compile("Hello", state, {}) == [paragraph("Hello")]
    assert compiler.compile_title("Hello", state, {}) == ["Hello"]


def test_conditionals_are_spliced_or_dropped() -> None:
    content = Content(
        nodes=(
            Block(
                "paragraph",
                (
                    "You see ",
                    Conditional(0, ("a lantern",)),
                    Conditional(1, ("a ghost",)),
                    ".",
                ),
            ),
        ),
        state_dependencies=(
            StateDependency("predicate", lambda state, Q: Q.get("lit", 0) > 0),
            StateDependency("predicate", lambda state, Q: Q.get("haunted", 0) > 0),
        ),
    )

    assert _compile(content, {"lit": 1}) == [
        {"type": "paragraph", "content": ["You see ", "a lantern", "."]}
    ]


def test_inserts_are_stringified() -> None:
    content = Content(
        nodes=("Gold: ", Insert(0), ", flag: ", Insert(1), ", nothing: ", Insert(2)),
        state_dependencies=(
            StateDependency("insert", lambda state, Q: Q["gold"]),
            StateDependency("insert", lambda state, Q: True),
            StateDependency("insert", lambda state, Q: None),
        ),
    )

    assert _compile(content, {"gold": 12.0}) == [
        "Gold: ",
        "12",
        ", flag: ",
        "true",
        ", nothing: ",
        "",
    ]


def test_each_dependency_is_evaluated_once() -> None:
    calls: list[int] = []

    def _count(state: GameState, Q: dict) -> int:
        calls.append(1)
        return len(calls)

    content = Content(
        nodes=(Insert(0), Block("emphasis", (Insert(0),))),
        state_dependencies=(StateDependency("insert", _count),),
    )

    assert _compile(content) == ["1", {"type": "emphasis", "content": ["1"]}]
    assert calls == [1]


def test_nested_conditionals_inside_blocks() -> None:
    content = Content(
        nodes=(
            Conditional(
                0,
                (Block("heading", ("Title",)), Conditional(1, ("hidden",))),
            ),
        ),
        state_dependencies=(
            StateDependency("predicate", lambda state, Q: True),
            StateDependency("predicate", lambda state, Q: False),
        ),
    )

    assert _compile(content) == [{"type": "heading", "content": ["Title"]}]


def test_failing_dependencies_fall_back_to_defaults() -> None:
    faults = FaultLog()

    def _broken(state: GameState, Q: dict) -> None:
        raise KeyError("gold")

    content = Content(
        nodes=(Insert(0), Conditional(1, ("shown",))),
        state_dependencies=(
            StateDependency("insert", _broken),
            StateDependency("predicate", _broken),
        ),
    )

    assert _compile(content, faults=faults) == [""]
    assert len(faults) == 2


def test_missing_dependency_index_is_an_internal_fault() -> None:
    content = Content(nodes=(Insert(3),))

    with pytest.raises(InternalConsistencyFault):
        _compile(content)


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, ""), (False, "false"), (3.0, "3"), (2.5, "2.5"), (7, "7"), ("x", "x")],
)
def test_stringify(value: object, expected: str) -> None:
    assert stringify(value) == expected
