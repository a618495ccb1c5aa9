"""Compile content and title trees against live game state."""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Sequence

from .callables import FaultLog, run_expression, run_predicate
from .game import Block, Conditional, Content, ContentNode, Insert, Text
from .game_state import GameState
from .errors import InternalConsistencyFault


def paragraph(*content: Any) -> dict[str, Any]:
    """Return a compiled paragraph node."""

    return {"type": "paragraph", "content": list(content)}


def stringify(value: Any) -> str:
    """Render an insert value the way it should appear in text."""

    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class ContentCompiler:
    """Evaluate :class:`~storygraph.game.Content` trees into plain data.

    The result is a list made of strings and ``{"type": ..., "content": [...]}``
    mappings. Every state dependency is evaluated once per compilation, before
    any node is substituted; false conditionals are dropped entirely and
    inserts become strings.
    """

    def __init__(self, *, faults: FaultLog | None = None) -> None:
        self._faults = faults

    def compile(
        self, content: Text, state: GameState, qualities: Mapping[str, float]
    ) -> List[Any]:
        """Compile scene content; plain text becomes a single paragraph."""

        if isinstance(content, str):
            return [paragraph(content)]
        return self._compile_tree(content, state, qualities)

    def compile_title(
        self, title: Text, state: GameState, qualities: Mapping[str, float]
    ) -> List[Any]:
        """Compile a scene or option title; plain text becomes ``[text]``."""

        if isinstance(title, str):
            return [title]
        return self._compile_tree(title, state, qualities)

    def _compile_tree(
        self, content: Content, state: GameState, qualities: Mapping[str, float]
    ) -> List[Any]:
        if not isinstance(content, Content):
            raise TypeError(f"Expected str or Content, got {type(content)!r}")

        results = self._evaluate_dependencies(content, state, qualities)
        return self._substitute(content.nodes, results)

    def _evaluate_dependencies(
        self, content: Content, state: GameState, qualities: Mapping[str, float]
    ) -> List[Any]:
        results: List[Any] = []
        for index, dependency in enumerate(content.state_dependencies):
            context = f"content dependency {index}"
            if dependency.kind == "predicate":
                results.append(
                    run_predicate(
                        dependency.fn,
                        False,
                        state,
                        qualities,
                        faults=self._faults,
                        context=context,
                    )
                )
            else:
                results.append(
                    run_expression(
                        dependency.fn,
                        None,
                        state,
                        qualities,
                        faults=self._faults,
                        context=context,
                    )
                )
        return results

    def _substitute(
        self, nodes: Iterable[ContentNode], results: Sequence[Any]
    ) -> List[Any]:
        compiled: List[Any] = []
        for node in nodes:
            if isinstance(node, str):
                compiled.append(node)
            elif isinstance(node, Block):
                compiled.append(
                    {"type": node.kind, "content": self._substitute(node.content, results)}
                )
            elif isinstance(node, Conditional):
                if _lookup(results, node.predicate, "predicate"):
                    compiled.extend(self._substitute(node.content, results))
            elif isinstance(node, Insert):
                compiled.append(stringify(_lookup(results, node.insert, "insert")))
            else:
                raise TypeError(f"Unsupported content node: {node!r}")
        return compiled


def _lookup(results: Sequence[Any], index: int, kind: str) -> Any:
    if not 0 <= index < len(results):
        raise InternalConsistencyFault(
            f"Content {kind} refers to missing state dependency {index}"
        )
    return results[index]


__all__ = ["ContentCompiler", "paragraph", "stringify"]
