"""Exception hierarchy raised by the scene engine and its loader."""

from __future__ import annotations

from typing import Any, Sequence


class StoryGraphError(Exception):
    """Base class for every error raised by :mod:`storygraph`."""


class ChoiceIndexError(StoryGraphError, IndexError):
    """Raised when a player picks a choice that is not currently offered."""

    def __init__(self, index: int, available: int) -> None:
        super().__init__(
            f"No choice at index {index}, only {available} choices are available."
        )
        self.index = index
        self.available = available


class EngineStateError(StoryGraphError, RuntimeError):
    """Raised when an engine operation is invalid in the current phase."""


class MalformedDefinitionError(StoryGraphError, ValueError):
    """Raised when a game definition cannot be parsed or validated.

    Attributes:
        line: One-based line of a JSON syntax error, when known.
        column: One-based column of a JSON syntax error, when known.
        errors: Structured validation details, one mapping per problem.
    """

    def __init__(
        self,
        message: str,
        *,
        line: int | None = None,
        column: int | None = None,
        errors: Sequence[Any] = (),
    ) -> None:
        super().__init__(message)
        self.line = line
        self.column = column
        self.errors = tuple(errors)


class InternalConsistencyFault(StoryGraphError, RuntimeError):
    """Raised when the engine or authored code breaks an internal invariant."""


class UnknownSceneError(InternalConsistencyFault):
    """Raised when a scene id is referenced but not registered in the game."""

    def __init__(self, scene_id: str) -> None:
        super().__init__(f"Scene '{scene_id}' is not defined in this game.")
        self.scene_id = scene_id


class NoProgressError(InternalConsistencyFault):
    """Raised when go-to chains keep hopping without settling on a scene."""

    def __init__(self, scene_id: str, hops: int) -> None:
        super().__init__(
            f"Go-to chain starting at scene '{scene_id}' did not settle after {hops} hops."
        )
        self.scene_id = scene_id
        self.hops = hops


class CallableFault(InternalConsistencyFault):
    """Wraps an exception raised inside an authored action, predicate or insert.

    The wrapped exception is available as ``__cause__``.
    """

    def __init__(self, kind: str, context: str, error: BaseException) -> None:
        super().__init__(f"{kind} failed in {context}: {error!r}")
        self.kind = kind
        self.context = context
        self.__cause__ = error


__all__ = [
    "StoryGraphError",
    "ChoiceIndexError",
    "EngineStateError",
    "MalformedDefinitionError",
    "InternalConsistencyFault",
    "UnknownSceneError",
    "NoProgressError",
    "CallableFault",
]
