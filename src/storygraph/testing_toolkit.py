"""Helpers for driving a ``SceneEngine`` during tests and playtests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Sequence

from .engine import SceneEngine
from .game_state import Choice
from .signals import SignalEvent


__all__ = [
    "EngineDebugSnapshot",
    "RecordingDisplay",
    "StepResult",
    "debug_snapshot",
    "step_through",
]


@dataclass
class RecordingDisplay:
    """A display surface that remembers everything it was asked to show.

    ``content`` mirrors what would currently be on the page: a new page
    clears it. ``choices`` and ``signals`` keep every call in order.
    """

    content: List[List[Any]] = field(default_factory=list)
    choices: List[List[Choice]] = field(default_factory=list)
    signals: List[SignalEvent] = field(default_factory=list)
    pages: int = 0
    removals: int = 0

    def display_content(self, content: List[Any]) -> None:
        self.content.append(content)

    def display_choices(self, choices: Sequence[Choice]) -> None:
        self.choices.append(list(choices))

    def remove_choices(self) -> None:
        self.removals += 1

    def new_page(self) -> None:
        self.content = []
        self.pages += 1

    def signal(self, event: SignalEvent) -> None:
        self.signals.append(event)

    def signal_payloads(self) -> List[dict[str, Any]]:
        """Return the recorded signals in their record form."""

        return [event.to_payload() for event in self.signals]

    def clear(self) -> None:
        self.content = []
        self.choices = []
        self.signals = []


@dataclass(frozen=True)
class EngineDebugSnapshot:
    """Structured view of an engine's progress for assertions."""

    phase: str
    scene_id: str | None
    root_scene_id: str | None
    turn: int
    game_over: bool
    visits: tuple[tuple[str, int], ...]
    qualities: tuple[tuple[str, float], ...]
    choice_ids: tuple[str, ...]
    fault_count: int


def debug_snapshot(engine: SceneEngine) -> EngineDebugSnapshot:
    """Capture a deterministic snapshot of ``engine`` for debugging.

    Visits and qualities are sorted by id so snapshots compare reliably.
    """

    state = engine.state
    return EngineDebugSnapshot(
        phase=engine.phase.value,
        scene_id=state.scene_id,
        root_scene_id=state.root_scene_id,
        turn=state.turn,
        game_over=state.game_over,
        visits=tuple(sorted(state.visits.items())),
        qualities=tuple(sorted(state.qualities.items())),
        choice_ids=tuple(choice.id for choice in state.choices or ()),
        fault_count=len(engine.faults),
    )


@dataclass(frozen=True)
class StepResult:
    """Outcome of a single engine step."""

    index: int | None
    scene_id: str | None
    choices: tuple[Choice, ...]
    game_over: bool


def _capture(engine: SceneEngine, index: int | None) -> StepResult:
    return StepResult(
        index=index,
        scene_id=engine.state.scene_id,
        choices=tuple(engine.get_current_choices() or ()),
        game_over=engine.is_game_over(),
    )


def step_through(
    engine: SceneEngine,
    indices: Iterable[int],
    *,
    begin: bool = True,
) -> Sequence[StepResult]:
    """Begin a game (unless ``begin`` is false) and make each choice in turn.

    The first result describes the starting position; each further result
    follows one choice.

    Raises:
        RuntimeError: If a choice is requested after the game has ended.
    """

    if begin:
        engine.begin_game()

    steps: list[StepResult] = [_capture(engine, None)]
    for index in indices:
        if engine.is_game_over():
            raise RuntimeError(
                "No further choices can be made: the game is over."
            )
        engine.choose(index)
        steps.append(_capture(engine, index))

    return tuple(steps)
