"""The scene engine: a deterministic state machine over authored scenes."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Iterable, List, Mapping

from .callables import FaultLog, run_actions, run_predicate
from .choices import ChoiceSelector
from .content import ContentCompiler, paragraph
from .display import DisplayHooks
from .errors import ChoiceIndexError, EngineStateError, NoProgressError
from .game import Action, Game, Scene
from .game_state import Choice, GameState
from .qualities import QualityAccessor, QualityStore
from .random_source import RandomSource
from .settings import EngineSettings
from .signals import SignalEmitter

logger = logging.getLogger(__name__)


class EnginePhase(str, Enum):
    """Where the engine is in its traversal cycle."""

    UNINITIALIZED = "uninitialized"
    IN_SCENE = "in-scene"
    AWAITING_CHOICE = "awaiting-choice"
    GAME_OVER = "game-over"


class SceneEngine:
    """Drive a :class:`~storygraph.game.Game` and report progress to a display.

    The engine owns exactly one :class:`~storygraph.game_state.GameState`.
    :meth:`begin_game` creates a fresh one and :meth:`set_state` replaces it
    wholesale; :meth:`choose` and :meth:`go_to_scene` advance it. Every
    operation runs to completion before returning.

    Exceptions raised by authored callables are recorded in :attr:`faults`
    and logged, and the transition carries on. Set
    ``EngineSettings.raise_on_fault`` to make them propagate instead.
    """

    def __init__(
        self,
        game: Game,
        display: object | None = None,
        *,
        random_source: RandomSource | None = None,
        settings: EngineSettings | None = None,
    ) -> None:
        self._game = game
        self._settings = settings or EngineSettings()
        self._display = display if isinstance(display, DisplayHooks) else DisplayHooks(display)
        self._faults = FaultLog()
        self._fault_sink: FaultLog | None = (
            None if self._settings.raise_on_fault else self._faults
        )

        self._emitter = SignalEmitter(game, self._display.signal)
        self._qualities = QualityStore(game, self._emitter, faults=self._fault_sink)
        self._compiler = ContentCompiler(faults=self._fault_sink)
        self._selector = ChoiceSelector(
            game,
            self._compiler,
            random_source or RandomSource.from_time(),
            faults=self._fault_sink,
            fallback_title=self._settings.scene_complete_title,
        )

        self._state = GameState()
        self._phase = EnginePhase.UNINITIALIZED

    @property
    def game(self) -> Game:
        return self._game

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def state(self) -> GameState:
        """The live game state. Mutating it directly bypasses quality rules."""

        return self._state

    @property
    def phase(self) -> EnginePhase:
        return self._phase

    @property
    def faults(self) -> FaultLog:
        return self._faults

    @property
    def random_source(self) -> RandomSource:
        return self._selector.random_source

    @property
    def qualities(self) -> QualityAccessor:
        """The ``Q`` mapping for the live state; writes obey quality rules."""

        return self._qualities.accessor(self._state)

    def get_root_scene_id(self) -> str:
        if self._state.root_scene_id is not None:
            return self._state.root_scene_id
        return (
            self._game.root_scene
            or self._game.first_scene
            or self._settings.default_root_scene
        )

    def get_current_scene(self) -> Scene:
        if self._state.scene_id is None:
            raise EngineStateError("No scene has been entered yet.")
        return self._game.get_scene(self._state.scene_id)

    def get_current_choices(self) -> List[Choice] | None:
        return self._state.choices

    def is_game_over(self) -> bool:
        return self._state.game_over

    def begin_game(self) -> "SceneEngine":
        """Start a new game at the first scene, discarding any current state."""

        start_id = (
            self._game.first_scene
            or self._game.root_scene
            or self._settings.default_root_scene
        )
        self._state = GameState(
            root_scene_id=(
                self._game.root_scene
                or self._game.first_scene
                or self._settings.default_root_scene
            )
        )
        self._faults.clear()
        self._phase = EnginePhase.IN_SCENE
        logger.debug("Beginning game at scene '%s'", start_id)

        self._qualities.apply_initial_values(self._state)
        return self.go_to_scene(start_id)

    def choose(self, index: int) -> "SceneEngine":
        """Follow the choice at ``index`` of the currently offered list.

        Raises:
            EngineStateError: If no choice is pending.
            ChoiceIndexError: If ``index`` is outside the offered choices.
            UnknownSceneError: If the chosen scene is not defined. The state
                is left untouched.
        """

        if self._phase is not EnginePhase.AWAITING_CHOICE:
            raise EngineStateError(
                f"Cannot choose while the engine is {self._phase.value}."
            )

        choices = self._state.choices or []
        if index < 0 or index >= len(choices):
            raise ChoiceIndexError(index, len(choices))

        choice = choices[index]
        self._game.get_scene(choice.id)
        self._state.choices = None
        self._state.turn += 1
        logger.debug("Turn %d: chose '%s'", self._state.turn, choice.id)
        return self.go_to_scene(choice.id)

    def go_to_scene(self, scene_id: str) -> "SceneEngine":
        """Enter ``scene_id`` and follow any go-to chain it starts.

        Raises:
            EngineStateError: If the game has not begun.
            UnknownSceneError: If a scene on the way is not defined.
            NoProgressError: If go-to hops exceed ``max_go_to_hops``.
        """

        if self._phase is EnginePhase.UNINITIALIZED:
            raise EngineStateError("Call begin_game() or set_state() first.")

        current: str | None = scene_id
        for _ in range(self._settings.max_go_to_hops + 1):
            current = self._enter_scene(current)
            if current is None:
                return self
        raise NoProgressError(scene_id, self._settings.max_go_to_hops)

    def display_scene_content(self) -> "SceneEngine":
        """Show the current scene's content, clearing old choices first."""

        scene = self.get_current_scene()
        qualities = self.qualities

        if scene.new_page:
            self._display.new_page()
        self._display.remove_choices()

        self._emitter.display(scene)
        self._run_actions(scene.on_display, qualities, f"on-display of scene '{scene.id}'")

        if scene.content:
            self._display.display_content(
                self._compiler.compile(scene.content, self._state, qualities)
            )
        return self

    def game_over(self) -> "SceneEngine":
        """End the game and tell the display."""

        if self._phase is EnginePhase.UNINITIALIZED:
            raise EngineStateError("Call begin_game() or set_state() first.")

        self._state.game_over = True
        self._state.choices = None
        self._phase = EnginePhase.GAME_OVER
        logger.debug("Game over at scene '%s'", self._state.scene_id)
        self._display.display_content([paragraph(self._settings.game_over_text)])
        return self

    def get_exportable_state(self) -> dict[str, Any]:
        """Return a plain-data snapshot of the current state."""

        return self._state.to_payload()

    def set_state(self, state: GameState | Mapping[str, Any]) -> "SceneEngine":
        """Replace the current state with a previously exported one.

        The state is restored verbatim, including the offered choices. No
        actions run and no choices are recompiled, so a restored game shows
        exactly what was on screen when it was saved.

        Raises:
            ValueError: If the payload is malformed.
            UnknownSceneError: If its scene or any offered choice refers to a
                scene this game lacks.
        """

        restored = state.copy() if isinstance(state, GameState) else GameState.from_payload(state)
        if restored.scene_id is None:
            raise ValueError("Cannot restore a state that has not entered a scene.")
        self._game.get_scene(restored.scene_id)
        for choice in restored.choices or ():
            self._game.get_scene(choice.id)
        if restored.root_scene_id is None:
            restored.root_scene_id = self._settings.default_root_scene

        self._state = restored
        self._faults.clear()
        self._phase = (
            EnginePhase.GAME_OVER if restored.game_over else EnginePhase.AWAITING_CHOICE
        )
        logger.debug(
            "Restored state at scene '%s' (turn %d)", restored.scene_id, restored.turn
        )
        return self

    def _enter_scene(self, scene_id: str) -> str | None:
        """Run the arrival pipeline for one scene; return a go-to target, if any."""

        scene = self._game.get_scene(scene_id)
        state = self._state
        qualities = self.qualities
        previous_id = state.scene_id

        state.record_visit(scene_id)
        state.choices = None
        state.game_over = False

        if previous_id is not None and previous_id != scene_id:
            previous = self._game.get_scene(previous_id)
            self._emitter.departure(previous, scene_id)
            self._run_actions(
                previous.on_departure, qualities, f"on-departure of scene '{previous_id}'"
            )

        state.scene_id = scene_id
        if scene.set_root:
            state.root_scene_id = scene_id
        self._phase = EnginePhase.IN_SCENE
        logger.debug("Entered scene '%s' from '%s'", scene_id, previous_id)

        self._emitter.arrival(scene, previous_id)
        self._run_actions(scene.on_arrival, qualities, f"on-arrival of scene '{scene_id}'")
        self.display_scene_content()

        if scene.game_over:
            self.game_over()
            return None

        for index, clause in enumerate(scene.go_to):
            if run_predicate(
                clause.predicate,
                True,
                state,
                qualities,
                faults=self._fault_sink,
                context=f"go-to clause {index} of scene '{scene_id}'",
            ):
                logger.debug("Scene '%s' goes to '%s'", scene_id, clause.target)
                return clause.target

        choices = self._selector.compile_choices(scene, state, qualities)
        if not choices:
            self.game_over()
            return None

        state.choices = choices
        self._phase = EnginePhase.AWAITING_CHOICE
        self._display.display_choices(list(choices))
        return None

    def _run_actions(
        self, actions: Iterable[Action], qualities: QualityAccessor, context: str
    ) -> None:
        run_actions(
            actions,
            self._state,
            qualities,
            faults=self._fault_sink,
            context=context,
        )


__all__ = ["EnginePhase", "SceneEngine"]
