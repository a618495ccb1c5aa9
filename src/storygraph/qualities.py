"""Clamped, validated quality values with change notification."""

from __future__ import annotations

import logging
import math
from collections import ChainMap
from typing import Any, Iterator, MutableMapping

from .callables import FaultLog, run_predicate
from .game import Game, QualityDefinition
from .game_state import GameState
from .signals import SignalEmitter

logger = logging.getLogger(__name__)


def _validate_number(quality_id: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(
            f"Quality '{quality_id}' must be set to a number, got {type(value)!r}"
        )
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"Quality '{quality_id}' must be finite, got {value!r}")
    return value


def clamp(value: float, definition: QualityDefinition | None) -> float:
    """Limit ``value`` to the bounds declared by ``definition``."""

    if definition is None:
        return value
    if definition.minimum is not None and value < definition.minimum:
        return definition.minimum
    if definition.maximum is not None and value > definition.maximum:
        return definition.maximum
    return value


class QualityStore:
    """Apply quality rules to the ``qualities`` mapping of a game state.

    Values are clamped to the quality's ``[minimum, maximum]`` range and then
    checked with its ``is_valid`` predicate. An invalid value leaves the
    quality unset, removing any earlier value. Each stored change is
    reported through the :class:`SignalEmitter` at the moment it happens.
    """

    def __init__(
        self,
        game: Game,
        emitter: SignalEmitter,
        *,
        faults: FaultLog | None = None,
    ) -> None:
        self._game = game
        self._emitter = emitter
        self._faults = faults

    def get(self, state: GameState, quality_id: str, default: Any = None) -> Any:
        return state.qualities.get(quality_id, default)

    def set(self, state: GameState, quality_id: str, value: Any) -> None:
        """Store ``value`` for ``quality_id`` after clamping and validation."""

        if value is None:
            self.unset(state, quality_id)
            return

        definition = self._game.qualities.get(quality_id)
        candidate = clamp(_validate_number(quality_id, value), definition)
        previous = state.qualities.get(quality_id)

        if definition is not None and definition.is_valid is not None:
            proposed = ChainMap({quality_id: candidate}, state.qualities)
            valid = run_predicate(
                definition.is_valid,
                True,
                state,
                proposed,
                faults=self._faults,
                context=f"quality '{quality_id}' is-valid",
            )
            if not valid:
                logger.debug("Rejected value %r for quality '%s'", candidate, quality_id)
                state.qualities.pop(quality_id, None)
                return

        state.qualities[quality_id] = candidate
        if previous != candidate:
            self._emitter.quality_changed(quality_id, candidate, previous)

    def unset(self, state: GameState, quality_id: str) -> bool:
        """Remove ``quality_id``; return ``True`` when it had a value."""

        return state.qualities.pop(quality_id, None) is not None

    def apply_initial_values(self, state: GameState) -> None:
        """Set declared initial values for qualities that have no value yet."""

        for quality_id, definition in self._game.qualities.items():
            if definition.initial is None or quality_id in state.qualities:
                continue
            self.set(state, quality_id, definition.initial)

    def accessor(self, state: GameState) -> "QualityAccessor":
        return QualityAccessor(self, state)


class QualityAccessor(MutableMapping[str, Any]):
    """The ``Q`` mapping handed to authored callables.

    Reads come straight from the state; writes and deletions go through the
    :class:`QualityStore`, so ``Q["gold"] += 5`` is clamped, validated and
    signalled like any other change.
    """

    def __init__(self, store: QualityStore, state: GameState) -> None:
        self._store = store
        self._state = state

    def __getitem__(self, quality_id: str) -> Any:
        return self._state.qualities[quality_id]

    def __setitem__(self, quality_id: str, value: Any) -> None:
        self._store.set(self._state, quality_id, value)

    def __delitem__(self, quality_id: str) -> None:
        if not self._store.unset(self._state, quality_id):
            raise KeyError(quality_id)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._state.qualities))

    def __len__(self) -> int:
        return len(self._state.qualities)

    def __repr__(self) -> str:
        return f"QualityAccessor({self._state.qualities!r})"


__all__ = ["QualityAccessor", "QualityStore", "clamp"]
