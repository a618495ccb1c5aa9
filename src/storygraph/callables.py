"""Helpers for invoking authored actions, predicates and expressions.

Every authored callable takes ``(state, Q)``. A failure inside one is wrapped
in :class:`~storygraph.errors.CallableFault`. When a :class:`FaultLog` is
supplied the fault is recorded there and the helper falls back to its
default, so one broken callable cannot stall a transition. Without a log the
fault is raised.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable, Iterator, List, Mapping, MutableMapping

from .errors import CallableFault

if TYPE_CHECKING:  # pragma: no cover - imported only for type checking
    from .game import Action, Expression, Predicate
    from .game_state import GameState

logger = logging.getLogger(__name__)


class FaultLog:
    """Ordered record of callable faults raised during play."""

    def __init__(self) -> None:
        self._faults: List[CallableFault] = []

    def record(self, fault: CallableFault) -> None:
        self._faults.append(fault)

    def clear(self) -> None:
        self._faults.clear()

    @property
    def latest(self) -> CallableFault | None:
        return self._faults[-1] if self._faults else None

    def __iter__(self) -> Iterator[CallableFault]:
        return iter(tuple(self._faults))

    def __len__(self) -> int:
        return len(self._faults)

    def __bool__(self) -> bool:
        return bool(self._faults)


def _handle_fault(
    kind: str,
    context: str,
    error: Exception,
    faults: FaultLog | None,
) -> None:
    fault = CallableFault(kind, context, error)
    if faults is None:
        raise fault from error
    logger.warning("Recorded %s", fault, exc_info=error)
    faults.record(fault)


def run_actions(
    actions: Iterable["Action"] | None,
    state: "GameState",
    qualities: MutableMapping[str, float],
    *,
    faults: FaultLog | None = None,
    context: str = "actions",
) -> None:
    """Run each action in order; a failing action does not stop the rest."""

    if not actions:
        return

    for index, action in enumerate(actions):
        try:
            action(state, qualities)
        except Exception as exc:
            _handle_fault("action", f"{context}[{index}]", exc, faults)


def run_predicate(
    predicate: "Predicate | None",
    default: bool,
    state: "GameState",
    qualities: Mapping[str, float],
    *,
    faults: FaultLog | None = None,
    context: str = "predicate",
) -> bool:
    """Return the truth of ``predicate``, or ``default`` when absent or failing."""

    if predicate is None:
        return default

    try:
        return bool(predicate(state, qualities))
    except Exception as exc:
        _handle_fault("predicate", context, exc, faults)
        return default


def run_expression(
    expression: "Expression | None",
    default: Any,
    state: "GameState",
    qualities: Mapping[str, float],
    *,
    faults: FaultLog | None = None,
    context: str = "expression",
) -> Any:
    """Return the value of ``expression``, or ``default`` when absent or failing."""

    if expression is None:
        return default

    try:
        return expression(state, qualities)
    except Exception as exc:
        _handle_fault("expression", context, exc, faults)
        return default


__all__ = ["FaultLog", "run_actions", "run_predicate", "run_expression"]
