"""Compute the choices a scene offers to the player.

Compilation runs in stages:

1. Options are expanded into candidate scene ids. Literal ``@id`` options
   always win over ids reached through a ``#tag``, whatever their order.
2. Candidates that have used up their ``max_visits`` or whose ``view_if``
   fails are dropped, as are candidates with a frequency of zero.
3. With nothing left, a non-root scene offers a single way back to the
   root; the root itself offers nothing, which ends the game.
4. Candidates are grouped into priority tiers. Whole tiers are taken from
   the highest down until ``min_choices`` is met (just the top tier when it
   is unset). The first tier that would overflow ``max_choices``, or
   overshoot ``min_choices`` when no maximum is set, is sampled down to the
   slots left, weighted by frequency and without replacement. Only that
   tier is sampled; lower tiers are never mixed in, so a lower priority
   never displaces a higher one. Candidates with an unbounded (``None``)
   frequency skip this stage and are always shown.
5. The selection is sorted by ``order``, falling back to the position in
   which candidates were first gathered.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Sequence

from .callables import FaultLog, run_predicate
from .content import ContentCompiler
from .game import UNSET, Game, Option, Scene, Text
from .game_state import Choice, GameState
from .random_source import RandomSource

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_TITLE = "Scene Complete"


@dataclass(frozen=True)
class _Candidate:
    scene: Scene
    option: Option
    title: Text | None
    position: int

    @property
    def priority(self) -> float:
        if self.option.priority is not None:
            return self.option.priority
        if self.scene.priority is not None:
            return self.scene.priority
        return 0

    @property
    def order(self) -> float:
        if self.option.order is not None:
            return self.option.order
        if self.scene.order is not None:
            return self.scene.order
        return self.position

    @property
    def frequency(self) -> float | None:
        if self.option.frequency is not UNSET:
            return self.option.frequency
        if self.scene.frequency is not UNSET:
            return self.scene.frequency
        return 1


class ChoiceSelector:
    """Turn a scene's options into the ordered list of offered choices."""

    def __init__(
        self,
        game: Game,
        compiler: ContentCompiler,
        random_source: RandomSource,
        *,
        faults: FaultLog | None = None,
        fallback_title: str = DEFAULT_FALLBACK_TITLE,
    ) -> None:
        self._game = game
        self._compiler = compiler
        self._random = random_source
        self._faults = faults
        self._fallback_title = fallback_title

    @property
    def random_source(self) -> RandomSource:
        return self._random

    def compile_choices(
        self, scene: Scene, state: GameState, qualities: Mapping[str, float]
    ) -> List[Choice]:
        """Return the choices for ``scene``; an empty list means the game ends."""

        candidates = self._eligible(self._gather(scene), state, qualities)

        if not candidates:
            if state.scene_id != state.root_scene_id and state.root_scene_id is not None:
                logger.debug(
                    "Scene '%s' has no choices left; offering the root '%s'",
                    scene.id,
                    state.root_scene_id,
                )
                title = self._compiler.compile_title(
                    self._fallback_title, state, qualities
                )
                return [Choice(id=state.root_scene_id, title=title)]
            return []

        selected = self._select(scene, candidates)
        selected.sort(key=lambda candidate: candidate.position)
        selected.sort(key=lambda candidate: candidate.order)

        logger.debug(
            "Scene '%s' offers %s", scene.id, [candidate.scene.id for candidate in selected]
        )
        return [
            Choice(
                id=candidate.scene.id,
                title=self._compile_title(candidate, state, qualities),
            )
            for candidate in selected
        ]

    def _gather(self, scene: Scene) -> List[_Candidate]:
        entries: dict[str, tuple[Option, Text | None]] = {}
        for option in scene.options:
            if option.scene_id is not None:
                entries[option.scene_id] = (option, option.title)
            else:
                for scene_id in self._game.tagged(option.tag or ""):
                    entries.setdefault(scene_id, (option, None))

        return [
            _Candidate(
                scene=self._game.get_scene(scene_id),
                option=option,
                title=title,
                position=position,
            )
            for position, (scene_id, (option, title)) in enumerate(entries.items())
        ]

    def _eligible(
        self,
        candidates: Sequence[_Candidate],
        state: GameState,
        qualities: Mapping[str, float],
    ) -> List[_Candidate]:
        eligible: List[_Candidate] = []
        for candidate in candidates:
            target = candidate.scene
            if (
                target.max_visits is not None
                and state.visit_count(target.id) >= target.max_visits
            ):
                continue

            view_if = candidate.option.view_if
            if view_if is None:
                view_if = target.view_if
            if not run_predicate(
                view_if,
                True,
                state,
                qualities,
                faults=self._faults,
                context=f"view-if of option {candidate.option.reference}",
            ):
                continue

            frequency = candidate.frequency
            if frequency is not None and frequency <= 0:
                continue

            eligible.append(candidate)
        return eligible

    def _select(self, scene: Scene, candidates: Sequence[_Candidate]) -> List[_Candidate]:
        always = [candidate for candidate in candidates if candidate.frequency is None]
        tiers = _priority_tiers(
            [candidate for candidate in candidates if candidate.frequency is not None]
        )

        capacity: int | None = None
        if scene.max_choices is not None:
            capacity = max(scene.max_choices - len(always), 0)

        selected: List[_Candidate] = []
        for tier in tiers:
            if capacity is not None:
                if len(selected) + len(tier) > capacity:
                    selected.extend(self._sample(tier, capacity - len(selected)))
                    break
            elif scene.min_choices and len(selected) + len(tier) > scene.min_choices:
                selected.extend(self._sample(tier, scene.min_choices - len(selected)))
                break
            selected.extend(tier)
            if scene.min_choices is None or len(selected) >= scene.min_choices:
                break

        return always + selected

    def _sample(self, pool: Sequence[_Candidate], count: int) -> List[_Candidate]:
        """Draw ``count`` candidates weighted by frequency, without replacement."""

        remaining = list(pool)
        picked: List[_Candidate] = []
        while remaining and len(picked) < count:
            threshold = self._random.random() * sum(
                candidate.frequency or 0 for candidate in remaining
            )
            index = len(remaining) - 1
            for position, candidate in enumerate(remaining):
                threshold -= candidate.frequency or 0
                if threshold < 0:
                    index = position
                    break
            picked.append(remaining.pop(index))
        return picked

    def _compile_title(
        self,
        candidate: _Candidate,
        state: GameState,
        qualities: Mapping[str, float],
    ) -> List[Any]:
        title = candidate.title
        if title is None:
            title = candidate.scene.title
        if title is None:
            logger.warning(
                "Scene '%s' is offered as a choice but has no title", candidate.scene.id
            )
            title = candidate.scene.id
        return self._compiler.compile_title(title, state, qualities)


def _priority_tiers(candidates: Sequence[_Candidate]) -> List[List[_Candidate]]:
    """Group candidates by priority, highest first, keeping gathering order."""

    tiers: dict[float, List[_Candidate]] = {}
    for candidate in candidates:
        tiers.setdefault(candidate.priority, []).append(candidate)
    return [tiers[priority] for priority in sorted(tiers, reverse=True)]


__all__ = ["ChoiceSelector", "DEFAULT_FALLBACK_TITLE"]
