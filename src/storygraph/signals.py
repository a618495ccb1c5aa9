"""Lifecycle and quality-change notifications routed to the host."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict

from .game import Game, Scene

logger = logging.getLogger(__name__)

SCENE_ARRIVAL = "scene-arrival"
SCENE_DISPLAY = "scene-display"
SCENE_DEPARTURE = "scene-departure"
QUALITY_CHANGE = "quality-change"


@dataclass(frozen=True)
class SignalEvent:
    """A single notification delivered to the display surface."""

    signal: str
    event: str
    id: str
    from_scene: str | None = None
    to_scene: str | None = None
    now: float | None = None
    was: float | None = None

    def to_payload(self) -> Dict[str, Any]:
        """Return the record form, omitting fields that do not apply."""

        payload: Dict[str, Any] = {
            "signal": self.signal,
            "event": self.event,
            "id": self.id,
        }
        if self.from_scene is not None:
            payload["from"] = self.from_scene
        if self.to_scene is not None:
            payload["to"] = self.to_scene
        if self.now is not None:
            payload["now"] = self.now
        if self.was is not None:
            payload["was"] = self.was
        return payload


class SignalEmitter:
    """Resolve signal names and dispatch events synchronously.

    Scenes use their own ``signal`` or the game's ``scene_signal``; qualities
    use their own ``signal`` or the game's ``quality_signal``. When neither
    is set nothing is emitted.
    """

    def __init__(self, game: Game, dispatch: Callable[[SignalEvent], None]) -> None:
        self._game = game
        self._dispatch = dispatch

    def scene_signal(self, scene: Scene) -> str | None:
        return scene.signal or self._game.scene_signal

    def quality_signal(self, quality_id: str) -> str | None:
        definition = self._game.qualities.get(quality_id)
        if definition is not None and definition.signal:
            return definition.signal
        return self._game.quality_signal

    def departure(self, scene: Scene, to_scene: str) -> None:
        self._emit_scene(scene, SCENE_DEPARTURE, to_scene=to_scene)

    def arrival(self, scene: Scene, from_scene: str | None = None) -> None:
        self._emit_scene(scene, SCENE_ARRIVAL, from_scene=from_scene)

    def display(self, scene: Scene) -> None:
        self._emit_scene(scene, SCENE_DISPLAY)

    def quality_changed(
        self, quality_id: str, now: float, was: float | None = None
    ) -> None:
        name = self.quality_signal(quality_id)
        if name is None:
            return
        self._send(
            SignalEvent(signal=name, event=QUALITY_CHANGE, id=quality_id, now=now, was=was)
        )

    def _emit_scene(
        self,
        scene: Scene,
        event: str,
        *,
        from_scene: str | None = None,
        to_scene: str | None = None,
    ) -> None:
        name = self.scene_signal(scene)
        if name is None:
            return
        self._send(
            SignalEvent(
                signal=name,
                event=event,
                id=scene.id,
                from_scene=from_scene,
                to_scene=to_scene,
            )
        )

    def _send(self, signal_event: SignalEvent) -> None:
        logger.debug("Signal %s: %s", signal_event.signal, signal_event.to_payload())
        self._dispatch(signal_event)


__all__ = [
    "QUALITY_CHANGE",
    "SCENE_ARRIVAL",
    "SCENE_DEPARTURE",
    "SCENE_DISPLAY",
    "SignalEmitter",
    "SignalEvent",
]
