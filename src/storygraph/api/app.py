"""FastAPI application hosting play sessions in memory."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List

from fastapi import Body, FastAPI, HTTPException, Query, Response
from pydantic import BaseModel, Field

from ..engine import SceneEngine
from ..errors import (
    ChoiceIndexError,
    EngineStateError,
    InternalConsistencyFault,
    UnknownSceneError,
)
from ..game import Game
from ..game_state import Choice
from ..loader import load_game_from_file
from ..random_source import RandomSource
from ..settings import EngineSettings
from ..signals import SignalEvent
from .settings import PlayApiSettings

logger = logging.getLogger(__name__)


class ChoiceResource(BaseModel):
    """A choice offered to the player."""

    id: str
    title: List[Any]


class PlayStepResponse(BaseModel):
    """What changed on screen during one step of a play session."""

    session_id: str
    scene_id: str | None
    turn: int
    game_over: bool
    new_page: bool = False
    content: List[Any] = Field(default_factory=list)
    choices: List[ChoiceResource] = Field(default_factory=list)
    signals: List[Dict[str, Any]] = Field(default_factory=list)


class SessionDisplay:
    """Collect what the engine shows during a single step."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.content: List[Any] = []
        self.signals: List[Dict[str, Any]] = []
        self.new_page_requested = False

    def display_content(self, content: List[Any]) -> None:
        self.content.extend(content)

    def new_page(self) -> None:
        self.content = []
        self.new_page_requested = True

    def signal(self, event: SignalEvent) -> None:
        self.signals.append(event.to_payload())


class PlaySession:
    """Own the engine and display for a single player."""

    def __init__(
        self,
        session_id: str,
        game: Game,
        *,
        settings: EngineSettings | None = None,
        seed: int | None = None,
    ) -> None:
        random_source = (
            RandomSource.from_time() if seed is None else RandomSource.from_seed(seed)
        )
        self.session_id = session_id
        self._display = SessionDisplay()
        self._engine = SceneEngine(
            game, self._display, random_source=random_source, settings=settings
        )

    @property
    def engine(self) -> SceneEngine:
        return self._engine

    def begin(self) -> PlayStepResponse:
        """Start a new game and return the opening step."""

        self._display.reset()
        self._engine.begin_game()
        return self._step_response()

    def choose(self, index: int) -> PlayStepResponse:
        """Follow choice ``index`` and return what it displayed."""

        self._display.reset()
        self._engine.choose(index)
        return self._step_response()

    def export(self) -> Dict[str, Any]:
        return self._engine.get_exportable_state()

    def restore(self, payload: Dict[str, Any]) -> PlayStepResponse:
        """Replace the session's state with ``payload`` without replaying it."""

        self._display.reset()
        self._engine.set_state(payload)
        return self._step_response()

    def _step_response(self) -> PlayStepResponse:
        state = self._engine.state
        return PlayStepResponse(
            session_id=self.session_id,
            scene_id=state.scene_id,
            turn=state.turn,
            game_over=state.game_over,
            new_page=self._display.new_page_requested,
            content=list(self._display.content),
            choices=[_choice_resource(choice) for choice in state.choices or ()],
            signals=list(self._display.signals),
        )


def _choice_resource(choice: Choice) -> ChoiceResource:
    return ChoiceResource(id=choice.id, title=list(choice.title))


def create_app(
    game: Game | None = None,
    *,
    settings: PlayApiSettings | None = None,
) -> FastAPI:
    """Create a FastAPI app serving play sessions for ``game``.

    When ``game`` is omitted it is loaded from ``settings.game_path``.
    """

    resolved_settings = settings or PlayApiSettings.from_env()

    if game is None:
        if resolved_settings.game_path is None:
            raise ValueError(
                "create_app needs a game or STORYGRAPH_GAME_PATH to load one from."
            )
        game = load_game_from_file(resolved_settings.game_path)

    served_game = game
    sessions: Dict[str, PlaySession] = {}

    app = FastAPI(
        title="storygraph play service",
        description="Play scene-graph games one choice at a time.",
    )

    def _get_session(session_id: str) -> PlaySession:
        try:
            return sessions[session_id]
        except KeyError as exc:
            raise HTTPException(
                status_code=404, detail=f"Session '{session_id}' does not exist."
            ) from exc

    @app.post("/sessions", status_code=201, response_model=PlayStepResponse)
    def create_session(
        seed: int | None = Query(
            None, description="Seed for reproducible choice sampling."
        ),
    ) -> PlayStepResponse:
        session_id = uuid.uuid4().hex
        session = PlaySession(
            session_id, served_game, settings=resolved_settings.engine, seed=seed
        )
        try:
            response = session.begin()
        except InternalConsistencyFault as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

        sessions[session_id] = session
        logger.info("Started play session %s", session_id)
        return response

    @app.post(
        "/sessions/{session_id}/choices/{index}",
        response_model=PlayStepResponse,
    )
    def choose(session_id: str, index: int) -> PlayStepResponse:
        session = _get_session(session_id)
        try:
            return session.choose(index)
        except ChoiceIndexError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except EngineStateError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except InternalConsistencyFault as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @app.get("/sessions/{session_id}/state")
    def export_state(session_id: str) -> Dict[str, Any]:
        return _get_session(session_id).export()

    @app.put("/sessions/{session_id}/state", response_model=PlayStepResponse)
    def restore_state(
        session_id: str,
        payload: Dict[str, Any] = Body(...),
    ) -> PlayStepResponse:
        session = _get_session(session_id)
        try:
            response = session.restore(payload)
        except (ValueError, UnknownSceneError) as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc

        logger.info("Restored play session %s at turn %d", session_id, response.turn)
        return response

    @app.delete(
        "/sessions/{session_id}", status_code=204, response_class=Response
    )
    def delete_session(session_id: str) -> Response:
        _get_session(session_id)
        del sessions[session_id]
        logger.info("Closed play session %s", session_id)
        return Response(status_code=204)

    return app


__all__ = ["ChoiceResource", "PlaySession", "PlayStepResponse", "SessionDisplay", "create_app"]
