"""Configuration helpers for deploying the play-session service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from ..settings import EngineSettings


def _normalise_path(value: str | None) -> Path | None:
    if value is None:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    return Path(trimmed).expanduser()


@dataclass(frozen=True)
class PlayApiSettings:
    """Deployment settings for the FastAPI application.

    The helper reads from environment variables so the service can be
    configured without modifying application code. ``game_path`` points at the
    JSON game definition served when no game is passed to ``create_app``.
    """

    game_path: Path | None = None
    engine: EngineSettings = field(default_factory=EngineSettings)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PlayApiSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.
        """

        source = environ if environ is not None else os.environ

        return cls(
            game_path=_normalise_path(source.get("STORYGRAPH_GAME_PATH")),
            engine=EngineSettings.from_env(source),
        )


__all__ = ["PlayApiSettings"]
