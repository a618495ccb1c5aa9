"""FastAPI application hosting scene-engine play sessions."""

from .app import create_app
from .settings import PlayApiSettings

__all__ = ["create_app", "PlayApiSettings"]
