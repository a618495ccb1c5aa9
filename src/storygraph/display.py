"""The capability set a host implements to show a game."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, List, Protocol, Sequence

if TYPE_CHECKING:  # pragma: no cover - imported only for type checking
    from .game_state import Choice
    from .signals import SignalEvent

CAPABILITIES = (
    "display_content",
    "display_choices",
    "remove_choices",
    "new_page",
    "signal",
)


class DisplaySurface(Protocol):
    """Everything the engine may ask of a host.

    Hosts implement whichever of these methods they care about; the engine
    treats a missing method as a no-op, so a host that only reacts to
    signals needs nothing but ``signal``.
    """

    def display_content(self, content: List[Any]) -> None: ...

    def display_choices(self, choices: Sequence["Choice"]) -> None: ...

    def remove_choices(self) -> None: ...

    def new_page(self) -> None: ...

    def signal(self, event: "SignalEvent") -> None: ...


def _noop(*args: Any) -> None:
    return None


class DisplayHooks:
    """Bind the capabilities ``surface`` provides, defaulting the rest to no-ops."""

    display_content: Callable[[List[Any]], None]
    display_choices: Callable[[Sequence["Choice"]], None]
    remove_choices: Callable[[], None]
    new_page: Callable[[], None]
    signal: Callable[["SignalEvent"], None]

    def __init__(self, surface: object | None = None) -> None:
        self.surface = surface
        for name in CAPABILITIES:
            handler = getattr(surface, name, None)
            setattr(self, name, handler if callable(handler) else _noop)

    def supports(self, name: str) -> bool:
        """Return ``True`` when the surface implements capability ``name``."""

        return getattr(self, name) is not _noop


__all__ = ["CAPABILITIES", "DisplayHooks", "DisplaySurface"]
