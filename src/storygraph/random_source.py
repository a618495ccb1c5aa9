"""Seedable random numbers whose position in the sequence can be saved."""

from __future__ import annotations

import random
import time
from typing import Any, List, Sequence, Union

Seed = Union[int, str, List[Any]]


def _state_from_seed(seed: Sequence[Any]) -> tuple[Any, ...]:
    """Rebuild a :meth:`random.Random.setstate` tuple from a JSON-friendly seed."""

    if len(seed) != 3:
        raise ValueError("Saved random seeds must contain three entries.")

    version, internal, gauss_next = seed
    if not isinstance(version, int) or isinstance(version, bool):
        raise ValueError("Saved random seed version must be an integer.")
    if not isinstance(internal, (list, tuple)) or not all(
        isinstance(word, int) for word in internal
    ):
        raise ValueError("Saved random seed state must be a list of integers.")
    if gauss_next is not None and not isinstance(gauss_next, (int, float)):
        raise ValueError("Saved random seed gaussian slot must be a number or null.")

    return (version, tuple(internal), gauss_next)


class RandomSource:
    """Deterministic uniform random numbers for choice sampling.

    A source built with :meth:`from_seed` always yields the same sequence.
    :meth:`get_seed` returns a plain-data seed that reproduces the sequence
    from the current position onwards, so a saved seed resumes where the
    source left off rather than starting over.
    """

    def __init__(self, seed: Seed) -> None:
        self._random = random.Random()
        if isinstance(seed, (list, tuple)):
            try:
                self._random.setstate(_state_from_seed(seed))
            except (TypeError, ValueError) as exc:
                raise ValueError(f"Invalid random seed: {exc}") from exc
        elif isinstance(seed, (int, str)) and not isinstance(seed, bool):
            self._random.seed(seed)
        else:
            raise TypeError(f"seed must be an int, str or saved seed list, got {type(seed)!r}")

    @classmethod
    def from_time(cls) -> "RandomSource":
        """Return a non-reproducible source seeded from the clock."""

        return cls(time.time_ns())

    @classmethod
    def from_seed(cls, seed: Seed) -> "RandomSource":
        """Return a source that replays the sequence identified by ``seed``."""

        return cls(seed)

    def random(self) -> float:
        """Return the next float in ``[0.0, 1.0)``."""

        return self._random.random()

    def get_seed(self) -> List[Any]:
        """Return a seed reproducing the continuation of this sequence."""

        version, internal, gauss_next = self._random.getstate()
        return [version, list(internal), gauss_next]


__all__ = ["RandomSource", "Seed"]
