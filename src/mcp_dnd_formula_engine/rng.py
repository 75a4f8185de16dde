from __future__ import annotations

import random
import secrets
from typing import Protocol


class RandomSource(Protocol):
    name: str

    def next_int(self, low: int, high: int) -> int:
        """Return an integer in the inclusive range ``[low, high]``."""
        ...


class SystemRandomSource:
    name = "secrets.SystemRandom"

    def __init__(self) -> None:
        self._rng = secrets.SystemRandom()

    def next_int(self, low: int, high: int) -> int:
        return self._rng.randint(low, high)


class SeededRandomSource:
    """Reproducible source for tests and seeded server runs."""

    name = "random.Random"

    def __init__(self, seed: int | None = None) -> None:
        self.seed = seed
        self._rng = random.Random(seed)

    def next_int(self, low: int, high: int) -> int:
        return self._rng.randint(low, high)
