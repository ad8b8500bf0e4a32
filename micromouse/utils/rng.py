"""Seeded random number generation shared by maze generation and the agent."""

import random
from typing import Optional, Sequence, TypeVar

T = TypeVar("T")


class SeededRNG:
    """Seeded random number generator for reproducible results."""

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)
        self._seed = seed

    @property
    def seed(self) -> Optional[int]:
        """Get the current seed."""
        return self._seed

    def set_seed(self, seed: Optional[int]):
        """Set a new seed."""
        self._seed = seed
        self._rng.seed(seed)

    def random(self) -> float:
        """Generate random float in [0, 1)."""
        return self._rng.random()

    def randrange(self, n: int) -> int:
        """Generate random integer in [0, n)."""
        return self._rng.randrange(n)

    def choice(self, seq: Sequence[T]) -> T:
        """Choose random element from sequence."""
        return self._rng.choice(seq)

    def shuffle(self, seq):
        """Shuffle sequence in place."""
        self._rng.shuffle(seq)


# Default RNG instance
default_rng = SeededRNG()
