"""
Time source and randomness used by the submission and polling loops.

Both are injected so tests can run the loops against virtual time and a
seeded random generator.
"""

import asyncio
import random
import time
from typing import List, Optional, Sequence, TypeVar

T = TypeVar("T")


class Clock:
    """Monotonic millisecond clock with cooperative sleep."""

    def now_ms(self) -> float:
        return time.monotonic() * 1000.0

    async def sleep(self, duration_ms: float):
        if duration_ms > 0:
            await asyncio.sleep(duration_ms / 1000.0)


class SelectionStrategy:
    """
    Seedable source of every random choice the client makes.

    Used for fee recipient selection, optional endpoint shuffling and
    backoff jitter.
    """

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    def choose(self, items: Sequence[T]) -> T:
        if not items:
            raise ValueError("Cannot choose from an empty sequence")
        return self._rng.choice(list(items))

    def shuffled(self, items: Sequence[T]) -> List[T]:
        result = list(items)
        self._rng.shuffle(result)
        return result

    def uniform(self, low: float, high: float) -> float:
        return self._rng.uniform(low, high)
