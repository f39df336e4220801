"""
Injectable randomness for vitals jitter and non-DKA lab values.
"""

import random
from abc import ABC, abstractmethod
from typing import Optional


class RandomSource(ABC):
    """Source of floats in [0, 1)."""

    @abstractmethod
    def next(self) -> float:
        pass

    def uniform(self, low: float, high: float) -> float:
        return low + (high - low) * self.next()


class SeededRandom(RandomSource):
    """Production source backed by random.Random; pass a seed for replay."""

    def __init__(self, seed: Optional[int] = None):
        self._random = random.Random(seed)

    def next(self) -> float:
        return self._random.random()
