"""Fixed-capacity sample windows backing the temporal gesture signals."""

from __future__ import annotations

import copy
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterator, Optional, TypeVar

import numpy as np

T = TypeVar("T")


@dataclass(frozen=True)
class HandSample:
    """Active wrist position while the hand is raised."""
    x: float
    y: float
    timestamp: float


@dataclass(frozen=True)
class BodySample:
    """Vertical midpoint between shoulder and hip centers."""
    center_y: float
    timestamp: float


class HistoryWindow(Generic[T]):
    """FIFO of the most recent samples, dropping the oldest at capacity.

    Statistics are computed over the current contents. ``variance`` is the
    population variance (divide by n), and both ``mean`` and ``variance``
    return 0.0 for an empty window.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._samples: deque[T] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._samples.maxlen

    def push(self, sample: T):
        self._samples.append(sample)

    def clear(self):
        self._samples.clear()

    def values(self, key: Optional[Callable[[T], float]] = None) -> np.ndarray:
        if key is None:
            return np.fromiter(self._samples, dtype=np.float64, count=len(self._samples))
        return np.fromiter((key(s) for s in self._samples), dtype=np.float64,
                           count=len(self._samples))

    def mean(self, key: Optional[Callable[[T], float]] = None) -> float:
        if not self._samples:
            return 0.0
        return float(np.mean(self.values(key)))

    def variance(self, key: Optional[Callable[[T], float]] = None) -> float:
        if not self._samples:
            return 0.0
        return float(np.var(self.values(key)))

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[T]:
        return iter(self._samples)

    def __getitem__(self, index: int) -> T:
        return self._samples[index]

    def __repr__(self) -> str:
        return f"HistoryWindow(len={len(self)}, capacity={self.capacity})"


@dataclass(frozen=True)
class WindowCapacities:
    hand: int = 30
    mouth: int = 20
    eye: int = 10
    body: int = 20


@dataclass
class GestureHistory:
    """The four windows the classifier reads and updates each tick."""
    hand: HistoryWindow[HandSample]
    mouth: HistoryWindow[float]
    eye: HistoryWindow[float]
    body: HistoryWindow[BodySample]
    capacities: WindowCapacities = field(default_factory=WindowCapacities)

    @classmethod
    def create(cls, capacities: Optional[WindowCapacities] = None) -> GestureHistory:
        caps = capacities or WindowCapacities()
        return cls(
            hand=HistoryWindow(caps.hand),
            mouth=HistoryWindow(caps.mouth),
            eye=HistoryWindow(caps.eye),
            body=HistoryWindow(caps.body),
            capacities=caps,
        )

    def clear(self):
        for window in (self.hand, self.mouth, self.eye, self.body):
            window.clear()

    def lengths(self) -> dict[str, int]:
        return {
            "hand": len(self.hand),
            "mouth": len(self.mouth),
            "eye": len(self.eye),
            "body": len(self.body),
        }

    def copy(self) -> GestureHistory:
        return copy.deepcopy(self)
