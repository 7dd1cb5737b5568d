"""
Rolling Sample Windows

Fixed-capacity FIFO window of recent samples for one metric.
Once filled, the window always holds exactly ``capacity`` samples.
"""

import math
import numbers
from collections import deque
from collections.abc import Iterable, Iterator

from .exceptions import InvalidSample

# 24 samples = one per hour for a day
HISTORY_CAPACITY = 24


def _finite(value) -> float:
    """Coerce to float, rejecting NaN, infinities and non-numbers."""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidSample(f"Sample must be numeric, got {value!r}", value=value)
    number = float(value)
    if not math.isfinite(number):
        raise InvalidSample(f"Sample must be finite, got {value!r}", value=value)
    return number


class RingBuffer:
    """Fixed-capacity rolling window backed by a bounded deque."""

    def __init__(self, capacity: int = HISTORY_CAPACITY, initial: Iterable[float] = ()):
        """Create a window.

        Args:
            capacity: Maximum number of samples kept
            initial: Optional starting samples; when given there must be
                exactly ``capacity`` of them

        Raises:
            ValueError: If capacity is not positive or initial has the wrong length
            InvalidSample: If any initial sample is not finite
        """
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")

        samples = [_finite(v) for v in initial]
        if samples and len(samples) != capacity:
            raise ValueError(
                f"initial window must hold exactly {capacity} samples, got {len(samples)}"
            )

        self._samples: deque[float] = deque(samples, maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._samples.maxlen

    @property
    def latest(self) -> float | None:
        """Most recent sample, or None if the window is empty."""
        return self._samples[-1] if self._samples else None

    def push(self, value: float) -> None:
        """Append a sample, evicting the oldest once the window is full.

        Raises:
            InvalidSample: If value is not a finite number (window untouched)
        """
        self._samples.append(_finite(value))

    def to_sequence(self) -> tuple[float, ...]:
        """Samples from oldest to newest."""
        return tuple(self._samples)

    def copy(self) -> "RingBuffer":
        clone = RingBuffer(self.capacity)
        clone._samples.extend(self._samples)
        return clone

    def __iter__(self) -> Iterator[float]:
        return iter(self.to_sequence())

    def __len__(self) -> int:
        return len(self._samples)

    def __eq__(self, other) -> bool:
        if not isinstance(other, RingBuffer):
            return NotImplemented
        return self.capacity == other.capacity and self.to_sequence() == other.to_sequence()

    def __repr__(self) -> str:
        return f"RingBuffer(capacity={self.capacity}, samples={list(self._samples)!r})"
