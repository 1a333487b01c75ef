"""
Running time-series aggregates.
"""

import math
from typing import NamedTuple


class Sample(NamedTuple):
    """A single (timestamp, value) observation; timestamp in milliseconds."""

    timestamp: float
    value: float


class RunningAggregate:
    """
    Accumulates samples into average, maximum and ramp-up time.

    Samples must be added in non-decreasing timestamp order. The ramp-up time
    is measured from the first sample to the first sample whose value reaches
    ``ramp_up_threshold``; it is ``math.inf`` when the threshold is never
    reached or was not configured.
    """

    def __init__(self, ramp_up_threshold: float | None = None) -> None:
        self.ramp_up_threshold = ramp_up_threshold
        self.samples: list[Sample] = []
        self._sum = 0.0
        self._max: float | None = None
        self._ramp_up_timestamp: float | None = None

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def count(self) -> int:
        return len(self.samples)

    def add(self, timestamp: float, value: float) -> None:
        self.samples.append(Sample(timestamp, value))
        self._sum += value
        if self._max is None or value > self._max:
            self._max = value
        if (
            self._ramp_up_timestamp is None
            and self.ramp_up_threshold is not None
            and value >= self.ramp_up_threshold
        ):
            self._ramp_up_timestamp = timestamp

    def get_average(self) -> float | None:
        if not self.samples:
            return None
        return self._sum / len(self.samples)

    def get_max(self) -> float | None:
        return self._max

    def get_ramp_up_time(self) -> float:
        if self._ramp_up_timestamp is None:
            return math.inf
        return self._ramp_up_timestamp - self.samples[0].timestamp

    def get_std_dev(self) -> float | None:
        """Population standard deviation of the values."""
        average = self.get_average()
        if average is None:
            return None
        variance = sum((s.value - average) ** 2 for s in self.samples) / len(self.samples)
        return math.sqrt(variance)
