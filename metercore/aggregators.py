"""Running aggregates for bound instruments."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Union
import threading
import time

from metercore.series import MetricKind


@dataclass(frozen=True)
class Distribution:
    """Summary statistics of recorded measure values."""
    count: int
    sum: float
    min: float
    max: float


@dataclass(frozen=True)
class Point:
    """Snapshot of an aggregator; timestamp is nanoseconds since the epoch."""
    value: Union[float, Distribution]
    timestamp: int


class Aggregator(ABC):
    """Base class for aggregators.

    Every update happens under the aggregator's own lock and stamps a
    timestamp strictly greater than the previous one.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._last_update_time = 0

    @abstractmethod
    def update(self, value: float) -> None:
        """Fold a value into the aggregate."""
        pass

    @abstractmethod
    def to_point(self) -> Point:
        """Return the current aggregate without changing it."""
        pass

    def _stamp(self):
        # Caller holds self._lock.
        now = time.time_ns()
        if now <= self._last_update_time:
            now = self._last_update_time + 1
        self._last_update_time = now


class SumAggregator(Aggregator):
    """Sum of all values added to a counter."""

    def __init__(self):
        super().__init__()
        self._current = 0

    def update(self, value: float) -> None:
        with self._lock:
            self._current += value
            self._stamp()

    def to_point(self) -> Point:
        with self._lock:
            return Point(self._current, self._last_update_time)


class DistributionAggregator(Aggregator):
    """Count, sum, min and max of values recorded on a measure."""

    def __init__(self):
        super().__init__()
        self._count = 0
        self._sum = 0
        self._min = float("inf")
        self._max = float("-inf")

    def update(self, value: float) -> None:
        with self._lock:
            self._count += 1
            self._sum += value
            self._min = min(self._min, value)
            self._max = max(self._max, value)
            self._stamp()

    def to_point(self) -> Point:
        with self._lock:
            return Point(
                Distribution(count=self._count, sum=self._sum, min=self._min, max=self._max),
                self._last_update_time
            )


class LastValueAggregator(Aggregator):
    """Most recent value reported by an observer."""

    def __init__(self):
        super().__init__()
        self._current = 0

    def update(self, value: float) -> None:
        with self._lock:
            self._current = value
            self._stamp()

    def to_point(self) -> Point:
        with self._lock:
            return Point(self._current, self._last_update_time)


def create_aggregator(metric_kind: MetricKind) -> Aggregator:
    """Factory function to create the aggregator used by a metric kind."""
    if metric_kind == MetricKind.COUNTER:
        return SumAggregator()
    elif metric_kind == MetricKind.MEASURE:
        return DistributionAggregator()
    elif metric_kind == MetricKind.OBSERVER:
        return LastValueAggregator()
    else:
        raise ValueError(f"Unknown metric kind: {metric_kind}")
