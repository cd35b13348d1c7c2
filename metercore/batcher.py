"""Batchers hold the records produced by a collection pass."""
from abc import ABC, abstractmethod
from typing import Iterable, List
import threading

from metercore.series import MetricRecord


class Batcher(ABC):
    """Base class for batchers."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: List[MetricRecord] = []

    @abstractmethod
    def process(self, records: Iterable[MetricRecord]) -> None:
        """Take the records of one collection pass."""
        pass

    def check_point_set(self) -> List[MetricRecord]:
        """Records of the last collection pass."""
        with self._lock:
            return list(self._records)


class UngroupedBatcher(Batcher):
    """Keeps every record of the latest collection, one per bound instrument."""

    def process(self, records: Iterable[MetricRecord]) -> None:
        records = list(records)
        with self._lock:
            self._records = records
