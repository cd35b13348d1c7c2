"""Exporters that consume checkpoint sets."""
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Iterable, List, Optional
import logging
import re
import threading

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, SummaryMetricFamily

from metercore.aggregators import Distribution
from metercore.series import MetricDescriptor, MetricKind, MetricRecord

logger = logging.getLogger(__name__)


class ExportResult(Enum):
    """Outcome of an export call."""
    SUCCESS = "success"
    FAILED_NOT_RETRYABLE = "failed_not_retryable"
    FAILED_RETRYABLE = "failed_retryable"


class MetricExporter(ABC):
    """Base class for exporters. Exporters must not mutate the records they get."""

    @abstractmethod
    def export(self, records: List[MetricRecord]) -> ExportResult:
        """Export the records of one collection pass."""
        pass

    def shutdown(self):
        """Release resources held by the exporter."""
        pass


class ConsoleMetricExporter(MetricExporter):
    """Writes one log line per record."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._logger = log or logger

    def export(self, records: List[MetricRecord]) -> ExportResult:
        for record in records:
            point = record.aggregator.to_point()
            self._logger.info(
                f"{record.descriptor.name} {record.labels.identifier} "
                f"value={point.value} timestamp={point.timestamp}"
            )
        return ExportResult.SUCCESS


def sanitize_metric_name(name: str) -> str:
    """Map a metric name onto the Prometheus charset [a-zA-Z_:][a-zA-Z0-9_:]*."""
    sanitized = re.sub(r'[^a-zA-Z0-9_:]', '_', name)
    if not sanitized or sanitized[0].isdigit():
        sanitized = '_' + sanitized
    return sanitized


def sanitize_label_name(name: str) -> str:
    """Map a label name onto the Prometheus charset [a-zA-Z_][a-zA-Z0-9_]*."""
    sanitized = re.sub(r'[^a-zA-Z0-9_]', '_', name)
    if not sanitized or sanitized[0].isdigit():
        sanitized = '_' + sanitized
    return sanitized


class PrometheusExporter(MetricExporter):
    """
    Renders the last exported checkpoint in the Prometheus text format.

    Monotonic counters become counters, other counters and observers become
    gauges and measures become summaries carrying count and sum. The exporter
    is its own collector on a private registry; it does not serve HTTP.
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix
        # Use a custom registry to avoid exporting default Python/process metrics
        self.registry = CollectorRegistry()

        self._records: List[MetricRecord] = []
        self._lock = threading.Lock()

        self.registry.register(self)

    def export(self, records: List[MetricRecord]) -> ExportResult:
        with self._lock:
            self._records = list(records)
        return ExportResult.SUCCESS

    def render(self) -> str:
        """Text exposition of the last exported records."""
        return generate_latest(self.registry).decode('utf-8')

    def collect(self) -> Iterable:
        """Called by the registry on each render."""
        with self._lock:
            records = list(self._records)

        # Families are keyed by exposed name; the first descriptor to claim a name keeps it
        grouped: Dict[str, List[MetricRecord]] = {}
        skipped = set()
        for record in records:
            descriptor = record.descriptor
            name = self._family_name(descriptor)
            group = grouped.setdefault(name, [])
            if group and group[0].descriptor.name != descriptor.name:
                if descriptor.name not in skipped:
                    skipped.add(descriptor.name)
                    logger.warning(
                        f"Metric '{descriptor.name}' collides with '{group[0].descriptor.name}' "
                        f"as Prometheus family '{name}', skipping"
                    )
                continue
            group.append(record)

        for name, group in grouped.items():
            descriptor = group[0].descriptor
            label_keys = sorted({key for record in group for key in record.labels.labels})
            family = self._family(name, descriptor, [sanitize_label_name(k) for k in label_keys])

            for record in group:
                point = record.aggregator.to_point()
                label_values = [str(record.labels.labels.get(k, "")) for k in label_keys]
                timestamp = point.timestamp / 1e9 if point.timestamp else None

                if isinstance(point.value, Distribution):
                    family.add_metric(
                        label_values,
                        count_value=point.value.count,
                        sum_value=point.value.sum,
                        timestamp=timestamp
                    )
                else:
                    family.add_metric(label_values, point.value, timestamp=timestamp)

            yield family

    def _family(self, name: str, descriptor: MetricDescriptor, label_names: List[str]):
        documentation = descriptor.description or f"{descriptor.metric_kind.value} metric: {descriptor.name}"

        if descriptor.metric_kind == MetricKind.MEASURE:
            return SummaryMetricFamily(name, documentation, labels=label_names)
        if descriptor.metric_kind == MetricKind.COUNTER and descriptor.monotonic:
            return CounterMetricFamily(name, documentation, labels=label_names)
        return GaugeMetricFamily(name, documentation, labels=label_names)

    def _family_name(self, descriptor: MetricDescriptor) -> str:
        name = sanitize_metric_name(f"{self.prefix}{descriptor.name}")
        # Counter families drop the _total suffix, their samples add it back
        if descriptor.metric_kind == MetricKind.COUNTER and descriptor.monotonic and name.endswith("_total"):
            name = name[:-len("_total")]
        return name
