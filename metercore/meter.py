"""Meter and meter provider: metric creation and the collection cycle."""
from typing import Any, Dict, List, Mapping, Optional, Union
import logging
import threading

from opentelemetry.sdk.resources import Resource

from metercore.batcher import Batcher, UngroupedBatcher
from metercore.config import ProviderConfig, resolve_options
from metercore.labels import LabelSet, LabelSetCache
from metercore.metrics import CounterMetric, MeasureMetric, NoopMetric, ObserverMetric, Options
from metercore.registry import MetricRegistry
from metercore.series import MetricKind

logger = logging.getLogger(__name__)


class Meter:
    """
    Creates metrics for one instrumentation scope and collects them.

    The meter owns a metric registry, a label set cache and a batcher.
    Metrics update their aggregators eagerly; ``collect()`` only evaluates
    observer callbacks and hands the current records to the batcher.
    """

    def __init__(
        self,
        name: str = "",
        resource: Optional[Resource] = None,
        batcher: Optional[Batcher] = None,
        log: Optional[logging.Logger] = None
    ):
        self.name = name
        self.resource = resource if resource is not None else Resource.create({})
        self._logger = log or logger

        self._registry = MetricRegistry(self._logger)
        self._label_sets = LabelSetCache()
        self._batcher = batcher or UngroupedBatcher()

        # Serializes collection passes; reentrant since observer callbacks may call collect()
        self._collect_lock = threading.RLock()
        self._collecting = False

    @property
    def registry(self) -> MetricRegistry:
        return self._registry

    def create_counter(self, name: str, options: Options = None, **kwargs) -> Union[CounterMetric, NoopMetric]:
        """Create a counter. Options may also be given as keyword arguments."""
        return self._create_metric(name, MetricKind.COUNTER, options, kwargs)

    def create_measure(self, name: str, options: Options = None, **kwargs) -> Union[MeasureMetric, NoopMetric]:
        """Create a measure. Options may also be given as keyword arguments."""
        return self._create_metric(name, MetricKind.MEASURE, options, kwargs)

    def create_observer(self, name: str, options: Options = None, **kwargs) -> Union[ObserverMetric, NoopMetric]:
        """Create an observer. Options may also be given as keyword arguments."""
        return self._create_metric(name, MetricKind.OBSERVER, options, kwargs)

    def _create_metric(self, name: str, metric_kind: MetricKind, options: Options, overrides: Dict[str, Any]):
        return self._registry.create_metric(
            name,
            metric_kind,
            resolve_options(options, **overrides),
            self.resource
        )

    def labels(self, labels: Mapping[str, str]) -> LabelSet:
        """Return the canonical label set for a mapping."""
        return self._label_sets.get(labels)

    def release_labels(self, label_set: LabelSet):
        """Unbind a label set from every metric and drop it from the label cache."""
        for metric in self._registry.metrics():
            metric.unbind(label_set)
        self._label_sets.discard(label_set)

    def collect(self):
        """Collect all registered metrics into the batcher.

        An observer callback that calls back into ``collect()`` on the same
        meter gets a no-op; the outer pass completes normally.
        """
        with self._collect_lock:
            if self._collecting:
                self._logger.warning(f"Meter '{self.name}' collect() called during collection, ignoring")
                return

            self._collecting = True
            try:
                records = []
                for metric in self._registry.metrics():
                    records.extend(metric.get_metric_record())

                self._batcher.process(records)
            finally:
                self._collecting = False

        self._logger.debug(f"Meter '{self.name}' collected {len(records)} records")

    def get_batcher(self) -> Batcher:
        return self._batcher


class MeterProvider:
    """Creates and caches named meters sharing one resource."""

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        resource: Optional[Resource] = None,
        log: Optional[logging.Logger] = None
    ):
        self.config = config or ProviderConfig()
        self.resource = resource if resource is not None else Resource.create(self.config.resource)
        self._logger = log or logger

        self._meters: Dict[str, Meter] = {}
        self._lock = threading.Lock()

        for name in self.config.meters:
            self.get_meter(name)

    def get_meter(self, name: str) -> Meter:
        """Return the meter with this name, creating it on first request."""
        with self._lock:
            meter = self._meters.get(name)
            if meter is None:
                meter = Meter(name, resource=self.resource, log=self._logger)
                self._meters[name] = meter
                self._logger.info(f"Created meter '{name}'")
            return meter

    def meters(self) -> List[Meter]:
        with self._lock:
            return list(self._meters.values())
