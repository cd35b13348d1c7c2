"""Metric registry with name validation and first-registration-wins semantics."""
from typing import Dict, List, Optional, Union
import logging
import re
import threading

from opentelemetry.sdk.resources import Resource

from metercore.metrics import Metric, NoopMetric, NOOP_METRIC, Options, create_metric
from metercore.series import MetricKind

logger = logging.getLogger(__name__)

METRIC_NAME_PATTERN = re.compile(r'^[a-zA-Z][a-zA-Z0-9_.\-]*$')


def validate_metric_name(name: str) -> bool:
    """
    Validate a metric name.

    Names must start with a letter and contain only letters, digits,
    ".", "_" and "-".
    """
    return bool(name) and METRIC_NAME_PATTERN.match(name) is not None


class MetricRegistry:
    """Maps metric names to the first metric registered under them."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._metrics: Dict[str, Metric] = {}
        self._lock = threading.Lock()
        self._logger = log or logger

    def register(self, metric: Metric) -> bool:
        """Register a metric unless its name is taken. Returns True if it was added."""
        with self._lock:
            if metric.name in self._metrics:
                return False
            self._metrics[metric.name] = metric
            return True

    def create_metric(
        self,
        name: str,
        metric_kind: MetricKind,
        options: Options = None,
        resource: Optional[Resource] = None
    ) -> Union[Metric, NoopMetric]:
        """
        Create a metric and register it.

        Args:
            name: Metric name
            metric_kind: Kind of metric to create
            options: Metric options
            resource: Resource attached to the metric

        Returns:
            The registered metric, an unregistered metric if the name was
            already taken, or the no-op metric if the name is invalid
        """
        if not validate_metric_name(name):
            self._logger.debug(f"Invalid metric name {name!r}, returning no-op metric")
            return NOOP_METRIC

        metric = create_metric(name, metric_kind, options, resource, self._logger)

        if not self.register(metric):
            self._logger.debug(f"Metric '{name}' is already registered, new instance will not be collected")

        return metric

    def get(self, name: str) -> Optional[Metric]:
        with self._lock:
            return self._metrics.get(name)

    def metrics(self) -> List[Metric]:
        """Registered metrics in registration order."""
        with self._lock:
            return list(self._metrics.values())

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._metrics

    def __len__(self) -> int:
        with self._lock:
            return len(self._metrics)
