"""Metric kinds and the bound instruments they hand out."""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
import logging
import math
import threading

from opentelemetry.sdk.resources import Resource

from metercore.aggregators import Aggregator, create_aggregator
from metercore.config import MetricOptions, resolve_options
from metercore.labels import LabelSet
from metercore.series import MetricDescriptor, MetricKind, MetricRecord, ValueType

logger = logging.getLogger(__name__)

Options = Optional[Union[MetricOptions, Mapping[str, Any]]]


class BoundInstrument:
    """A metric bound to one label set, owning exactly one aggregator."""

    def __init__(
        self,
        label_set: LabelSet,
        aggregator: Aggregator,
        disabled: bool,
        value_type: ValueType,
        log: logging.Logger
    ):
        self._label_set = label_set
        self._aggregator = aggregator
        self._disabled = disabled
        self._value_type = value_type
        self._logger = log

    def get_label_set(self) -> LabelSet:
        return self._label_set

    def get_aggregator(self) -> Aggregator:
        return self._aggregator

    def _update(self, value: float):
        if self._disabled:
            return

        if not math.isfinite(value):
            self._logger.debug(f"Dropping non-finite value {value} for {self._label_set.identifier}")
            return

        if (
            self._value_type == ValueType.INT
            and isinstance(value, float)
            and not value.is_integer()
        ):
            self._logger.warning(
                f"INT value type cannot accept {value} for {self._label_set.identifier}, "
                f"dropping the fractional part"
            )
            value = math.trunc(value)

        self._aggregator.update(value)


class BoundCounter(BoundInstrument):
    """Bound counter; negative increments are dropped when monotonic."""

    def __init__(self, label_set, aggregator, disabled, value_type, log, monotonic: bool):
        super().__init__(label_set, aggregator, disabled, value_type, log)
        self._monotonic = monotonic

    def add(self, value: float):
        if self._monotonic and value < 0:
            self._logger.debug(
                f"Monotonic counter cannot descend, dropping {value} for {self._label_set.identifier}"
            )
            return
        self._update(value)


class BoundMeasure(BoundInstrument):
    """Bound measure; negative values are dropped when absolute."""

    def __init__(self, label_set, aggregator, disabled, value_type, log, absolute: bool):
        super().__init__(label_set, aggregator, disabled, value_type, log)
        self._absolute = absolute

    def record(self, value: float):
        if self._absolute and value < 0:
            self._logger.debug(
                f"Absolute measure cannot accept negative values, dropping {value} "
                f"for {self._label_set.identifier}"
            )
            return
        self._update(value)


class BoundObserver(BoundInstrument):
    """Bound observer; each observation replaces the last value."""

    def observe(self, value: float):
        self._update(value)


class Metric(ABC):
    """
    Base class for metric kinds.

    Holds the bound instruments of the metric keyed by label set identifier,
    in the order they were first bound.
    """

    metric_kind: MetricKind

    def __init__(
        self,
        name: str,
        options: MetricOptions,
        monotonic: bool,
        resource: Optional[Resource] = None,
        log: Optional[logging.Logger] = None
    ):
        self._name = name
        self._options = options
        self._disabled = options.disabled
        self._value_type = options.value_type
        self._monotonic = monotonic
        self.resource = resource if resource is not None else Resource.get_empty()
        self._logger = log or logger

        self._instruments: Dict[str, BoundInstrument] = {}
        self._lock = threading.Lock()

        self._descriptor = MetricDescriptor(
            name=name,
            description=options.description,
            unit=options.unit,
            metric_kind=self.metric_kind,
            value_type=options.value_type,
            monotonic=monotonic,
            label_keys=tuple(options.label_keys)
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def descriptor(self) -> MetricDescriptor:
        return self._descriptor

    def bind(self, label_set: LabelSet) -> BoundInstrument:
        """Return the bound instrument for a label set, creating it on first use."""
        with self._lock:
            instrument = self._instruments.get(label_set.identifier)
            if instrument is None:
                instrument = self._make_instrument(label_set)
                self._instruments[label_set.identifier] = instrument
            return instrument

    def unbind(self, label_set: LabelSet):
        """Remove the bound instrument for a label set, if there is one."""
        with self._lock:
            self._instruments.pop(label_set.identifier, None)

    def clear(self):
        """Remove all bound instruments."""
        with self._lock:
            self._instruments.clear()

    def get_metric_record(self) -> List[MetricRecord]:
        """Return one record per bound instrument."""
        with self._lock:
            instruments = list(self._instruments.values())

        return [
            MetricRecord(self._descriptor, instrument.get_label_set(), instrument.get_aggregator())
            for instrument in instruments
        ]

    @abstractmethod
    def _make_instrument(self, label_set: LabelSet) -> BoundInstrument:
        """Create a bound instrument for a new label set."""
        pass


class CounterMetric(Metric):
    """Counter metric, aggregated as a sum."""

    metric_kind = MetricKind.COUNTER

    def __init__(self, name: str, options: Options = None, resource=None, log=None):
        options = resolve_options(options)
        monotonic = True if options.monotonic is None else options.monotonic
        super().__init__(name, options, monotonic, resource, log)

    def _make_instrument(self, label_set: LabelSet) -> BoundCounter:
        return BoundCounter(
            label_set,
            create_aggregator(self.metric_kind),
            self._disabled,
            self._value_type,
            self._logger,
            self._monotonic
        )

    def add(self, value: float, label_set: LabelSet):
        """Add a value to the counter for a label set."""
        self.bind(label_set).add(value)


class MeasureMetric(Metric):
    """Measure metric, aggregated as a count/sum/min/max distribution."""

    metric_kind = MetricKind.MEASURE

    def __init__(self, name: str, options: Options = None, resource=None, log=None):
        options = resolve_options(options)
        self._absolute = True if options.absolute is None else options.absolute
        super().__init__(name, options, False, resource, log)

    def _make_instrument(self, label_set: LabelSet) -> BoundMeasure:
        return BoundMeasure(
            label_set,
            create_aggregator(self.metric_kind),
            self._disabled,
            self._value_type,
            self._logger,
            self._absolute
        )

    def record(self, value: float, label_set: LabelSet):
        """Record a value on the measure for a label set."""
        self.bind(label_set).record(value)


class ObserverResult:
    """Passed to an observer callback; the only thing it allows is observe()."""

    __slots__ = ("_bind",)

    def __init__(self, bind: Callable[[LabelSet], BoundObserver]):
        self._bind = bind

    def observe(self, value: Union[float, Callable[[], float]], label_set: LabelSet):
        """Set the last value for a label set; callables are invoked right away."""
        if callable(value):
            value = value()
        self._bind(label_set).observe(value)


class ObserverMetric(Metric):
    """Observer metric whose values are pulled from a callback at collection time."""

    metric_kind = MetricKind.OBSERVER

    def __init__(self, name: str, options: Options = None, resource=None, log=None):
        options = resolve_options(options)
        super().__init__(name, options, False, resource, log)
        self._callback: Optional[Callable[[ObserverResult], None]] = None

    def _make_instrument(self, label_set: LabelSet) -> BoundObserver:
        return BoundObserver(
            label_set,
            create_aggregator(self.metric_kind),
            self._disabled,
            self._value_type,
            self._logger
        )

    def set_callback(self, callback: Callable[[ObserverResult], None]):
        """Set the function invoked once per collection."""
        self._callback = callback

    def get_metric_record(self) -> List[MetricRecord]:
        """Run the callback, then return records for every label set observed so far."""
        callback = self._callback
        if callback is not None:
            try:
                callback(ObserverResult(self.bind))
            except Exception as e:
                self._logger.error(f"Observer callback for '{self._name}' failed: {e}", exc_info=True)

        return super().get_metric_record()


class NoopBoundInstrument:
    """Bound instrument that ignores everything."""

    def add(self, value: float):
        pass

    def record(self, value: float):
        pass

    def observe(self, value: float):
        pass

    def get_label_set(self) -> Optional[LabelSet]:
        return None

    def get_aggregator(self) -> Optional[Aggregator]:
        return None


class NoopMetric:
    """Metric returned for invalid names; accepts every call and records nothing."""

    def __init__(self):
        self.resource = Resource.get_empty()
        self.descriptor = None

    def bind(self, label_set: LabelSet) -> NoopBoundInstrument:
        return NOOP_BOUND_INSTRUMENT

    def unbind(self, label_set: LabelSet):
        pass

    def clear(self):
        pass

    def add(self, value: float, label_set: LabelSet):
        pass

    def record(self, value: float, label_set: LabelSet):
        pass

    def set_callback(self, callback: Callable[[ObserverResult], None]):
        pass

    def get_metric_record(self) -> List[MetricRecord]:
        return []


NOOP_BOUND_INSTRUMENT = NoopBoundInstrument()
NOOP_METRIC = NoopMetric()


def create_metric(
    name: str,
    metric_kind: MetricKind,
    options: Options = None,
    resource: Optional[Resource] = None,
    log: Optional[logging.Logger] = None
) -> Metric:
    """Factory function to create a metric of the given kind."""
    if metric_kind == MetricKind.COUNTER:
        return CounterMetric(name, options, resource, log)
    elif metric_kind == MetricKind.MEASURE:
        return MeasureMetric(name, options, resource, log)
    elif metric_kind == MetricKind.OBSERVER:
        return ObserverMetric(name, options, resource, log)
    else:
        raise ValueError(f"Unknown metric kind: {metric_kind}")
