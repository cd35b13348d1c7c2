"""Data structures for metric descriptors and collected records."""
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Tuple

from metercore.labels import LabelSet

if TYPE_CHECKING:
    from metercore.aggregators import Aggregator


class MetricKind(str, Enum):
    """Kind of instrument a metric was created as."""
    COUNTER = "counter"
    MEASURE = "measure"
    OBSERVER = "observer"


class ValueType(str, Enum):
    """Numeric type of recorded values."""
    INT = "int"
    DOUBLE = "double"


@dataclass(frozen=True)
class MetricDescriptor:
    """Immutable description of a metric, fixed at creation time."""
    name: str
    description: str
    unit: str
    metric_kind: MetricKind
    value_type: ValueType
    monotonic: bool
    label_keys: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MetricRecord:
    """A metric's bound instrument as seen by one collection pass.

    The aggregator is the live one owned by the bound instrument, so reading
    it later reflects updates made after the collection.
    """
    descriptor: MetricDescriptor
    labels: LabelSet
    aggregator: "Aggregator"
