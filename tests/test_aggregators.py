"""Tests for the aggregators."""
import math

import pytest

from metercore.aggregators import (
    Distribution,
    DistributionAggregator,
    LastValueAggregator,
    SumAggregator,
    create_aggregator,
)
from metercore.series import MetricKind


def test_sum_aggregator():
    """Sum adds every update."""
    aggregator = SumAggregator()
    assert aggregator.to_point().value == 0
    assert aggregator.to_point().timestamp == 0

    aggregator.update(10)
    aggregator.update(2.5)
    assert aggregator.to_point().value == 12.5


def test_distribution_identity():
    """A fresh distribution has infinite bounds."""
    point = DistributionAggregator().to_point()
    assert point.value == Distribution(count=0, sum=0, min=math.inf, max=-math.inf)


def test_distribution_updates():
    """Count, sum, min and max follow the recorded values."""
    aggregator = DistributionAggregator()
    for value in [-10, 50, 3]:
        aggregator.update(value)

    assert aggregator.to_point().value == Distribution(count=3, sum=43, min=-10, max=50)


def test_last_value_replaces():
    """Last value keeps only the latest update."""
    aggregator = LastValueAggregator()
    aggregator.update(0.3)
    aggregator.update(0.7)
    assert aggregator.to_point().value == 0.7


def test_timestamps_strictly_increase():
    """Back-to-back updates never share a timestamp."""
    aggregator = SumAggregator()
    timestamps = []
    for _ in range(100):
        aggregator.update(1)
        timestamps.append(aggregator.to_point().timestamp)

    assert all(b > a for a, b in zip(timestamps, timestamps[1:]))


def test_to_point_does_not_mutate():
    """Reading a point twice gives the same snapshot."""
    aggregator = DistributionAggregator()
    aggregator.update(5)
    assert aggregator.to_point() == aggregator.to_point()


def test_create_aggregator():
    """Each metric kind maps to its aggregator."""
    assert isinstance(create_aggregator(MetricKind.COUNTER), SumAggregator)
    assert isinstance(create_aggregator(MetricKind.MEASURE), DistributionAggregator)
    assert isinstance(create_aggregator(MetricKind.OBSERVER), LastValueAggregator)

    with pytest.raises(ValueError):
        create_aggregator("histogram")
