"""Tests for metric name validation and registration."""
import threading

import pytest

from metercore.meter import Meter
from metercore.metrics import CounterMetric, MeasureMetric, NoopMetric, NOOP_METRIC, ObserverMetric
from metercore.registry import MetricRegistry, validate_metric_name
from metercore.series import MetricDescriptor, MetricKind, ValueType

INVALID_NAMES = ["", "1name", "_name", "name with invalid characters^&*("]


def test_validate_metric_name():
    """Names start with a letter and use letters, digits, '.', '_' and '-'."""
    assert validate_metric_name("name1")
    assert validate_metric_name("Name_with-all.valid_CharacterClasses")
    for name in INVALID_NAMES:
        assert not validate_metric_name(name), name


def test_valid_names_create_metrics():
    """Valid names give real metrics of the requested kind."""
    meter = Meter("test")
    assert isinstance(meter.create_counter("name1"), CounterMetric)
    assert isinstance(meter.create_counter("Name_with-all.valid_CharacterClasses"), CounterMetric)
    assert isinstance(meter.create_measure("m.1"), MeasureMetric)
    assert isinstance(meter.create_observer("o-1"), ObserverMetric)


@pytest.mark.parametrize("name", INVALID_NAMES)
def test_invalid_names_return_noop(name):
    """Invalid names yield the shared no-op metric for every kind."""
    meter = Meter("test")
    for create in (meter.create_counter, meter.create_measure, meter.create_observer):
        metric = create(name)
        assert isinstance(metric, NoopMetric)
        assert metric is NOOP_METRIC


def test_noop_metric_is_inert():
    """The no-op metric accepts every call and is never collected."""
    meter = Meter("test")
    label_set = meter.labels({"k": "v"})
    metric = meter.create_counter("")

    bound = metric.bind(label_set)
    bound.add(10)
    bound.record(10)
    bound.observe(10)
    metric.add(1, label_set)
    metric.record(1, label_set)
    metric.set_callback(lambda result: result.observe(1, label_set))
    metric.unbind(label_set)
    metric.clear()

    assert bound.get_aggregator() is None
    assert metric.get_metric_record() == []
    assert len(meter.registry) == 0
    meter.collect()
    assert meter.get_batcher().check_point_set() == []


def test_duplicate_registration_keeps_first():
    """Only the first metric under a name is collected."""
    meter = Meter("test")
    label_set = meter.labels({"keyb": "value2", "keya": "value1"})

    counter1 = meter.create_counter("name1")
    counter1.bind(label_set).add(10)

    counter2 = meter.create_counter("name1", value_type=ValueType.INT)
    counter2.bind(label_set).add(500)

    meter.collect()
    records = meter.get_batcher().check_point_set()

    assert len(records) == 1
    assert records[0].descriptor == MetricDescriptor(
        name="name1",
        description="",
        unit="1",
        metric_kind=MetricKind.COUNTER,
        value_type=ValueType.DOUBLE,
        monotonic=True,
        label_keys=()
    )
    assert records[0].aggregator.to_point().value == 10


def test_duplicate_still_works_in_isolation():
    """The losing metric aggregates on its own but is not registered."""
    meter = Meter("test")
    label_set = meter.labels({"k": "v"})
    first = meter.create_counter("dup")
    second = meter.create_measure("dup", absolute=False)

    second.record(-3, label_set)
    [record] = second.get_metric_record()
    assert record.aggregator.to_point().value.count == 1
    assert meter.registry.get("dup") is first


def test_register_is_compare_and_insert():
    """Concurrent registrations under one name leave exactly one winner."""
    registry = MetricRegistry()
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        metric = CounterMetric("shared")
        added = registry.register(metric)
        with lock:
            results.append((added, metric))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    winners = [metric for added, metric in results if added]
    assert len(winners) == 1
    assert registry.get("shared") is winners[0]
    assert len(registry) == 1
    assert "shared" in registry
