"""Tests for the console and Prometheus exporters."""
import logging

from metercore.exporters import (
    ConsoleMetricExporter,
    ExportResult,
    PrometheusExporter,
    sanitize_label_name,
    sanitize_metric_name,
)
from metercore.meter import Meter


def populated_meter():
    meter = Meter("export")
    labels = meter.labels({"region": "us", "endpoint": "/api"})

    meter.create_counter("requests", description="Requests served").add(5, labels)
    meter.create_counter("queue.depth", monotonic=False).add(-2, labels)
    measure = meter.create_measure("latency", absolute=False)
    measure.record(0.5, labels)
    measure.record(1.5, labels)
    meter.create_observer("cpu").set_callback(lambda result: result.observe(0.25, labels))

    meter.collect()
    return meter


def test_sanitize_names():
    """Names are mapped onto the Prometheus charset."""
    assert sanitize_metric_name("queue.depth") == "queue_depth"
    assert sanitize_metric_name("a-b:c") == "a_b:c"
    assert sanitize_metric_name("1x") == "_1x"
    assert sanitize_label_name("http.route") == "http_route"
    assert sanitize_label_name("a:b") == "a_b"


def test_console_exporter_logs_each_record(caplog):
    """One log line is written per record."""
    meter = populated_meter()
    records = meter.get_batcher().check_point_set()

    with caplog.at_level(logging.INFO, logger="metercore.exporters"):
        result = ConsoleMetricExporter().export(records)

    assert result == ExportResult.SUCCESS
    lines = [r.getMessage() for r in caplog.records if r.name == "metercore.exporters"]
    assert len(lines) == len(records) == 4
    assert lines[0].startswith("requests |#endpoint:/api,region:us value=5")


def test_prometheus_exporter_renders_checkpoint():
    """Each metric kind maps to the matching Prometheus family."""
    meter = populated_meter()
    exporter = PrometheusExporter(prefix="app_")
    assert exporter.render() == ""

    result = exporter.export(meter.get_batcher().check_point_set())
    assert result == ExportResult.SUCCESS

    output = exporter.render()
    print(output)

    assert "# TYPE app_requests_total counter" in output
    assert "# HELP app_requests_total Requests served" in output
    assert 'app_requests_total{endpoint="/api",region="us"} 5.0' in output

    assert "# TYPE app_queue_depth gauge" in output
    assert 'app_queue_depth{endpoint="/api",region="us"} -2.0' in output

    assert "# TYPE app_latency summary" in output
    assert 'app_latency_count{endpoint="/api",region="us"} 2.0' in output
    assert 'app_latency_sum{endpoint="/api",region="us"} 2.0' in output

    assert "# TYPE app_cpu gauge" in output
    assert 'app_cpu{endpoint="/api",region="us"} 0.25' in output


def test_prometheus_exporter_fills_missing_labels():
    """Records of one metric with different keys share one label schema."""
    meter = Meter("export")
    counter = meter.create_counter("hits")
    counter.add(1, meter.labels({"a": "x"}))
    counter.add(2, meter.labels({"b": "y"}))
    meter.collect()

    exporter = PrometheusExporter()
    exporter.export(meter.get_batcher().check_point_set())
    output = exporter.render()

    assert 'hits_total{a="x",b=""} 1.0' in output
    assert 'hits_total{a="",b="y"} 2.0' in output


def test_prometheus_exporter_reflects_live_aggregators():
    """Rendering reads the live aggregators of the last exported records."""
    meter = Meter("export")
    labels = meter.labels({})
    counter = meter.create_counter("events")
    counter.add(1, labels)
    meter.collect()

    exporter = PrometheusExporter()
    exporter.export(meter.get_batcher().check_point_set())
    counter.add(4, labels)

    assert "events_total 5.0" in exporter.render()


def test_prometheus_exporter_skips_colliding_names(caplog):
    """Distinct names that sanitize to one family keep only the first."""
    meter = Meter("export")
    labels = meter.labels({})
    meter.create_counter("a.b").add(1, labels)
    meter.create_counter("a_b").add(2, labels)
    meter.create_counter("c_total").add(3, labels)
    meter.create_counter("c").add(4, labels)
    meter.collect()

    exporter = PrometheusExporter()
    exporter.export(meter.get_batcher().check_point_set())
    with caplog.at_level(logging.WARNING, logger="metercore.exporters"):
        output = exporter.render()

    assert output.count("# TYPE a_b_total counter") == 1
    assert "a_b_total 1.0" in output
    assert "a_b_total 2.0" not in output

    assert output.count("# TYPE c_total counter") == 1
    assert "c_total 3.0" in output
    assert "c_total 4.0" not in output

    warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 2
    assert any("'a_b' collides with 'a.b'" in w for w in warnings)
