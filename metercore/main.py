"""Entry point that runs a push controller over process runtime metrics."""
import argparse
import logging
import os
import signal
import sys
import threading
import time

from pythonjsonlogger import jsonlogger

from metercore.config import ExportConfig, load_config
from metercore.controller import PushController
from metercore.exporters import ConsoleMetricExporter, MetricExporter, PrometheusExporter
from metercore.meter import Meter, MeterProvider
from metercore.metrics import ObserverResult

RUNTIME_METER = "runtime"


def create_log_formatter(log_format: str) -> logging.Formatter:
    """Build the formatter for the configured log format."""
    if log_format == "json":
        return jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "time", "levelname": "level", "name": "logger"},
            datefmt="%Y-%m-%d %H:%M:%S"
        )
    return logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )


def setup_logging(log_level: str, log_format: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(create_log_formatter(log_format))

    logging.basicConfig(level=level, handlers=[handler])


def create_exporter(config: ExportConfig) -> MetricExporter:
    """Build the exporter selected in the export config."""
    if config.exporter == "prometheus":
        return PrometheusExporter(prefix=config.prefix)
    return ConsoleMetricExporter()


def register_runtime_observers(meter: Meter):
    """Register observers for process CPU time and thread count."""
    process_labels = meter.labels({"pid": str(os.getpid())})

    cpu_time = meter.create_observer(
        "process.cpu_time",
        description="CPU time used by this process",
        unit="s"
    )
    cpu_time.set_callback(lambda result: result.observe(time.process_time, process_labels))

    threads = meter.create_observer(
        "process.threads",
        description="Number of live threads",
        value_type="int"
    )

    def observe_threads(result: ObserverResult):
        result.observe(threading.active_count, process_labels)

    threads.set_callback(observe_threads)


def main(argv=None):
    """Main function."""
    parser = argparse.ArgumentParser(
        description="metercore - collect and export process runtime metrics"
    )
    parser.add_argument(
        "--config",
        "-c",
        required=True,
        help="Path to configuration YAML file"
    )

    args = parser.parse_args(argv)

    # Load configuration
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config.global_.log_level, config.global_.log_format)
    logger = logging.getLogger(__name__)

    logger.info(f"Configuration loaded from: {args.config}")
    logger.info(f"Export interval: {config.export.interval_s}s ({config.export.exporter})")

    provider = MeterProvider(config)
    meter = provider.get_meter(RUNTIME_METER)
    register_runtime_observers(meter)

    exporter = create_exporter(config.export)
    controller = PushController(meter, exporter, config.export.interval_s)

    stop_event = threading.Event()

    # Setup signal handlers
    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    controller.start()
    while not stop_event.is_set():
        stop_event.wait(1.0)

    controller.stop()

    if isinstance(exporter, PrometheusExporter):
        sys.stdout.write(exporter.render())


if __name__ == "__main__":
    main()
