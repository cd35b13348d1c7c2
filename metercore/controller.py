"""Periodic collect-and-export loop."""
from typing import Optional
import logging
import threading
import time

from metercore.exporters import ExportResult, MetricExporter
from metercore.meter import Meter

logger = logging.getLogger(__name__)


class PushController:
    """Collects a meter and pushes its checkpoint to an exporter on an interval."""

    def __init__(self, meter: Meter, exporter: MetricExporter, interval_s: float = 10.0):
        if interval_s <= 0:
            raise ValueError(f"interval_s must be positive, got {interval_s}")

        self.meter = meter
        self.exporter = exporter
        self.interval_s = interval_s
        self.tick_count = 0

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def tick(self) -> ExportResult:
        """Run one collection and export."""
        self.meter.collect()
        records = self.meter.get_batcher().check_point_set()
        result = self.exporter.export(records)
        self.tick_count += 1

        if result != ExportResult.SUCCESS:
            logger.warning(f"Export of {len(records)} records from meter '{self.meter.name}' failed: {result.value}")

        return result

    def run(self):
        """Run the loop until stop() is called."""
        logger.info(f"Starting push controller for meter '{self.meter.name}' every {self.interval_s}s")

        while not self._stop_event.is_set():
            tick_start = time.time()

            try:
                self.tick()
            except Exception as e:
                logger.error(f"Error in tick: {e}", exc_info=True)

            # Sleep for remaining time in the interval
            tick_duration = time.time() - tick_start
            sleep_time = max(0, self.interval_s - tick_duration)

            if sleep_time > 0:
                self._stop_event.wait(sleep_time)
            else:
                logger.warning(
                    f"Tick took {tick_duration:.3f}s, longer than interval {self.interval_s}s"
                )

    def start(self):
        """Run the loop on a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="metercore-push", daemon=True)
        self._thread.start()

    def stop(self):
        """Stop the loop, push a final checkpoint and shut the exporter down."""
        logger.info("Stopping push controller")
        self._stop_event.set()

        if self._thread is not None:
            self._thread.join()
            self._thread = None

        try:
            self.tick()
        except Exception as e:
            logger.error(f"Error in final tick: {e}", exc_info=True)

        self.exporter.shutdown()
