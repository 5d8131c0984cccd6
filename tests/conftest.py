# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

import logging
import threading
from typing import List

import pytest
from opentelemetry import trace
from opentelemetry.sdk._logs.export import LogExporter, LogExportResult
from opentelemetry.sdk.metrics.export import MetricExporter, MetricExportResult
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult
from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
    InMemorySpanExporter,
)
from opentelemetry.util._once import Once

from hello_otel.telemetry.config import BatchConfig, reset_telemetry_config
from hello_otel.telemetry.core import ExporterSet, init_telemetry, reset_telemetry

# Long delays so that nothing is exported before a test calls force_flush()
TEST_BATCH = BatchConfig(
    max_queue_size=2048,
    schedule_delay_millis=60000,
    max_export_batch_size=512,
    export_timeout_millis=5000,
    metric_export_interval_millis=600000,
)


# =============================================================================
# Test exporters
# =============================================================================


class CollectingMetricExporter(MetricExporter):
    """Keeps every exported MetricsData in memory."""

    def __init__(self):
        super().__init__()
        self.exported = []

    def export(self, metrics_data, timeout_millis: float = 10_000, **kwargs):
        self.exported.append(metrics_data)
        return MetricExportResult.SUCCESS

    def force_flush(self, timeout_millis: float = 10_000) -> bool:
        return True

    def shutdown(self, timeout_millis: float = 30_000, **kwargs) -> None:
        pass

    def points(self, name: str) -> list:
        """All data points exported for a metric name."""
        found = []
        for metrics_data in self.exported:
            for resource_metrics in metrics_data.resource_metrics:
                for scope_metrics in resource_metrics.scope_metrics:
                    for metric in scope_metrics.metrics:
                        if metric.name == name:
                            found.extend(metric.data.data_points)
        return found


class CollectingLogExporter(LogExporter):
    """Keeps every exported log record in memory."""

    def __init__(self):
        self.items = []
        self._lock = threading.Lock()

    def export(self, batch):
        with self._lock:
            self.items.extend(batch)
        return LogExportResult.SUCCESS

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True

    def shutdown(self) -> None:
        pass

    @property
    def records(self) -> list:
        # Exported items wrap the SDK LogRecord
        return [getattr(item, "log_record", item) for item in self.items]


class FlakySpanExporter(SpanExporter):
    """Fails every other export, alternating between an error result and a raise."""

    def __init__(self):
        self.calls = 0
        self.delivered: List[str] = []

    def export(self, spans):
        self.calls += 1
        if self.calls % 4 == 2:
            return SpanExportResult.FAILURE
        if self.calls % 4 == 0:
            raise ConnectionError("collector unreachable")
        self.delivered.extend(span.name for span in spans)
        return SpanExportResult.SUCCESS

    def shutdown(self) -> None:
        pass


# =============================================================================
# Global state
# =============================================================================


def reset_trace_globals() -> None:
    """Allow the OpenTelemetry global tracer provider to be set again."""
    trace._TRACER_PROVIDER_SET_ONCE = Once()
    trace._TRACER_PROVIDER = None


@pytest.fixture(autouse=True)
def clean_telemetry_state():
    """Reset registry, subscriber, cached config and OTel globals around each test."""
    root_logger = logging.getLogger()
    saved_level = root_logger.level

    reset_telemetry()
    reset_telemetry_config()
    reset_trace_globals()

    yield

    reset_telemetry()
    reset_telemetry_config()
    reset_trace_globals()

    root_logger.setLevel(saved_level)


@pytest.fixture
def exporters():
    return ExporterSet(
        span_exporter=InMemorySpanExporter(),
        metric_exporter=CollectingMetricExporter(),
        log_exporter=CollectingLogExporter(),
    )


@pytest.fixture
def registry(exporters):
    """An initialized telemetry stack exporting into memory."""
    registry = init_telemetry(
        "http://collector.test",
        "test-license-key",
        "test-service",
        "test-host",
        batch=TEST_BATCH,
        log_level="info",
        exporters=exporters,
    )
    yield registry
    reset_telemetry()
    registry.shutdown()
