# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
OpenTelemetry provider initialization module.

Builds the TracerProvider, MeterProvider and LoggerProvider, each wrapping
its exporter in a batching stage so that emitting telemetry never waits on
network I/O:

- spans go through a BatchSpanProcessor
- log records go through a BatchLogRecordProcessor
- metrics are collected by a PeriodicExportingMetricReader

All three run their exports on a background thread. When a queue is full the
oldest queued item is dropped. Export failures are logged by the SDK worker
and never reach the code that emitted the telemetry.
"""

import logging
from typing import Optional

from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor, LogExporter
from opentelemetry.sdk.metrics import MeterProvider as SDKMeterProvider
from opentelemetry.sdk.metrics.export import (
    MetricExporter,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider as SDKTracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter

from hello_otel.telemetry.config import BatchConfig

logger = logging.getLogger(__name__)


def build_span_processor(
    exporter: SpanExporter, batch: Optional[BatchConfig] = None
) -> BatchSpanProcessor:
    """Wrap a span exporter in a BatchSpanProcessor."""
    batch = batch or BatchConfig()
    return BatchSpanProcessor(
        exporter,
        max_queue_size=batch.max_queue_size,
        schedule_delay_millis=batch.schedule_delay_millis,
        max_export_batch_size=batch.max_export_batch_size,
        export_timeout_millis=batch.export_timeout_millis,
    )


def build_log_processor(
    exporter: LogExporter, batch: Optional[BatchConfig] = None
) -> BatchLogRecordProcessor:
    """Wrap a log exporter in a BatchLogRecordProcessor."""
    batch = batch or BatchConfig()
    return BatchLogRecordProcessor(
        exporter,
        schedule_delay_millis=batch.schedule_delay_millis,
        max_export_batch_size=batch.max_export_batch_size,
        export_timeout_millis=batch.export_timeout_millis,
        max_queue_size=batch.max_queue_size,
    )


def build_metric_reader(
    exporter: MetricExporter, batch: Optional[BatchConfig] = None
) -> PeriodicExportingMetricReader:
    """Wrap a metric exporter in a PeriodicExportingMetricReader."""
    batch = batch or BatchConfig()
    return PeriodicExportingMetricReader(
        exporter,
        export_interval_millis=batch.metric_export_interval_millis,
        export_timeout_millis=batch.export_timeout_millis,
    )


def init_tracer_provider(
    resource: Resource,
    exporter: SpanExporter,
    batch: Optional[BatchConfig] = None,
) -> SDKTracerProvider:
    """
    Create a TracerProvider exporting through a BatchSpanProcessor.

    The provider is not published globally here, see init_telemetry().

    Args:
        resource: Resource shared by all providers
        exporter: Span exporter
        batch: Batching settings

    Returns:
        SDKTracerProvider
    """
    tracer_provider = SDKTracerProvider(resource=resource)
    tracer_provider.add_span_processor(build_span_processor(exporter, batch))

    logger.debug("TracerProvider initialized with %s", type(exporter).__name__)
    return tracer_provider


def init_meter_provider(
    resource: Resource,
    exporter: MetricExporter,
    batch: Optional[BatchConfig] = None,
) -> SDKMeterProvider:
    """
    Create a MeterProvider with a periodic exporting reader.

    Args:
        resource: Resource shared by all providers
        exporter: Metric exporter
        batch: Batching settings (metric_export_interval_millis is used)

    Returns:
        SDKMeterProvider
    """
    metric_reader = build_metric_reader(exporter, batch)
    meter_provider = SDKMeterProvider(
        resource=resource, metric_readers=[metric_reader]
    )

    logger.debug("MeterProvider initialized with %s", type(exporter).__name__)
    return meter_provider


def init_logger_provider(
    resource: Resource,
    exporter: LogExporter,
    batch: Optional[BatchConfig] = None,
) -> LoggerProvider:
    """
    Create a LoggerProvider exporting through a BatchLogRecordProcessor.

    Args:
        resource: Resource shared by all providers
        exporter: Log exporter
        batch: Batching settings

    Returns:
        LoggerProvider
    """
    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(build_log_processor(exporter, batch))

    logger.debug("LoggerProvider initialized with %s", type(exporter).__name__)
    return logger_provider


def shutdown_provider(provider, name: str) -> None:
    """Flush and shut down a provider, logging instead of raising."""
    try:
        provider.shutdown()
        logger.debug("%s shutdown completed", name)
    except Exception as e:
        logger.error("Error during %s shutdown: %s", name, e)
