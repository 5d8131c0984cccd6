# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

import pytest
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
    InMemorySpanExporter,
)

from hello_otel.telemetry.config import BatchConfig
from hello_otel.telemetry.providers import (
    init_logger_provider,
    init_meter_provider,
    init_tracer_provider,
    shutdown_provider,
)
from hello_otel.telemetry.resource import build_resource
from tests.conftest import (
    TEST_BATCH,
    CollectingLogExporter,
    CollectingMetricExporter,
    FlakySpanExporter,
)

SMALL_BATCHES = BatchConfig(
    max_queue_size=2048,
    schedule_delay_millis=60000,
    max_export_batch_size=5,
    export_timeout_millis=5000,
    metric_export_interval_millis=600000,
)


def emit_spans(provider: TracerProvider, count: int) -> list:
    tracer = provider.get_tracer("batching-test")
    names = [f"span-{i}" for i in range(count)]
    for name in names:
        with tracer.start_as_current_span(name):
            pass
    return names


def is_ordered_subsequence(delivered: list, emitted: list) -> bool:
    position = {name: index for index, name in enumerate(emitted)}
    indexes = [position[name] for name in delivered]
    return all(a < b for a, b in zip(indexes, indexes[1:]))


@pytest.mark.unit
class TestResource:
    """Test the shared resource"""

    def test_resource_attributes(self):
        """Test the resource carries exactly the service and host name"""
        resource = build_resource("svc", "box")

        assert dict(resource.attributes) == {
            "service.name": "svc",
            "host.name": "box",
        }


@pytest.mark.unit
class TestProviders:
    """Test provider construction"""

    def test_providers_share_resource(self):
        """Test the three providers are built on the given resource"""
        resource = build_resource("svc", "box")

        tracer_provider = init_tracer_provider(
            resource, InMemorySpanExporter(), TEST_BATCH
        )
        meter_provider = init_meter_provider(
            resource, CollectingMetricExporter(), TEST_BATCH
        )
        logger_provider = init_logger_provider(
            resource, CollectingLogExporter(), TEST_BATCH
        )
        try:
            assert isinstance(tracer_provider, TracerProvider)
            assert isinstance(meter_provider, MeterProvider)
            assert isinstance(logger_provider, LoggerProvider)
            assert tracer_provider.resource is resource
            assert logger_provider.resource is resource
        finally:
            tracer_provider.shutdown()
            meter_provider.shutdown()
            logger_provider.shutdown()

    def test_shutdown_provider_never_raises(self, mocker):
        """Test a failing shutdown is logged, not raised"""
        provider = mocker.Mock()
        provider.shutdown.side_effect = RuntimeError("boom")

        shutdown_provider(provider, "TracerProvider")

        provider.shutdown.assert_called_once()


@pytest.mark.unit
class TestBatching:
    """Test delivery guarantees of the span pipeline"""

    def test_all_spans_delivered_in_order(self):
        """Test a healthy exporter receives every span once, in order"""
        exporter = InMemorySpanExporter()
        provider = init_tracer_provider(
            build_resource("svc", "box"), exporter, SMALL_BATCHES
        )
        try:
            emitted = emit_spans(provider, 23)
            provider.force_flush()

            delivered = [span.name for span in exporter.get_finished_spans()]
            assert delivered == emitted
        finally:
            provider.shutdown()

    def test_failures_lose_batches_without_duplicates(self):
        """Test failed batches are dropped, never delivered twice or reordered"""
        exporter = FlakySpanExporter()
        provider = init_tracer_provider(
            build_resource("svc", "box"), exporter, SMALL_BATCHES
        )
        try:
            emitted = emit_spans(provider, 40)
            provider.force_flush()

            delivered = exporter.delivered
            assert len(delivered) <= len(emitted)
            assert len(delivered) == len(set(delivered))
            assert is_ordered_subsequence(delivered, emitted)
            assert exporter.calls > 1
            assert len(delivered) < len(emitted)
        finally:
            provider.shutdown()

    def test_pipeline_survives_exporter_errors(self):
        """Test spans emitted after failed exports are still accepted"""
        exporter = FlakySpanExporter()
        provider = init_tracer_provider(
            build_resource("svc", "box"), exporter, SMALL_BATCHES
        )
        try:
            emit_spans(provider, 20)
            provider.force_flush()
            calls_before = exporter.calls

            emit_spans(provider, 5)
            provider.force_flush()

            assert exporter.calls > calls_before
        finally:
            provider.shutdown()
