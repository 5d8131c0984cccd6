# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

import logging

import pytest
from opentelemetry import trace
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.trace import TracerProvider

from hello_otel.telemetry.config import BatchConfig, TelemetryConfig
from hello_otel.telemetry.core import (
    ExporterSet,
    build_exporters,
    get_registry,
    get_tracer,
    init_telemetry,
    init_telemetry_from_config,
    is_telemetry_enabled,
    shutdown_telemetry,
)
from hello_otel.telemetry.exceptions import (
    ExporterConfigError,
    TelemetryAlreadyInitializedError,
    TelemetryInitError,
)
from hello_otel.telemetry.exporters import (
    JsonLogExporter,
    JsonMetricExporter,
    JsonSpanExporter,
)
from hello_otel.telemetry.subscriber import get_installed_subscriber
from tests.conftest import TEST_BATCH


@pytest.fixture
def no_network(mocker):
    """Replace the HTTP session used by the JSON exporters."""
    session_cls = mocker.patch("hello_otel.telemetry.exporters.requests.Session")
    session_cls.return_value.post.return_value = mocker.Mock(
        ok=True, status_code=200, reason="OK"
    )
    return session_cls


@pytest.mark.unit
class TestBuildExporters:
    """Test building the exporter set"""

    def test_builds_one_exporter_per_signal(self, no_network):
        """Test traces, metrics and logs exporters on one endpoint"""
        exporters = build_exporters("https://otlp.nr-data.net", "key")

        assert isinstance(exporters.span_exporter, JsonSpanExporter)
        assert isinstance(exporters.metric_exporter, JsonMetricExporter)
        assert isinstance(exporters.log_exporter, JsonLogExporter)
        assert exporters.log_exporter.endpoint == "https://otlp.nr-data.net/v1/logs"

    def test_first_failure_is_traces(self):
        """Test exporters are built in order traces, metrics, logs"""
        with pytest.raises(ExporterConfigError) as exc_info:
            build_exporters("not-a-url", "key")

        assert exc_info.value.signal == "traces"


@pytest.mark.unit
class TestInitTelemetry:
    """Test telemetry initialization"""

    def test_registry_has_one_provider_per_signal(self, registry):
        """Test a successful init exposes the three providers"""
        assert isinstance(registry.tracer_provider, TracerProvider)
        assert isinstance(registry.meter_provider, MeterProvider)
        assert isinstance(registry.logger_provider, LoggerProvider)
        assert registry.service_name == "test-service"
        assert registry.resource.attributes["service.name"] == "test-service"
        assert registry.resource.attributes["host.name"] == "test-host"

    def test_global_tracer_provider_is_published(self, registry):
        """Test the tracer provider becomes the global one"""
        assert trace.get_tracer_provider() is registry.tracer_provider
        assert get_registry() is registry
        assert is_telemetry_enabled()

    def test_subscriber_installed(self, registry):
        """Test the subscriber chain is installed on the root logger"""
        handler = get_installed_subscriber()

        assert handler is not None
        assert handler in logging.getLogger().handlers
        assert len(handler.chain.layers) == 5

    def test_malformed_endpoint_publishes_nothing(self):
        """Test a malformed endpoint fails init and leaves no global state"""
        with pytest.raises(TelemetryInitError) as exc_info:
            init_telemetry("otlp.nr-data.net", "key", "svc", "host")

        assert isinstance(exc_info.value.cause, ExporterConfigError)
        assert isinstance(exc_info.value.__cause__, ExporterConfigError)
        assert not is_telemetry_enabled()
        assert get_installed_subscriber() is None
        assert not isinstance(trace.get_tracer_provider(), TracerProvider)

    def test_invalid_batch_publishes_nothing(self, exporters):
        """Test a batch larger than the queue fails init cleanly"""
        batch = BatchConfig(max_queue_size=2048, max_export_batch_size=4096)

        with pytest.raises(TelemetryInitError) as exc_info:
            init_telemetry(
                "http://collector.test",
                "key",
                "svc",
                "host",
                batch=batch,
                exporters=exporters,
            )

        assert isinstance(exc_info.value.cause, ValueError)
        assert not is_telemetry_enabled()
        assert get_installed_subscriber() is None
        assert not isinstance(trace.get_tracer_provider(), TracerProvider)

    def test_invalid_batch_builds_no_exporters(self, mocker):
        """Test batching settings are checked before any exporter exists"""
        build = mocker.patch("hello_otel.telemetry.core.build_exporters")

        with pytest.raises(TelemetryInitError):
            init_telemetry(
                "https://otlp.nr-data.net",
                "key",
                "svc",
                "host",
                batch=BatchConfig(schedule_delay_millis=0),
            )

        build.assert_not_called()

    def test_pipeline_failure_shuts_down_exporters(self, mocker):
        """Test exporters built by init are shut down when a pipeline fails"""
        built = ExporterSet(
            span_exporter=mocker.Mock(),
            metric_exporter=mocker.Mock(),
            log_exporter=mocker.Mock(),
        )
        mocker.patch("hello_otel.telemetry.core.build_exporters", return_value=built)
        mocker.patch(
            "hello_otel.telemetry.core.init_tracer_provider",
            side_effect=ValueError("bad pipeline"),
        )

        with pytest.raises(TelemetryInitError) as exc_info:
            init_telemetry("https://otlp.nr-data.net", "key", "svc", "host")

        assert isinstance(exc_info.value.__cause__, ValueError)
        built.span_exporter.shutdown.assert_called_once()
        built.metric_exporter.shutdown.assert_called_once()
        built.log_exporter.shutdown.assert_called_once()
        assert not is_telemetry_enabled()

    def test_empty_license_key_fails(self):
        """Test an empty license key fails init"""
        with pytest.raises(TelemetryInitError):
            init_telemetry("https://otlp.nr-data.net", "", "svc", "host")

        assert not is_telemetry_enabled()

    def test_second_init_is_rejected(self, registry, exporters):
        """Test initializing twice raises and keeps the first registry"""
        with pytest.raises(TelemetryAlreadyInitializedError):
            init_telemetry(
                "http://collector.test",
                "other-key",
                "other-service",
                "other-host",
                exporters=exporters,
            )

        assert get_registry() is registry
        assert trace.get_tracer_provider() is registry.tracer_provider

    def test_already_initialized_is_an_init_error(self):
        """Test callers catching TelemetryInitError also catch re-init"""
        assert issubclass(TelemetryAlreadyInitializedError, TelemetryInitError)

    def test_init_from_config(self, exporters):
        """Test init from a TelemetryConfig"""
        config = TelemetryConfig(
            license_key="key",
            otlp_endpoint="http://collector.test",
            service_name="from-config",
            host_name="box",
            batch=TEST_BATCH,
        )

        registry = init_telemetry_from_config(config, exporters=exporters)
        try:
            assert registry.service_name == "from-config"
            assert registry.resource.attributes["host.name"] == "box"
        finally:
            shutdown_telemetry()

    def test_init_with_json_exporters(self, no_network):
        """Test init builds the JSON exporters without sending anything"""
        registry = init_telemetry(
            "https://otlp.nr-data.net",
            "key",
            "svc",
            "host",
            batch=TEST_BATCH,
            install_logging=False,
        )
        try:
            assert get_installed_subscriber() is None
            assert is_telemetry_enabled()
            no_network.return_value.post.assert_not_called()
        finally:
            registry.shutdown()


@pytest.mark.unit
class TestTelemetryUsage:
    """Test spans and logs through an initialized registry"""

    def test_get_tracer_uses_registry(self, registry, exporters):
        """Test spans from get_tracer() reach the registry's exporter"""
        with get_tracer(__name__).start_as_current_span("work"):
            pass
        registry.force_flush()

        names = [span.name for span in exporters.span_exporter.get_finished_spans()]
        assert names == ["work"]

    def test_logs_are_exported(self, registry, exporters):
        """Test application records reach the log exporter"""
        logging.getLogger("hello_otel.api.handler").info("exported")
        registry.force_flush()

        assert [record.body for record in exporters.log_exporter.records] == [
            "exported"
        ]

    def test_debug_dropped_at_info_level(self, registry, exporters):
        """Test records below the configured level are not exported"""
        logging.getLogger("hello_otel.api.handler").debug("hidden")
        registry.force_flush()

        assert exporters.log_exporter.records == []

    def test_internal_records_are_not_exported(self, registry, exporters):
        """Test the export stack's own records stay local"""
        logging.getLogger("hello_otel.telemetry.exporters").warning("export failed")
        registry.force_flush()

        assert exporters.log_exporter.records == []

    def test_shutdown_telemetry_never_raises(self, registry, mocker):
        """Test shutdown swallows provider errors"""
        mocker.patch.object(
            registry.tracer_provider, "shutdown", side_effect=RuntimeError("boom")
        )

        shutdown_telemetry()

        assert get_installed_subscriber() is None

    def test_shutdown_without_init(self):
        """Test shutdown is a no-op before init"""
        shutdown_telemetry()

        assert not is_telemetry_enabled()
