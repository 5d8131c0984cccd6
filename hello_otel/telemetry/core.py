# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Telemetry initialization and lifecycle.

init_telemetry() builds the three exporters, wraps them in their batching
pipelines, creates the tracer, meter and logger providers and installs the
subscriber chain. Construction is all or nothing: if the batching settings
are invalid or one exporter cannot be built, nothing is published, exporters
built so far are shut down and TelemetryInitError is raised.

On success the tracer provider is also published as the OpenTelemetry global
tracer provider, for instrumentation that is not handed a provider
explicitly. That slot, like the registry itself, is written once per
process; initializing a second time raises TelemetryAlreadyInitializedError.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from opentelemetry import metrics, trace
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import LogExporter
from opentelemetry.sdk.metrics import MeterProvider as SDKMeterProvider
from opentelemetry.sdk.metrics.export import MetricExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider as SDKTracerProvider
from opentelemetry.sdk.trace.export import SpanExporter

from hello_otel.telemetry.config import (
    BatchConfig,
    TelemetryConfig,
    validate_batch_config,
)
from hello_otel.telemetry.exceptions import (
    ExporterConfigError,
    TelemetryAlreadyInitializedError,
    TelemetryInitError,
)
from hello_otel.telemetry.exporters import Signal, build_exporter
from hello_otel.telemetry.providers import (
    init_logger_provider,
    init_meter_provider,
    init_tracer_provider,
    shutdown_provider,
)
from hello_otel.telemetry.resource import build_resource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExporterSet:
    """One exporter per signal."""

    span_exporter: SpanExporter
    metric_exporter: MetricExporter
    log_exporter: LogExporter

    def shutdown(self) -> None:
        for exporter in (self.span_exporter, self.metric_exporter, self.log_exporter):
            try:
                exporter.shutdown()
            except Exception as e:
                logger.warning("Failed to shut down %s: %s", type(exporter).__name__, e)


@dataclass(frozen=True)
class ProviderRegistry:
    """The three signal providers sharing one resource."""

    service_name: str
    resource: Resource
    tracer_provider: SDKTracerProvider
    meter_provider: SDKMeterProvider
    logger_provider: LoggerProvider

    def get_tracer(self, name: str) -> trace.Tracer:
        return self.tracer_provider.get_tracer(name)

    def get_meter(self, name: str) -> metrics.Meter:
        return self.meter_provider.get_meter(name)

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        """Push everything queued in the three pipelines to the exporters."""
        results = [
            self.tracer_provider.force_flush(timeout_millis),
            self.meter_provider.force_flush(timeout_millis),
            self.logger_provider.force_flush(timeout_millis),
        ]
        return all(results)

    def shutdown(self) -> None:
        shutdown_provider(self.tracer_provider, "TracerProvider")
        shutdown_provider(self.meter_provider, "MeterProvider")
        shutdown_provider(self.logger_provider, "LoggerProvider")


# Written once by init_telemetry()
_registry: Optional[ProviderRegistry] = None
_init_lock = threading.Lock()


def build_exporters(
    otlp_endpoint: str,
    license_key: str,
    export_timeout: float = 10.0,
) -> ExporterSet:
    """
    Build the OTLP/JSON exporters in order: traces, metrics, logs.

    Raises:
        ExporterConfigError: On the first malformed exporter configuration
    """
    return ExporterSet(
        span_exporter=build_exporter(
            Signal.TRACES, otlp_endpoint, license_key, export_timeout
        ),
        metric_exporter=build_exporter(
            Signal.METRICS, otlp_endpoint, license_key, export_timeout
        ),
        log_exporter=build_exporter(
            Signal.LOGS, otlp_endpoint, license_key, export_timeout
        ),
    )


def build_registry(
    service_name: str,
    host_name: str,
    exporters: ExporterSet,
    batch: Optional[BatchConfig] = None,
) -> ProviderRegistry:
    """Create the three providers around already built exporters."""
    resource = build_resource(service_name, host_name)
    return ProviderRegistry(
        service_name=service_name,
        resource=resource,
        tracer_provider=init_tracer_provider(
            resource, exporters.span_exporter, batch
        ),
        meter_provider=init_meter_provider(
            resource, exporters.metric_exporter, batch
        ),
        logger_provider=init_logger_provider(
            resource, exporters.log_exporter, batch
        ),
    )


def init_telemetry(
    otlp_endpoint: str,
    license_key: str,
    service_name: str,
    host_name: str,
    *,
    batch: Optional[BatchConfig] = None,
    export_timeout: float = 10.0,
    log_level: Optional[str] = None,
    exporters: Optional[ExporterSet] = None,
    install_logging: bool = True,
) -> ProviderRegistry:
    """
    Initialize the telemetry stack.

    Args:
        otlp_endpoint: Collector base URL
        license_key: Value of the api-key header
        service_name: service.name resource attribute
        host_name: host.name resource attribute
        batch: Batching settings for the three pipelines
        export_timeout: Per-request export timeout in seconds
        log_level: LOG_LEVEL style minimum level for the subscriber chain
        exporters: Prebuilt exporters; skips building the OTLP/JSON ones
        install_logging: Whether to install the subscriber chain

    Returns:
        ProviderRegistry: The initialized registry

    Raises:
        TelemetryAlreadyInitializedError: If telemetry is already initialized
        TelemetryInitError: If an exporter cannot be built or the batching
            settings are invalid
    """
    global _registry

    with _init_lock:
        if _registry is not None:
            raise TelemetryAlreadyInitializedError(
                "Telemetry is already initialized in this process"
            )

        try:
            validate_batch_config(batch or BatchConfig())
        except ValueError as e:
            raise TelemetryInitError(
                f"Invalid batch configuration: {e}", cause=e
            ) from e

        built_here = exporters is None
        if exporters is None:
            try:
                exporters = build_exporters(otlp_endpoint, license_key, export_timeout)
            except ExporterConfigError as e:
                raise TelemetryInitError(
                    f"Failed to initialize telemetry: {e}", cause=e
                ) from e

        try:
            registry = build_registry(service_name, host_name, exporters, batch)
        except ValueError as e:
            if built_here:
                exporters.shutdown()
            raise TelemetryInitError(
                f"Failed to initialize telemetry: {e}", cause=e
            ) from e

        if install_logging:
            # Imported here to avoid circular imports
            from hello_otel.telemetry.subscriber import (
                SubscriberChain,
                default_layers,
                install_subscriber,
            )

            try:
                chain = SubscriberChain(default_layers(registry, log_level))
                install_subscriber(chain, registry.tracer_provider)
            except TelemetryInitError:
                registry.shutdown()
                raise

        trace.set_tracer_provider(registry.tracer_provider)
        _registry = registry

    logger.info(
        "Telemetry initialized: service=%s host=%s endpoint=%s",
        service_name,
        host_name,
        otlp_endpoint,
    )
    return registry


def init_telemetry_from_config(
    config: TelemetryConfig,
    exporters: Optional[ExporterSet] = None,
    install_logging: bool = True,
) -> ProviderRegistry:
    """Initialize telemetry from a TelemetryConfig."""
    return init_telemetry(
        config.otlp_endpoint,
        config.license_key,
        config.service_name,
        config.host_name,
        batch=config.batch,
        export_timeout=config.export_timeout,
        log_level=config.log_level,
        exporters=exporters,
        install_logging=install_logging,
    )


def get_registry() -> Optional[ProviderRegistry]:
    return _registry


def is_telemetry_enabled() -> bool:
    """Check whether init_telemetry() completed in this process."""
    return _registry is not None


def get_tracer(name: str) -> trace.Tracer:
    """
    Get a tracer from the registry, or from the global provider if telemetry
    is not initialized (a no-op tracer unless someone else set one).
    """
    if _registry is not None:
        return _registry.get_tracer(name)
    return trace.get_tracer(name)


def get_meter(name: str) -> metrics.Meter:
    """Get a meter from the registry, or a no-op meter before initialization."""
    if _registry is not None:
        return _registry.get_meter(name)
    return metrics.get_meter(name)


def shutdown_telemetry() -> None:
    """
    Flush and shut down the providers.

    Should be called during application shutdown. Never raises.
    """
    registry = _registry
    if registry is None:
        return

    # Imported here to avoid circular imports
    from hello_otel.telemetry.subscriber import uninstall_subscriber

    uninstall_subscriber()
    registry.shutdown()
    logger.debug("Telemetry shutdown completed")


def reset_telemetry() -> None:
    """
    Forget the initialized registry.

    Only useful in tests. The OpenTelemetry global tracer provider keeps its
    first value; tests reset it separately.
    """
    global _registry

    from hello_otel.telemetry.subscriber import uninstall_subscriber

    with _init_lock:
        uninstall_subscriber()
        _registry = None
