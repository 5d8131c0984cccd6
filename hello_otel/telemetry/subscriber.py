# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
The process-wide observation sink.

A SubscriberChain is an ordered list of layers. Log records reach it through
a SubscriberHandler on the root logger, span start/end through a
SubscriberSpanProcessor on the tracer provider. Every event is offered to
every layer in order; the layers never know about each other.

The default order is fixed:

    1. ConsoleLayer
    2. LevelFilterLayer
    3. TraceLayer
    4. MetricsLayer
    5. LogBridgeLayer

A record that any layer reports as not enabled is dropped for all of them,
so the level filter applies to the console as well as to the exporters.
"""

import logging
import threading
from typing import TYPE_CHECKING, List, Optional, Sequence

from opentelemetry.context import Context
from opentelemetry.sdk.trace import ReadableSpan, Span, SpanProcessor
from opentelemetry.sdk.trace import TracerProvider as SDKTracerProvider

from hello_otel.telemetry.exceptions import TelemetryInitError
from hello_otel.telemetry.layers import (
    ConsoleLayer,
    Layer,
    LevelFilterLayer,
    LogBridgeLayer,
    MetricsLayer,
    TraceLayer,
    extract_measurements,
    is_internal_record,
)

if TYPE_CHECKING:
    from hello_otel.telemetry.core import ProviderRegistry

logger = logging.getLogger(__name__)


class SubscriberChain:
    """Ordered fan-out of telemetry events to independent layers."""

    def __init__(self, layers: Sequence[Layer]):
        self._layers = tuple(layers)

    @property
    def layers(self) -> tuple:
        return self._layers

    @property
    def level(self) -> int:
        """Lowest level any record needs to pass the filter layers."""
        levels = [
            layer.level for layer in self._layers if isinstance(layer, LevelFilterLayer)
        ]
        return max(levels) if levels else logging.NOTSET

    def enabled(self, record: logging.LogRecord) -> bool:
        return all(layer.enabled(record) for layer in self._layers)

    def dispatch_log(self, record: logging.LogRecord) -> bool:
        """
        Offer a log record, and the measurements it carries, to every layer.

        Returns:
            bool: False if the record was filtered out
        """
        if not self.enabled(record):
            return False

        internal = is_internal_record(record)
        measurements = extract_measurements(record)
        for layer in self._layers:
            if internal and layer.skip_internal:
                continue
            layer.on_log(record)
            for measurement in measurements:
                layer.on_metric(measurement)
        return True

    def dispatch_span_start(
        self, span: Span, parent_context: Optional[Context] = None
    ) -> None:
        for layer in self._layers:
            layer.on_span_start(span, parent_context)

    def dispatch_span_end(self, span: ReadableSpan) -> None:
        for layer in self._layers:
            layer.on_span_end(span)

    def shutdown(self) -> None:
        for layer in self._layers:
            try:
                layer.shutdown()
            except Exception as e:
                logger.debug(f"Failed to shutdown layer {layer.name}: {e}")


class SubscriberHandler(logging.Handler):
    """Root logging handler feeding records into a SubscriberChain."""

    def __init__(self, chain: SubscriberChain):
        super().__init__(level=logging.NOTSET)
        self.chain = chain

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.chain.dispatch_log(record)
        except Exception:
            # A broken layer must never turn into an error at the call site
            self.handleError(record)


class SubscriberSpanProcessor(SpanProcessor):
    """SpanProcessor feeding span start/end into a SubscriberChain."""

    def __init__(self, chain: SubscriberChain):
        self.chain = chain

    def on_start(self, span: Span, parent_context: Optional[Context] = None) -> None:
        try:
            self.chain.dispatch_span_start(span, parent_context)
        except Exception as e:
            logger.debug(f"Subscriber failed on span start: {e}")

    def on_end(self, span: ReadableSpan) -> None:
        try:
            self.chain.dispatch_span_end(span)
        except Exception as e:
            logger.debug(f"Subscriber failed on span end: {e}")

    def shutdown(self) -> None:
        self.chain.shutdown()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True


def default_layers(
    registry: "ProviderRegistry",
    log_level: Optional[str] = None,
    stream=None,
) -> List[Layer]:
    """
    Build the default layer stack for a provider registry.

    Args:
        registry: Providers the bridge layers export through
        log_level: LOG_LEVEL style value, INFO when missing or invalid
        stream: Console stream, stderr by default
    """
    return [
        ConsoleLayer(stream=stream),
        LevelFilterLayer.from_value(log_level),
        TraceLayer(),
        MetricsLayer(registry.meter_provider, registry.service_name),
        LogBridgeLayer(registry.logger_provider),
    ]


# The installed sink. Written once at startup.
_installed: Optional[SubscriberHandler] = None
_install_lock = threading.Lock()


def get_installed_subscriber() -> Optional[SubscriberHandler]:
    return _installed


def install_subscriber(
    chain: SubscriberChain,
    tracer_provider: Optional[SDKTracerProvider] = None,
) -> SubscriberHandler:
    """
    Install a chain as the process's single observation sink.

    Replaces the root logger's handlers with a SubscriberHandler, routes the
    uvicorn loggers to it and, when a tracer provider is given, registers a
    SubscriberSpanProcessor on it.

    Raises:
        TelemetryInitError: If a subscriber is already installed
    """
    global _installed

    with _install_lock:
        if _installed is not None:
            raise TelemetryInitError("A telemetry subscriber is already installed")

        handler = SubscriberHandler(chain)

        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.addHandler(handler)
        root_logger.setLevel(chain.level)

        # Let server loggers flow through the chain instead of their own handlers
        for name in ["uvicorn", "uvicorn.error", "fastapi"]:
            server_logger = logging.getLogger(name)
            server_logger.handlers.clear()
            server_logger.propagate = True

        logging.getLogger("uvicorn.access").handlers.clear()
        logging.getLogger("uvicorn.access").propagate = False

        if tracer_provider is not None:
            tracer_provider.add_span_processor(SubscriberSpanProcessor(chain))

        _installed = handler

    return handler


def uninstall_subscriber() -> None:
    """
    Remove the installed subscriber from the root logger.

    Only meant for tests: the span processor stays registered on its
    tracer provider.
    """
    global _installed

    with _install_lock:
        if _installed is None:
            return
        logging.getLogger().removeHandler(_installed)
        _installed.chain.shutdown()
        _installed = None
