# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Observation layers composed by the SubscriberChain.

Every layer implements the same hooks (enabled, on_span_start, on_span_end,
on_log, on_metric) and decides on its own which events it acts on:

- ConsoleLayer: human readable lines on stderr
- LevelFilterLayer: drops records below the configured level
- TraceLayer: turns log records into span events, promotes errors to status
- MetricsLayer: turns prefixed record fields into metric points
- LogBridgeLayer: forwards records to the OpenTelemetry logger provider
"""

import logging
import sys
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from opentelemetry.context import Context
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.trace import ReadableSpan, Span
from opentelemetry.trace import Status, StatusCode

from hello_otel.telemetry.config import parse_log_level
from hello_otel.telemetry.context import (
    SpanAttributes,
    get_current_span,
    get_trace_ids,
    to_attribute_value,
)

# Attributes every LogRecord has; anything else came in through `extra`
_RESERVED_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | frozenset(["message", "asctime", "taskName"])

# Field prefixes understood by MetricsLayer
MONOTONIC_COUNTER_PREFIX = "monotonic_counter."
COUNTER_PREFIX = "counter."
HISTOGRAM_PREFIX = "histogram."

_METRIC_PREFIXES = (MONOTONIC_COUNTER_PREFIX, COUNTER_PREFIX, HISTOGRAM_PREFIX)

# Loggers of the export stack itself. Their records are shown locally but
# never exported, otherwise an export failure would produce more telemetry.
INTERNAL_LOGGER_PREFIXES = (
    "opentelemetry",
    "hello_otel.telemetry",
    "urllib3",
    "requests",
)


@dataclass(frozen=True)
class Measurement:
    """A metric point extracted from a log record field."""

    kind: str  # one of the *_PREFIX constants without the dot
    name: str
    value: float
    attributes: Dict[str, Any] = field(default_factory=dict)


def record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Return the `extra` fields attached to a log record."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_RECORD_ATTRS and not key.startswith("_")
    }


def is_internal_record(record: logging.LogRecord) -> bool:
    """True for records emitted by the telemetry stack itself."""
    name = record.name or ""
    return any(
        name == prefix or name.startswith(prefix + ".")
        for prefix in INTERNAL_LOGGER_PREFIXES
    )


def extract_measurements(record: logging.LogRecord) -> List[Measurement]:
    """
    Collect the metric fields of a log record.

    A field named "monotonic_counter.requests" with value 1 becomes a Counter
    increment of "requests". The remaining non-metric fields become the
    attributes of every measurement. Non-numeric values are ignored.

    Example:
        logger.info("done", extra={"histogram.latency_ms": 12.5, "route": "/"})
    """
    fields = record_fields(record)
    attributes = {
        key: to_attribute_value(value)
        for key, value in fields.items()
        if not key.startswith(_METRIC_PREFIXES) and value is not None
    }

    measurements = []
    for key, value in fields.items():
        for prefix in _METRIC_PREFIXES:
            if key.startswith(prefix) and len(key) > len(prefix):
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    break
                measurements.append(
                    Measurement(
                        kind=prefix[:-1],
                        name=key[len(prefix) :],
                        value=value,
                        attributes=attributes,
                    )
                )
                break
    return measurements


class Layer:
    """
    Base class of all observation layers.

    Hooks default to no-ops. The built-in layers act on log records and
    measurements only; on_span_start and on_span_end are extension points
    for layers that need to see spans open and close. A layer with
    skip_internal set never receives records from the telemetry stack's own
    loggers.
    """

    name = "layer"
    skip_internal = False

    def enabled(self, record: logging.LogRecord) -> bool:
        return True

    def on_span_start(self, span: Span, parent_context: Optional[Context] = None) -> None:
        pass

    def on_span_end(self, span: ReadableSpan) -> None:
        pass

    def on_log(self, record: logging.LogRecord) -> None:
        pass

    def on_metric(self, measurement: Measurement) -> None:
        pass

    def shutdown(self) -> None:
        pass


class ConsoleFormatter(logging.Formatter):
    """
    Formatter adding the current trace/span ids and the extra fields.

    Output:
        2025-01-01 12:00:00 INFO  hello_otel.api.handler handler.py:31 [4bf9...:00f0...] : sub1 call_fn=handler
    """

    default_format = (
        "%(asctime)s %(levelname)-5s %(name)s %(filename)s:%(lineno)d "
        "[%(trace_id)s:%(span_id)s] : %(message)s%(fields)s"
    )

    def __init__(self, fmt: Optional[str] = None, datefmt: str = "%Y-%m-%d %H:%M:%S"):
        super().__init__(fmt or self.default_format, datefmt=datefmt)

    def formatMessage(self, record: logging.LogRecord) -> str:
        values = dict(record.__dict__)
        values["trace_id"], values["span_id"] = get_trace_ids()
        fields = record_fields(record)
        values["fields"] = "".join(f" {key}={value}" for key, value in fields.items())
        return self._fmt % values


class ConsoleLayer(Layer):
    """Writes every enabled record to a stream (stderr by default)."""

    name = "console"

    def __init__(self, stream=None, formatter: Optional[logging.Formatter] = None):
        self.handler = logging.StreamHandler(stream or sys.stderr)
        self.handler.setFormatter(formatter or ConsoleFormatter())

    def on_log(self, record: logging.LogRecord) -> None:
        self.handler.handle(record)

    def shutdown(self) -> None:
        self.handler.flush()


class LevelFilterLayer(Layer):
    """
    Drops records below a minimum level.

    The level comes from a LOG_LEVEL value when built with from_value(); unknown or
    missing values mean INFO.
    """

    name = "level_filter"

    def __init__(self, level: int = logging.INFO):
        self.level = level

    @classmethod
    def from_value(cls, value: Optional[str]) -> "LevelFilterLayer":
        return cls(parse_log_level(value))

    def enabled(self, record: logging.LogRecord) -> bool:
        return record.levelno >= self.level


class TraceLayer(Layer):
    """
    Attaches log records to the active span.

    Each record becomes a span event carrying its level, logger name, fields
    and source location. ERROR records set the span status to ERROR and a
    record with exc_info is recorded as an exception.
    """

    name = "trace"
    skip_internal = True

    def __init__(
        self,
        error_records_to_status: bool = True,
        error_records_to_exceptions: bool = True,
        with_location: bool = True,
    ):
        self.error_records_to_status = error_records_to_status
        self.error_records_to_exceptions = error_records_to_exceptions
        self.with_location = with_location

    def on_log(self, record: logging.LogRecord) -> None:
        span = get_current_span()
        if span is None:
            return

        message = record.getMessage()
        attributes: Dict[str, Any] = {
            SpanAttributes.LOG_LEVEL: record.levelname,
            SpanAttributes.LOG_TARGET: record.name,
        }
        for key, value in record_fields(record).items():
            if value is not None:
                attributes[key] = to_attribute_value(value)
        if self.with_location:
            attributes[SpanAttributes.CODE_FILEPATH] = record.pathname
            attributes[SpanAttributes.CODE_LINENO] = record.lineno
            attributes[SpanAttributes.CODE_FUNCTION] = record.funcName
            attributes[SpanAttributes.CODE_NAMESPACE] = record.module

        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None and self.error_records_to_exceptions:
            span.record_exception(exc, attributes=attributes)
        else:
            span.add_event(message, attributes)

        if record.levelno >= logging.ERROR and self.error_records_to_status:
            span.set_status(Status(StatusCode.ERROR, description=message))


class MetricsLayer(Layer):
    """
    Records the metric fields of log records on a MeterProvider.

    Field prefix to instrument:
        monotonic_counter. -> Counter
        counter.           -> UpDownCounter
        histogram.         -> Histogram
    """

    name = "metrics"
    skip_internal = True

    def __init__(self, meter_provider: MeterProvider, meter_name: str = "hello_otel"):
        self._meter = meter_provider.get_meter(meter_name)
        self._instruments: Dict[tuple, Any] = {}
        self._lock = threading.Lock()

    def _instrument(self, kind: str, name: str):
        key = (kind, name)
        instrument = self._instruments.get(key)
        if instrument is not None:
            return instrument

        with self._lock:
            instrument = self._instruments.get(key)
            if instrument is None:
                if kind == MONOTONIC_COUNTER_PREFIX[:-1]:
                    instrument = self._meter.create_counter(name)
                elif kind == COUNTER_PREFIX[:-1]:
                    instrument = self._meter.create_up_down_counter(name)
                else:
                    instrument = self._meter.create_histogram(name)
                self._instruments[key] = instrument
        return instrument

    def on_metric(self, measurement: Measurement) -> None:
        instrument = self._instrument(measurement.kind, measurement.name)
        if measurement.kind == HISTOGRAM_PREFIX[:-1]:
            instrument.record(measurement.value, attributes=measurement.attributes)
        else:
            instrument.add(measurement.value, attributes=measurement.attributes)


class LogBridgeLayer(Layer):
    """
    Forwards records to an OpenTelemetry LoggerProvider.

    The SDK LoggingHandler reads the active span from the context, so every
    exported record carries the trace and span id it was emitted under.
    """

    name = "log_bridge"
    skip_internal = True

    def __init__(self, logger_provider: LoggerProvider):
        self.handler = LoggingHandler(
            level=logging.NOTSET, logger_provider=logger_provider
        )

    def on_log(self, record: logging.LogRecord) -> None:
        self.handler.handle(record)
