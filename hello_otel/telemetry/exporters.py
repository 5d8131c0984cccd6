# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
OTLP/JSON over HTTP exporters for spans, metrics and logs.

The stock OTLP HTTP exporters only speak protobuf. These exporters reuse the
OTLP protobuf encoders, convert the request message to the OTLP/JSON mapping
and POST it to <endpoint>/v1/<signal> with an "api-key" header, which is what
New Relic's OTLP endpoint expects.

Delivery is best effort: a failed POST is logged and reported as FAILURE to
the batch processor, which drops the batch. Nothing is retried, so a batch is
delivered at most once.
"""

import base64
import json
import logging
import threading
from enum import Enum
from typing import Any, Dict, Optional, Sequence
from urllib.parse import urlsplit

import requests
from google.protobuf.json_format import MessageToDict
from google.protobuf.message import Message
from opentelemetry.exporter.otlp.proto.common._log_encoder import encode_logs
from opentelemetry.exporter.otlp.proto.common.metrics_encoder import encode_metrics
from opentelemetry.exporter.otlp.proto.common.trace_encoder import encode_spans
from opentelemetry.sdk._logs.export import LogExporter, LogExportResult
from opentelemetry.sdk.metrics.export import (
    MetricExporter,
    MetricExportResult,
    MetricsData,
)
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

from hello_otel.telemetry.exceptions import ExporterConfigError

logger = logging.getLogger(__name__)

API_KEY_HEADER = "api-key"
JSON_CONTENT_TYPE = "application/json"

# OTLP/JSON encodes these bytes fields as lowercase hex instead of base64
_ID_FIELDS = frozenset(["traceId", "spanId", "parentSpanId"])


class Signal(str, Enum):
    """Telemetry signal kinds and their OTLP/HTTP path suffix."""

    TRACES = "traces"
    METRICS = "metrics"
    LOGS = "logs"

    @property
    def path(self) -> str:
        return f"/v1/{self.value}"


def signal_endpoint(base_endpoint: str, signal: Signal) -> str:
    """Return the full OTLP URL for a signal, e.g. https://host/v1/traces."""
    return base_endpoint.rstrip("/") + signal.path


def to_otlp_json(message: Message) -> str:
    """
    Serialize an OTLP export request message with the OTLP/JSON mapping.

    Field names are lowerCamelCase, enums are integers and trace/span ids
    are hex strings.
    """
    data = MessageToDict(message, use_integers_for_enums=True)
    return json.dumps(_hex_ids(data), separators=(",", ":"))


def _hex_ids(value: Any) -> Any:
    if isinstance(value, dict):
        converted = {}
        for key, item in value.items():
            if key in _ID_FIELDS and isinstance(item, str):
                converted[key] = base64.b64decode(item).hex()
            else:
                converted[key] = _hex_ids(item)
        return converted
    if isinstance(value, list):
        return [_hex_ids(item) for item in value]
    return value


def validate_exporter_config(
    signal: Signal, base_endpoint: str, license_key: str, timeout: float
) -> None:
    """
    Check an exporter configuration without touching the network.

    Raises:
        ExporterConfigError: If the endpoint is not an absolute http(s) URL,
            the license key is not a usable header value, or the timeout is
            not positive.
    """
    name = signal.value
    if not base_endpoint or not isinstance(base_endpoint, str):
        raise ExporterConfigError(name, "endpoint is empty")

    try:
        parts = urlsplit(base_endpoint)
        # Accessing .port validates the port number
        parts.port
    except ValueError as e:
        raise ExporterConfigError(name, f"malformed endpoint {base_endpoint!r}: {e}")

    if parts.scheme not in ("http", "https"):
        raise ExporterConfigError(
            name, f"endpoint {base_endpoint!r} must use http or https"
        )
    if not parts.hostname:
        raise ExporterConfigError(name, f"endpoint {base_endpoint!r} has no host")
    if parts.query or parts.fragment:
        raise ExporterConfigError(
            name, f"endpoint {base_endpoint!r} must not carry a query or fragment"
        )

    if not license_key or not license_key.strip():
        raise ExporterConfigError(name, "license key is empty")
    if any(ch in license_key for ch in "\r\n\0"):
        raise ExporterConfigError(name, "license key is not a valid header value")

    if timeout <= 0:
        raise ExporterConfigError(name, f"timeout must be positive, got {timeout}")


class _JsonHttpSender:
    """HTTP transport shared by the three exporters."""

    def __init__(
        self,
        signal: Signal,
        base_endpoint: str,
        license_key: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        validate_exporter_config(signal, base_endpoint, license_key, timeout)
        self.signal = signal
        self.endpoint = signal_endpoint(base_endpoint, signal)
        self.headers: Dict[str, str] = {
            API_KEY_HEADER: license_key,
            "Content-Type": JSON_CONTENT_TYPE,
        }
        self.timeout = timeout
        self._session = session or requests.Session()
        self._shutdown = False
        self._lock = threading.Lock()

    def send(self, message: Message) -> bool:
        """POST one encoded batch. Returns True on a 2xx response."""
        if self._shutdown:
            logger.warning(
                "%s exporter already shutdown, dropping batch", self.signal.value
            )
            return False

        try:
            body = to_otlp_json(message)
        except Exception as e:
            logger.warning(
                "Failed to encode %s batch, dropping it: %s", self.signal.value, e
            )
            return False

        try:
            response = self._session.post(
                self.endpoint,
                data=body,
                headers=self.headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(
                "Failed to export %s batch to %s: %s",
                self.signal.value,
                self.endpoint,
                e,
            )
            return False

        if not response.ok:
            logger.warning(
                "Failed to export %s batch to %s: HTTP %s %s",
                self.signal.value,
                self.endpoint,
                response.status_code,
                response.reason,
            )
            return False

        logger.debug("Exported %s batch to %s", self.signal.value, self.endpoint)
        return True

    def close(self) -> None:
        with self._lock:
            if self._shutdown:
                return
            self._shutdown = True
        self._session.close()


class JsonSpanExporter(SpanExporter):
    """Span exporter posting OTLP/JSON to <endpoint>/v1/traces."""

    def __init__(
        self,
        endpoint: str,
        license_key: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self._sender = _JsonHttpSender(
            Signal.TRACES, endpoint, license_key, timeout, session
        )

    @property
    def endpoint(self) -> str:
        return self._sender.endpoint

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._sender.headers)

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        if self._sender.send(encode_spans(spans)):
            return SpanExportResult.SUCCESS
        return SpanExportResult.FAILURE

    def shutdown(self) -> None:
        self._sender.close()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        # Nothing is buffered here, the batch processor owns the queue
        return True


class JsonMetricExporter(MetricExporter):
    """Metric exporter posting OTLP/JSON to <endpoint>/v1/metrics."""

    def __init__(
        self,
        endpoint: str,
        license_key: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        preferred_temporality: Optional[dict] = None,
        preferred_aggregation: Optional[dict] = None,
    ):
        super().__init__(
            preferred_temporality=preferred_temporality,
            preferred_aggregation=preferred_aggregation,
        )
        self._sender = _JsonHttpSender(
            Signal.METRICS, endpoint, license_key, timeout, session
        )

    @property
    def endpoint(self) -> str:
        return self._sender.endpoint

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._sender.headers)

    def export(
        self,
        metrics_data: MetricsData,
        timeout_millis: float = 10_000,
        **kwargs,
    ) -> MetricExportResult:
        if self._sender.send(encode_metrics(metrics_data)):
            return MetricExportResult.SUCCESS
        return MetricExportResult.FAILURE

    def force_flush(self, timeout_millis: float = 10_000) -> bool:
        return True

    def shutdown(self, timeout_millis: float = 30_000, **kwargs) -> None:
        self._sender.close()


class JsonLogExporter(LogExporter):
    """Log exporter posting OTLP/JSON to <endpoint>/v1/logs."""

    def __init__(
        self,
        endpoint: str,
        license_key: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self._sender = _JsonHttpSender(
            Signal.LOGS, endpoint, license_key, timeout, session
        )

    @property
    def endpoint(self) -> str:
        return self._sender.endpoint

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._sender.headers)

    def export(self, batch) -> LogExportResult:
        if self._sender.send(encode_logs(batch)):
            return LogExportResult.SUCCESS
        return LogExportResult.FAILURE

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True

    def shutdown(self) -> None:
        self._sender.close()


_EXPORTER_CLASSES = {
    Signal.TRACES: JsonSpanExporter,
    Signal.METRICS: JsonMetricExporter,
    Signal.LOGS: JsonLogExporter,
}


def build_exporter(
    signal: Signal,
    base_endpoint: str,
    license_key: str,
    timeout: float = 10.0,
    session: Optional[requests.Session] = None,
):
    """
    Build the OTLP/JSON exporter for one signal.

    Args:
        signal: Which signal the exporter ships
        base_endpoint: Collector base URL, the signal path is appended
        license_key: Value of the api-key header
        timeout: Per-request timeout in seconds
        session: Optional requests session (a new one is created otherwise)

    Returns:
        JsonSpanExporter, JsonMetricExporter or JsonLogExporter

    Raises:
        ExporterConfigError: If the configuration is malformed
    """
    exporter_cls = _EXPORTER_CLASSES[Signal(signal)]
    return exporter_cls(base_endpoint, license_key, timeout=timeout, session=session)
