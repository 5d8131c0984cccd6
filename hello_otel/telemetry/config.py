# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
OpenTelemetry configuration module.

Loads the telemetry settings for the service from environment variables.
This is the single source of truth for exporter endpoints, resource identity,
batching behaviour and the local log level.

Environment Variables:
    OTEL_EXPORTER_OTLP_ENDPOINT: Collector base URL (default: https://otlp.nr-data.net)
    OTEL_SERVICE_NAME: Service name resource attribute (default: fastapi-newrelic-example)
    OTEL_HOST_NAME: Host name resource attribute (default: localhost)
    OTEL_EXPORTER_OTLP_TIMEOUT: Per-request export timeout in seconds (default: 10)
    OTEL_BSP_MAX_QUEUE_SIZE: Maximum queued spans/log records per pipeline (default: 2048)
    OTEL_BSP_SCHEDULE_DELAY: Delay between two flushes in milliseconds (default: 5000)
    OTEL_BSP_MAX_EXPORT_BATCH_SIZE: Maximum items per exported batch (default: 512)
    OTEL_BSP_EXPORT_TIMEOUT: Timeout of one batch export in milliseconds (default: 10000)
    OTEL_METRIC_EXPORT_INTERVAL: Metric collection interval in milliseconds (default: 60000)
    LOG_LEVEL: Minimum severity emitted locally (default: info)
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_OTLP_ENDPOINT = "https://otlp.nr-data.net"
DEFAULT_SERVICE_NAME = "fastapi-newrelic-example"
DEFAULT_HOST_NAME = "localhost"
DEFAULT_LOG_LEVEL = "info"

# Accepted LOG_LEVEL values, matched case-insensitively
_LEVEL_NAMES = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


@dataclass(frozen=True)
class BatchConfig:
    """Settings shared by the three batching pipelines."""

    max_queue_size: int = 2048
    schedule_delay_millis: int = 5000
    max_export_batch_size: int = 512
    export_timeout_millis: int = 10000
    metric_export_interval_millis: int = 60000


@dataclass(frozen=True)
class TelemetryConfig:
    """
    Telemetry configuration dataclass.

    Holds everything init_telemetry() needs. Use get_telemetry_config() to
    get the cached instance built from the environment.
    """

    license_key: str
    otlp_endpoint: str = DEFAULT_OTLP_ENDPOINT
    service_name: str = DEFAULT_SERVICE_NAME
    host_name: str = DEFAULT_HOST_NAME
    export_timeout: float = 10.0  # seconds, per HTTP request
    log_level: str = DEFAULT_LOG_LEVEL
    batch: BatchConfig = field(default_factory=BatchConfig)


# Cached configuration instance
_telemetry_config: Optional[TelemetryConfig] = None


def parse_log_level(value: Optional[str]) -> int:
    """
    Convert a LOG_LEVEL value to a logging level number.

    Unknown, empty or missing values fall back to INFO.

    Example:
        >>> parse_log_level("debug")
        10
        >>> parse_log_level("verbose")
        20
    """
    if not value:
        return logging.INFO
    return _LEVEL_NAMES.get(value.strip().lower(), logging.INFO)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logging.getLogger(__name__).warning(
            "Ignoring invalid %s=%r, using %s", name, raw, default
        )
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logging.getLogger(__name__).warning(
            "Ignoring invalid %s=%r, using %s", name, raw, default
        )
        return default


def load_batch_config() -> BatchConfig:
    """Read the batching settings from OTEL_BSP_* variables."""
    return BatchConfig(
        max_queue_size=_int_env("OTEL_BSP_MAX_QUEUE_SIZE", 2048),
        schedule_delay_millis=_int_env("OTEL_BSP_SCHEDULE_DELAY", 5000),
        max_export_batch_size=_int_env("OTEL_BSP_MAX_EXPORT_BATCH_SIZE", 512),
        export_timeout_millis=_int_env("OTEL_BSP_EXPORT_TIMEOUT", 10000),
        metric_export_interval_millis=_int_env("OTEL_METRIC_EXPORT_INTERVAL", 60000),
    )


def validate_batch_config(batch: BatchConfig) -> None:
    """
    Check batching settings before any pipeline is built.

    Raises:
        ValueError: If a size, delay or timeout is not positive, or a batch
            could not fit in the queue
    """
    for name in (
        "max_queue_size",
        "schedule_delay_millis",
        "max_export_batch_size",
        "export_timeout_millis",
        "metric_export_interval_millis",
    ):
        value = getattr(batch, name)
        if value <= 0:
            raise ValueError(f"{name} must be positive, got {value}")
    if batch.max_export_batch_size > batch.max_queue_size:
        raise ValueError(
            f"max_export_batch_size ({batch.max_export_batch_size}) must not "
            f"exceed max_queue_size ({batch.max_queue_size})"
        )


def get_telemetry_config(license_key: Optional[str] = None) -> TelemetryConfig:
    """
    Get the telemetry configuration from environment variables.

    The configuration is loaded once and reused for subsequent calls.

    Args:
        license_key: Collector credential. Only used on the first call, when
                     the config is created.

    Returns:
        TelemetryConfig: Configuration dataclass with all telemetry settings
    """
    global _telemetry_config

    if _telemetry_config is None:
        _telemetry_config = TelemetryConfig(
            license_key=license_key or "",
            otlp_endpoint=os.getenv(
                "OTEL_EXPORTER_OTLP_ENDPOINT", DEFAULT_OTLP_ENDPOINT
            ),
            service_name=os.getenv("OTEL_SERVICE_NAME", DEFAULT_SERVICE_NAME),
            host_name=os.getenv("OTEL_HOST_NAME", DEFAULT_HOST_NAME),
            export_timeout=_float_env("OTEL_EXPORTER_OTLP_TIMEOUT", 10.0),
            log_level=os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL),
            batch=load_batch_config(),
        )

    return _telemetry_config


def reset_telemetry_config() -> None:
    """
    Reset the cached telemetry configuration.

    Only useful in tests that reload the configuration with a different
    environment.
    """
    global _telemetry_config
    _telemetry_config = None
